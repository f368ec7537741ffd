#!/usr/bin/env python3
"""
Run one query from the command line and print the ExecutionResult JSON.

Uses the services configured in .env / environment (LLM_PROVIDER,
RETRIEVAL_BACKEND, ...), exactly as the API does.

Run from project root:

    python scripts/run_query.py "Explain recursion in computer science"
    python scripts/run_query.py --strategy tool_loop "Summarise Adobe's brand voice"
    python scripts/run_query.py --compare "Generate Adobe's brand guidelines summary"
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Project root on path so "agentic_rag" resolves
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from agentic_rag.agents.comparison import compare_strategies
from agentic_rag.agents.tool_loop import ToolLoopAgent
from agentic_rag.agents.workflow import DecisionWorkflow
from agentic_rag.config import settings
from agentic_rag.errors import InvalidQueryError, ServiceError
from agentic_rag.models.requests import ExecutionOptions
from agentic_rag.services.llm import get_llm_provider
from agentic_rag.services.retrieval import close_retrieval_service, get_retrieval_service

STRATEGIES = {
    DecisionWorkflow.strategy_name: DecisionWorkflow,
    ToolLoopAgent.strategy_name: ToolLoopAgent,
}


async def run(query: str, strategy_name: str, compare: bool, max_retries: int | None) -> str:
    llm = get_llm_provider()
    retrieval = get_retrieval_service()
    options = ExecutionOptions(max_retries=max_retries)
    try:
        if compare:
            strategies = [cls(llm, retrieval) for cls in STRATEGIES.values()]
            response = await compare_strategies(query, strategies, options)
        else:
            strategy = STRATEGIES[strategy_name](llm, retrieval)
            async with asyncio.timeout(settings.request_timeout_seconds):
                response = await strategy.run(query, options)
    finally:
        await close_retrieval_service()
    return response.model_dump_json(indent=2)


def main() -> None:
    parser = argparse.ArgumentParser(description="Answer a query from the command line.")
    parser.add_argument("query", help="The query to answer.")
    parser.add_argument(
        "--strategy",
        choices=sorted(STRATEGIES),
        default=DecisionWorkflow.strategy_name,
        help="Strategy to run (ignored with --compare).",
    )
    parser.add_argument(
        "--compare",
        action="store_true",
        help="Run every strategy concurrently and print the comparison.",
    )
    parser.add_argument("--max-retries", type=int, default=None)
    parser.add_argument("-v", "--verbose", action="store_true", help="INFO logging.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    try:
        output = asyncio.run(
            run(args.query, args.strategy, args.compare, args.max_retries),
        )
    except (InvalidQueryError, ValueError) as e:
        sys.exit(f"Invalid input or configuration: {e}")
    except ServiceError as e:
        sys.exit(f"Service error: {e.message}")
    except TimeoutError:
        sys.exit(f"Timed out after {settings.request_timeout_seconds}s")

    print(output)


if __name__ == "__main__":
    main()
