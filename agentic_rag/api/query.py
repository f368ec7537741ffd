# =============================================================================
# Query API — One Query Through One Strategy
# =============================================================================
#
#   POST /workflow/query  : staged decision workflow
#   POST /tool-loop/query : autonomous tool loop
#
# Both return the same ExecutionResult, so clients can switch strategy by
# switching path.
#
# Error handling:
#   - blank query → 422 (request model validation)
#   - missing key / endpoint → 503 (raised while resolving the strategy)
#   - completion failure escaping the tool loop → 502
#   - run exceeds request_timeout_seconds → 504
#
# The workflow itself never raises for upstream failures; it degrades the
# answer instead. Only the tool loop can surface a 502.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from agentic_rag.agents.comparison import Strategy
from agentic_rag.agents.tool_loop import ToolLoopAgent
from agentic_rag.agents.workflow import DecisionWorkflow
from agentic_rag.api.deps import get_tool_loop, get_workflow
from agentic_rag.config import settings
from agentic_rag.errors import InvalidQueryError, ServiceError
from agentic_rag.models.requests import QueryRequest
from agentic_rag.models.responses import ExecutionResult

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Query"])


@router.post(
    "/workflow/query",
    response_model=ExecutionResult,
    summary="Answer a query with the staged decision workflow",
    description=(
        "Runs analyze → (retrieve → grade) → generate. The model first "
        "decides whether document retrieval would help, retrieved documents "
        "are graded for relevance, and the answer uses them only when "
        "accepted. Every decision is returned in `explainability`."
    ),
)
async def workflow_query(
    request: QueryRequest,
    workflow: DecisionWorkflow = Depends(get_workflow),
) -> ExecutionResult:
    return await _execute(workflow, request)


@router.post(
    "/tool-loop/query",
    response_model=ExecutionResult,
    summary="Answer a query with the autonomous tool loop",
    description=(
        "The model is given search_documents and evaluate_documents "
        "capabilities and decides itself whether and when to call them. "
        "The recorded steps list every capability call in call order."
    ),
)
async def tool_loop_query(
    request: QueryRequest,
    tool_loop: ToolLoopAgent = Depends(get_tool_loop),
) -> ExecutionResult:
    return await _execute(tool_loop, request)


async def _execute(strategy: Strategy, request: QueryRequest) -> ExecutionResult:
    logger.info(
        "%s request: query='%s'",
        strategy.strategy_name, request.query[:80],
    )
    try:
        async with asyncio.timeout(settings.request_timeout_seconds):
            return await strategy.run(request.query, request.options)
    except TimeoutError as e:
        logger.warning(
            "%s run timed out after %ss",
            strategy.strategy_name, settings.request_timeout_seconds,
        )
        raise HTTPException(
            status_code=504,
            detail=(
                f"Query did not complete within "
                f"{settings.request_timeout_seconds} seconds"
            ),
        ) from e
    except InvalidQueryError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except ServiceError as e:
        logger.exception("%s run failed: %s", strategy.strategy_name, e)
        raise HTTPException(
            status_code=502,
            detail=f"LLM service error: {e.message}",
        ) from e


# ---------------------------------------------------------------------------
# POST /{strategy}/example: Canned demo query
# ---------------------------------------------------------------------------

EXAMPLE_QUERY = (
    "Generate a PRD draft for Adobe Photoshop's homepage redesign using "
    "recent design best practices."
)


@router.post(
    "/workflow/example",
    response_model=ExecutionResult,
    summary="Run the demo query through the staged workflow",
)
async def workflow_example(
    workflow: DecisionWorkflow = Depends(get_workflow),
) -> ExecutionResult:
    return await _execute(workflow, QueryRequest(query=EXAMPLE_QUERY))


@router.post(
    "/tool-loop/example",
    response_model=ExecutionResult,
    summary="Run the demo query through the autonomous tool loop",
)
async def tool_loop_example(
    tool_loop: ToolLoopAgent = Depends(get_tool_loop),
) -> ExecutionResult:
    return await _execute(tool_loop, QueryRequest(query=EXAMPLE_QUERY))
