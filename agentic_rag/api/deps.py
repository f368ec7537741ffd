# =============================================================================
# Strategy Dependencies — FastAPI Dependency Injection for Strategies
# =============================================================================
#
# Route handlers never construct services themselves. They receive a ready
# strategy through Depends(), built from the process-wide Completion and
# Retrieval singletons.
#
# DESIGN DECISION: Misconfiguration surfaces here as 503.
# Providers raise ValueError at construction when a key or endpoint is
# missing. Resolving the dependency turns that into 503 Service
# Unavailable before the handler runs.
#
# DESIGN DECISION: Testable via dependency_overrides.
# Tests swap get_workflow / get_tool_loop / get_strategies for strategies
# wired to fake services; no API keys or index needed.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException

from agentic_rag.agents.comparison import Strategy
from agentic_rag.agents.tool_loop import ToolLoopAgent
from agentic_rag.agents.workflow import DecisionWorkflow
from agentic_rag.services.llm import LLMProvider, get_llm_provider
from agentic_rag.services.retrieval import RetrievalService, get_retrieval_service

logger = logging.getLogger(__name__)


def get_llm() -> LLMProvider:
    """Completion Service singleton, or 503 when it cannot be configured."""
    try:
        return get_llm_provider()
    except ValueError as e:
        logger.error("Completion service configuration error: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e


def get_retrieval() -> RetrievalService:
    """Retrieval Service singleton, or 503 when it cannot be configured."""
    try:
        return get_retrieval_service()
    except ValueError as e:
        logger.error("Retrieval service configuration error: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e


def get_workflow(
    llm: LLMProvider = Depends(get_llm),
    retrieval: RetrievalService = Depends(get_retrieval),
) -> DecisionWorkflow:
    return DecisionWorkflow(llm, retrieval)


def get_tool_loop(
    llm: LLMProvider = Depends(get_llm),
    retrieval: RetrievalService = Depends(get_retrieval),
) -> ToolLoopAgent:
    return ToolLoopAgent(llm, retrieval)


def get_strategies(
    workflow: DecisionWorkflow = Depends(get_workflow),
    tool_loop: ToolLoopAgent = Depends(get_tool_loop),
) -> list[Strategy]:
    """Every strategy, in the order /compare reports them."""
    return [workflow, tool_loop]
