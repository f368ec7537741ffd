# =============================================================================
# System API — Health Probes and Service Info
# =============================================================================
#
#   GET /health: probe the Completion and Retrieval services
#   GET /info  : name, version, strategies, endpoints
#
# DESIGN DECISION: Health makes real (tiny) calls.
# A 5-token completion and a top-1 search. Constructing a client proves
# only that keys are present; a call proves the service answers. Each
# probe is bounded by its own short timeout so /health stays responsive.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from agentic_rag.agents.tool_loop import ToolLoopAgent
from agentic_rag.agents.workflow import DecisionWorkflow
from agentic_rag.config import settings
from agentic_rag.models.responses import HealthResponse, InfoResponse, StrategyInfo
from agentic_rag.services.llm import get_llm_provider
from agentic_rag.services.retrieval import get_retrieval_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["System"])

# Seconds each health probe may take
PROBE_TIMEOUT_SECONDS = 10

ENDPOINTS = [
    "GET /api/health - Health check",
    "GET /api/info - Service information",
    "POST /api/workflow/query - Query the staged workflow",
    "POST /api/workflow/example - Run the demo query through the workflow",
    "POST /api/tool-loop/query - Query the autonomous tool loop",
    "POST /api/tool-loop/example - Run the demo query through the tool loop",
    "POST /api/compare - Compare both strategies",
]


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Probe the completion and retrieval services",
    responses={503: {"model": HealthResponse}},
)
async def health() -> JSONResponse:
    completion_ok, retrieval_ok = await asyncio.gather(
        _probe_completion(), _probe_retrieval(),
    )
    healthy = completion_ok and retrieval_ok
    body = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        services={"completion": completion_ok, "retrieval": retrieval_ok},
        version=settings.app_version,
        timestamp=datetime.now(UTC).isoformat(),
    )
    return JSONResponse(
        status_code=200 if healthy else 503,
        content=body.model_dump(),
    )


@router.get(
    "/info",
    response_model=InfoResponse,
    summary="Service name, version, strategies and endpoints",
)
async def info() -> InfoResponse:
    return InfoResponse(
        name=settings.app_name,
        version=settings.app_version,
        description=(
            "Retrieval-augmented answering with an explicit, auditable "
            "decision about when to use retrieved documents."
        ),
        strategies={
            DecisionWorkflow.strategy_name: StrategyInfo(
                description=(
                    "Staged workflow: analyze, retrieve, grade, generate"
                ),
                endpoint="/api/workflow/query",
                workflow_version=DecisionWorkflow.workflow_version,
            ),
            ToolLoopAgent.strategy_name: StrategyInfo(
                description=(
                    "Autonomous tool loop over search and evaluate "
                    "capabilities"
                ),
                endpoint="/api/tool-loop/query",
                workflow_version=ToolLoopAgent.workflow_version,
            ),
        },
        endpoints=ENDPOINTS,
    )


async def _probe_completion() -> bool:
    try:
        async with asyncio.timeout(PROBE_TIMEOUT_SECONDS):
            await get_llm_provider().complete(
                messages=[{"role": "user", "content": "Hello"}],
                max_tokens=5,
            )
    except Exception as e:
        logger.warning("Completion health check failed: %s", e)
        return False
    return True


async def _probe_retrieval() -> bool:
    try:
        async with asyncio.timeout(PROBE_TIMEOUT_SECONDS):
            await get_retrieval_service().search("test", top=1)
    except Exception as e:
        logger.warning("Retrieval health check failed: %s", e)
        return False
    return True
