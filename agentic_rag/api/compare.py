# =============================================================================
# Compare API — Both Strategies, Same Query, Side by Side
# =============================================================================
#
#   POST /compare: run every strategy concurrently on one query
#
# DESIGN DECISION: One timeout around the whole comparison.
# Legs run in parallel, so request_timeout_seconds bounds the slowest leg.
# On timeout every leg is cancelled and the request gets 504.
#
# A failing leg is reported in its StrategyOutcome.error; the request
# still returns 200 with the other legs' results.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from agentic_rag.agents.comparison import Strategy, compare_strategies
from agentic_rag.api.deps import get_strategies
from agentic_rag.config import settings
from agentic_rag.models.requests import QueryRequest
from agentic_rag.models.responses import CompareResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Comparison"])


@router.post(
    "/compare",
    response_model=CompareResponse,
    summary="Compare the workflow and the tool loop on one query",
    description=(
        "Runs the identical query through every strategy in parallel "
        "against the same services. Returns each strategy's "
        "ExecutionResult (or its error) plus per-strategy timings."
    ),
)
async def compare_endpoint(
    request: QueryRequest,
    strategies: list[Strategy] = Depends(get_strategies),
) -> CompareResponse:
    logger.info("Compare request: query='%s'", request.query[:80])
    try:
        async with asyncio.timeout(settings.request_timeout_seconds):
            return await compare_strategies(
                request.query, strategies, request.options,
            )
    except TimeoutError as e:
        logger.warning(
            "Comparison timed out after %ss", settings.request_timeout_seconds,
        )
        raise HTTPException(
            status_code=504,
            detail=(
                f"Comparison did not complete within "
                f"{settings.request_timeout_seconds} seconds"
            ),
        ) from e
