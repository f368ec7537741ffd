# =============================================================================
# Strategy Comparison — Same Query, N Strategies, In Parallel
# =============================================================================
#
# DESIGN DECISION: asyncio.gather() fan-out / fan-in.
# Each strategy run is an independent coroutine with its own
# ExecutionState; nothing is shared between legs, so the comparison's
# wall time is close to the slowest leg rather than the sum of legs.
#
# DESIGN DECISION: Leg failures are isolated, not propagated.
# A leg that raises gets result=None and error=str(e); the other legs'
# results still return. Cancellation is not caught and cancels every leg.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import Protocol

from agentic_rag.models.requests import ExecutionOptions
from agentic_rag.models.responses import (
    CompareResponse,
    ExecutionResult,
    PerformanceComparison,
    StrategyOutcome,
)

logger = logging.getLogger(__name__)


class Strategy(Protocol):
    """Anything that answers a query with an ExecutionResult."""

    strategy_name: str

    async def run(
        self,
        query: str,
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult: ...


async def compare_strategies(
    query: str,
    strategies: Sequence[Strategy],
    options: ExecutionOptions | None = None,
) -> CompareResponse:
    """
    Run every strategy on `query` concurrently and collect the outcomes.

    Results keep the order of `strategies`. performance.execution_time_ms
    holds the wall time of each leg, including failed ones;
    fastest_strategy only considers legs that succeeded.

    Raises:
        ValueError: two strategies share a strategy_name; timings are keyed
            by name.
    """
    names = [s.strategy_name for s in strategies]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"Duplicate strategy names: {', '.join(duplicates)}")

    wall_start = time.monotonic()

    async def run_one(strategy: Strategy) -> tuple[StrategyOutcome, int]:
        start = time.monotonic()
        try:
            result = await strategy.run(query, options)
        except Exception as e:
            logger.warning("Strategy %s failed: %s", strategy.strategy_name, e)
            elapsed = int((time.monotonic() - start) * 1000)
            return (
                StrategyOutcome(strategy_name=strategy.strategy_name, error=str(e)),
                elapsed,
            )
        elapsed = int((time.monotonic() - start) * 1000)
        return (
            StrategyOutcome(strategy_name=strategy.strategy_name, result=result),
            elapsed,
        )

    legs = await asyncio.gather(*(run_one(s) for s in strategies))

    timings = {outcome.strategy_name: elapsed for outcome, elapsed in legs}
    succeeded = [outcome for outcome, _ in legs if outcome.error is None]
    fastest = min(
        succeeded,
        key=lambda outcome: timings[outcome.strategy_name],
        default=None,
    )

    total_ms = int((time.monotonic() - wall_start) * 1000)
    logger.info(
        "Compared %d strategies in %dms: %s",
        len(legs), total_ms, timings,
    )

    return CompareResponse(
        query=query,
        results=[outcome for outcome, _ in legs],
        performance=PerformanceComparison(
            execution_time_ms=timings,
            fastest_strategy=fastest.strategy_name if fastest else None,
            total_time_ms=total_ms,
        ),
    )
