"""
Execution Result Normalizer.

Maps an ExecutionState from either strategy to the common ExecutionResult
contract. Only metadata.timestamp and metadata.execution_time_ms depend on
when it is called; answer and explainability depend on the state alone.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime

from agentic_rag.agents.state import ExecutionState
from agentic_rag.models.responses import ExecutionMetadata, ExecutionResult


def normalize_result(
    state: ExecutionState,
    *,
    strategy_name: str,
    workflow_version: str,
    started: float,
) -> ExecutionResult:
    """
    Build the ExecutionResult for a finished run.

    Args:
        state: The run's state. Not modified.
        strategy_name: Name of the strategy that produced it.
        workflow_version: Version tag of that strategy.
        started: time.monotonic() reading taken when the run began.
    """
    elapsed_ms = int((time.monotonic() - started) * 1000)
    return ExecutionResult(
        session_id=state.session_id,
        query=state.user_query,
        answer=state.final_answer,
        explainability=state.recorder.summarize(state),
        metadata=ExecutionMetadata(
            execution_time_ms=max(elapsed_ms, 0),
            timestamp=datetime.now(UTC).isoformat(),
            strategy_name=strategy_name,
            workflow_version=workflow_version,
        ),
    )
