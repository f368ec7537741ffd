# =============================================================================
# Explainability Recorder — Append-Only Audit Trail
# =============================================================================
#
# Collects the ordered execution steps of one run and summarises the
# run's decisions into the Explainability payload.
#
# DESIGN DECISION: Steps are frozen and the log is append-only.
# Details are deep-copied on the way in, and `steps` hands out read-only
# copies, so nothing outside the recorder can edit, truncate or reorder
# the trail. A stage that fails after recording still leaves its step
# behind.
# =============================================================================

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from agentic_rag.models.responses import (
    DecisionPoints,
    ExecutionStepRecord,
    Explainability,
    RetrievalDetails,
)

if TYPE_CHECKING:
    from agentic_rag.agents.state import ExecutionState

# How many document scores the retrieval summary carries
TOP_SCORES = 3


@dataclass(frozen=True)
class ExecutionStep:
    """One recorded step: name, UTC timestamp, and a details map."""

    step: str
    timestamp: str
    details: Mapping[str, Any] = field(default_factory=dict)


class ExplainabilityRecorder:
    """Ordered, append-only log of execution steps for a single run."""

    def __init__(self) -> None:
        self._steps: list[ExecutionStep] = []

    def record(self, step: str, **details: Any) -> ExecutionStep:
        entry = ExecutionStep(
            step=step,
            timestamp=datetime.now(UTC).isoformat(),
            details=copy.deepcopy(details),
        )
        self._steps.append(entry)
        return _read_only(entry)

    @property
    def steps(self) -> tuple[ExecutionStep, ...]:
        return tuple(_read_only(s) for s in self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def summarize(self, state: ExecutionState) -> Explainability:
        """
        Build the Explainability payload for `state`.

        Retrieval details are included only when retrieval was attempted
        (needs_retrieval is True). Pure: calling it twice on the same state
        gives equal payloads.
        """
        retrieval_details = None
        if state.needs_retrieval:
            retrieval_details = RetrievalDetails(
                search_query=state.search_query,
                documents_found=len(state.retrieved_documents),
                top_document_scores=[
                    doc.score for doc in state.retrieved_documents[:TOP_SCORES]
                ],
            )

        return Explainability(
            execution_steps=[
                ExecutionStepRecord(
                    step=s.step,
                    timestamp=s.timestamp,
                    details=copy.deepcopy(s.details),
                )
                for s in self._steps
            ],
            decision_points=DecisionPoints(
                needs_retrieval=state.needs_retrieval,
                retrieval_accepted=state.retrieval_accepted,
                retry_count=state.retry_count,
            ),
            retrieval_details=retrieval_details,
            rejection_reason=state.rejection_reason or None,
        )


def _read_only(step: ExecutionStep) -> ExecutionStep:
    """Copy of `step` whose details cannot write back into the log."""
    return replace(step, details=MappingProxyType(copy.deepcopy(step.details)))
