# =============================================================================
# Execution State — One Instance Per Query Run
# =============================================================================
#
# Created fresh by a strategy at the start of run(), mutated only through
# the transition methods below, and discarded once normalised into an
# ExecutionResult. Never shared between runs.
#
# DESIGN DECISION: Write-once fields behind methods.
# needs_retrieval, retrieval_accepted and final_answer are decided exactly
# once per run. Assigning them through decide_retrieval()/grade()/finish()
# makes a second assignment a loud StateTransitionError instead of a silent
# overwrite, and lets grade() refuse to accept an empty document set.
# =============================================================================

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field

from agentic_rag.agents.explainability import ExplainabilityRecorder
from agentic_rag.errors import InvalidQueryError, StateTransitionError
from agentic_rag.services.retrieval import RetrievedDocument


class Stage(str, enum.Enum):
    """Stages of the decision workflow."""

    ANALYZE = "analyze"
    RETRIEVE = "retrieve"
    GRADE = "grade"
    GENERATE = "generate"


@dataclass
class ExecutionState:
    """Mutable state of a single run. Build with ExecutionState.start()."""

    user_query: str
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    needs_retrieval: bool | None = None
    search_query: str = ""
    retrieved_documents: list[RetrievedDocument] = field(default_factory=list)
    retrieval_accepted: bool | None = None
    rejection_reason: str = ""
    final_answer: str = ""
    answered: bool = False
    retry_count: int = 0
    max_retries: int = 0
    recorder: ExplainabilityRecorder = field(default_factory=ExplainabilityRecorder)

    @classmethod
    def start(cls, query: object, max_retries: int = 0) -> ExecutionState:
        """Validate `query` and return a fresh state with all defaults."""
        if not isinstance(query, str) or not query.strip():
            raise InvalidQueryError("query must be a non-empty string")
        return cls(user_query=query.strip(), max_retries=max_retries)

    def decide_retrieval(self, needed: bool, search_query: str | None = None) -> None:
        if self.needs_retrieval is not None:
            raise StateTransitionError("retrieval decision already made")
        self.needs_retrieval = needed
        if needed:
            self.search_query = search_query or self.user_query

    def add_documents(self, documents: list[RetrievedDocument]) -> None:
        if self.needs_retrieval is not True:
            raise StateTransitionError("documents added without a retrieval decision")
        self.retrieved_documents.extend(documents)

    def grade(self, accepted: bool, reason: str = "") -> None:
        if self.retrieval_accepted is not None:
            raise StateTransitionError("retrieval already graded")
        if accepted and not self.retrieved_documents:
            raise StateTransitionError("cannot accept an empty document set")
        self.retrieval_accepted = accepted
        self.rejection_reason = "" if accepted else reason

    def finish(self, answer: str) -> None:
        if self.answered:
            raise StateTransitionError("final answer already set")
        self.final_answer = answer
        self.answered = True
