# =============================================================================
# Response Models — Pydantic V2 Schemas
# =============================================================================
#
# ExecutionResult is the one contract both strategies return. The HTTP
# layer, scripts, and the comparison runner depend only on these shapes.
#
# DESIGN DECISION: Same shape regardless of strategy.
# A staged-workflow result and a tool-loop result differ only in their
# values (steps, decision points, metadata.strategy_name), never in their
# fields. That is what makes side-by-side comparison meaningful.
# =============================================================================

from typing import Any

from pydantic import BaseModel, Field


class ExecutionStepRecord(BaseModel):
    """One entry of the audit trail."""

    step: str = Field(description="Stage or capability name")
    timestamp: str = Field(description="ISO-8601 UTC time the step was recorded")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Inputs (and, for capabilities, outcome) of the step",
    )


class DecisionPoints(BaseModel):
    """The branching decisions taken during a run."""

    needs_retrieval: bool | None = Field(
        description="Whether retrieval was judged useful. Null if never decided.",
    )
    retrieval_accepted: bool | None = Field(
        description="Whether retrieved documents were used. Null if never graded.",
    )
    retry_count: int = Field(description="Retrieval retries performed")


class RetrievalDetails(BaseModel):
    """Present only when retrieval was attempted."""

    search_query: str
    documents_found: int
    top_document_scores: list[float] = Field(
        description="Scores of the first three documents, in retrieval order",
    )


class Explainability(BaseModel):
    """Structured, replayable account of a run."""

    execution_steps: list[ExecutionStepRecord]
    decision_points: DecisionPoints
    retrieval_details: RetrievalDetails | None = None
    rejection_reason: str | None = None


class ExecutionMetadata(BaseModel):
    execution_time_ms: int
    timestamp: str
    strategy_name: str
    workflow_version: str


class ExecutionResult(BaseModel):
    """
    Response for POST /workflow/query and POST /tool-loop/query.

    Example:
        {
            "session_id": "9b6f...",
            "query": "Explain recursion in computer science",
            "answer": "Recursion is ...",
            "explainability": {
                "execution_steps": [
                    {"step": "analyze", "timestamp": "...", "details": {...}},
                    {"step": "generate", "timestamp": "...", "details": {...}}
                ],
                "decision_points": {
                    "needs_retrieval": false,
                    "retrieval_accepted": null,
                    "retry_count": 0
                },
                "retrieval_details": null,
                "rejection_reason": null
            },
            "metadata": {
                "execution_time_ms": 812,
                "timestamp": "...",
                "strategy_name": "workflow",
                "workflow_version": "1.0.0"
            }
        }
    """

    session_id: str
    query: str
    answer: str
    explainability: Explainability
    metadata: ExecutionMetadata


# ---------------------------------------------------------------------------
# Strategy Comparison
# ---------------------------------------------------------------------------


class StrategyOutcome(BaseModel):
    """One leg of POST /compare."""

    strategy_name: str
    result: ExecutionResult | None = None
    error: str | None = Field(
        default=None,
        description="Error message if this strategy leg failed.",
    )


class PerformanceComparison(BaseModel):
    execution_time_ms: dict[str, int] = Field(
        description="Per-strategy execution time, failed legs included",
    )
    fastest_strategy: str | None = None
    total_time_ms: int = Field(
        description="Wall-clock time for all strategies (parallel execution)",
    )


class CompareResponse(BaseModel):
    """Response for POST /compare: side-by-side strategy results."""

    query: str
    results: list[StrategyOutcome]
    performance: PerformanceComparison


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = Field(description="'healthy' or 'unhealthy'")
    services: dict[str, bool]
    version: str
    timestamp: str


class StrategyInfo(BaseModel):
    description: str
    endpoint: str
    workflow_version: str


class InfoResponse(BaseModel):
    """Response for GET /info."""

    name: str
    version: str
    description: str
    strategies: dict[str, StrategyInfo]
    endpoints: list[str]
