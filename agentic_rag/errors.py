"""
Error types shared across the service.

Upstream failures (completion, retrieval) raise ServiceError subclasses so
the workflow stages can recover from them locally. InvalidQueryError is
the only error a caller should ever see from a strategy's run().
"""


class ServiceError(Exception):
    """Raised when an external service is unreachable, misconfigured, or errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class CompletionServiceError(ServiceError):
    """The Completion Service call failed."""


class RetrievalServiceError(ServiceError):
    """The Retrieval Service call failed."""


class InvalidQueryError(ValueError):
    """The query is empty or not text. Rejected before any stage runs."""


class StateTransitionError(RuntimeError):
    """A write-once execution state field was assigned twice."""


class RecursionLimitError(RuntimeError):
    """A staged run exceeded its stage-transition limit."""
