# =============================================================================
# Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Boundary validation: a blank query never reaches a strategy from the HTTP
# layer (422). Strategies validate again, since scripts call them directly.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExecutionOptions(BaseModel):
    """Optional execution parameters accepted by every strategy."""

    max_retries: int | None = Field(
        default=None,
        ge=0,
        description=(
            "Upper bound on retrieval retries. Recorded on the run; the "
            "current stages never loop back to retrieval."
        ),
    )


class QueryRequest(BaseModel):
    """
    Request body for POST /workflow/query, /tool-loop/query and /compare.

    Example:
        {
            "query": "Generate Adobe's brand guidelines summary",
            "options": {"max_retries": 0}
        }
    """

    query: str = Field(
        ...,
        min_length=1,
        max_length=4000,
        description="The natural-language query to answer",
        examples=["Generate Adobe's brand guidelines summary"],
    )
    options: ExecutionOptions = Field(default_factory=ExecutionOptions)

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"query": "Explain recursion in computer science"},
                {
                    "query": "Generate a PRD draft for Adobe Photoshop's homepage redesign",
                    "options": {"max_retries": 0},
                },
            ]
        }
    )

    @field_validator("query")
    @classmethod
    def _strip_and_require_text(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("query must be a non-empty string")
        return stripped
