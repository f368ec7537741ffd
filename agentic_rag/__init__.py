# =============================================================================
# Agentic RAG Decision Service
# =============================================================================
# Answers a free-text query with an LLM, deciding per query whether to
# consult a document index first, and returns an auditable record of how
# the answer was produced. Two interchangeable strategies share one
# result contract so they can be compared side by side.
#
# Package structure:
#   agentic_rag/
#   ├── api/          → FastAPI route handlers (query, compare, system)
#   ├── agents/       → Strategies: staged workflow and autonomous tool loop,
#   │                    plus execution state, audit trail, normaliser
#   ├── models/       → Pydantic V2 request/response schemas
#   └── services/     → Completion (LLM) and Retrieval service backends
# =============================================================================
