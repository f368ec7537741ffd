# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response contracts shared by the strategies, the comparison
# runner, and the HTTP layer:
#   - requests.py: QueryRequest, ExecutionOptions
#   - responses.py: ExecutionResult (the common result contract),
#     CompareResponse, HealthResponse, InfoResponse
# =============================================================================
