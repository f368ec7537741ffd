# =============================================================================
# Agents Package — Retrieval Decision Strategies
# =============================================================================
# Two strategies answer the same query and produce the same ExecutionResult:
#   - workflow.py: fixed analyze → retrieve → grade → generate state machine
#   - tool_loop.py: model-driven loop over search/evaluate capabilities
#
# Shared pieces:
#   - state.py: per-run ExecutionState with write-once transitions
#   - explainability.py: append-only step recorder and summary
#   - normalizer.py: ExecutionState → ExecutionResult
#   - comparison.py: runs N strategies concurrently on one query
#   - prompts.py / verdicts.py: prompt text and free-text verdict parsing
# =============================================================================
