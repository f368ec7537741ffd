# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - query.py: one query through the workflow or the tool loop
#   - compare.py: both strategies on the same query, concurrently
#   - system.py: health probes and service info
#   - deps.py: strategy construction as FastAPI dependencies
# =============================================================================
