# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - relevance.py: context, extraction, full analysis, cancel, critique
#   - deps.py: orchestrator dependency (overridable in tests)
# =============================================================================
