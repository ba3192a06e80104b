# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API. These are separate from the agents'
# frozen dataclasses so the public contract can evolve independently.
# =============================================================================
