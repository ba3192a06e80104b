# =============================================================================
# API Dependencies — Orchestrator Injection
# =============================================================================
#
# Route handlers receive the orchestrator through Depends(get_orchestrator_dep)
# so tests can swap in an orchestrator built on a fake provider via
# app.dependency_overrides.
#
# DESIGN DECISION: Configuration errors surface here, before any model call.
# Building the orchestrator builds the provider; a missing API key raises
# ConfigurationError, which becomes a 503 with an actionable message.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import HTTPException

from relevance_agent.agents.orchestrator import Orchestrator, get_orchestrator
from relevance_agent.errors import ConfigurationError

logger = logging.getLogger(__name__)


def get_orchestrator_dep() -> Orchestrator:
    """
    FastAPI dependency returning the process-wide orchestrator.

    Raises:
        HTTPException 503: The LLM provider is not configured.
    """
    try:
        return get_orchestrator()
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e
