# =============================================================================
# Application Entry Point — FastAPI App
# =============================================================================
#
# Usage:
#   uvicorn relevance_agent.main:app --reload --port 8000
#
# Logging is configured once here from LOG_LEVEL; every other module only
# calls logging.getLogger(__name__).
# =============================================================================

import logging

from fastapi import FastAPI

from relevance_agent.api.relevance import router as relevance_router
from relevance_agent.config import settings
from relevance_agent.models.responses import HealthResponse

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Scores how relevant a product is to a shopper's search query. "
        "A router decides whether live web search is needed, context and "
        "product extraction run in parallel, and an analyst model returns "
        "a 0-100 score with reasoning."
    ),
    debug=settings.debug,
)

app.include_router(relevance_router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)


logger.info(
    "%s v%s ready (provider=%s)",
    settings.app_name, settings.app_version, settings.llm_provider,
)
