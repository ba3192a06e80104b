# =============================================================================
# Relevance API — Context, Extraction, Full Workflow, Critique
# =============================================================================
#
# Endpoints:
#   POST /context                   — intent overview only
#   POST /extract                   — product URL → structured record
#   POST /analyse                   — full two-branch workflow + verdict
#   POST /analyse/{session_id}/cancel — cancel a session's in-flight run
#   POST /critique                  — second opinion on an analysis
#
# Error handling:
#   - AgentAborted       → 409 (run cancelled or superseded; not a failure)
#   - ParseFailure /
#     UpstreamFailure    → 502, naming the step; the request can be retried
#   - ConfigurationError → 503 (raised by the orchestrator dependency)
#
# Handlers validate the request, map it onto the orchestrator's dataclasses
# and translate errors into status codes.
# =============================================================================

from __future__ import annotations

import logging
import uuid
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException

from relevance_agent.agents.analyst import AnalysisResult
from relevance_agent.agents.extraction import ProductRecord
from relevance_agent.agents.orchestrator import Orchestrator, RouterMode
from relevance_agent.api.deps import get_orchestrator_dep
from relevance_agent.config import settings
from relevance_agent.errors import AgentAborted, AgentError
from relevance_agent.models.requests import (
    AnalyseRequest,
    ContextRequest,
    CritiqueRequest,
    ExtractRequest,
    ProductPayload,
)
from relevance_agent.models.responses import (
    CancelResponse,
    ContextResponse,
    CritiqueResponse,
    ProductResponse,
    WorkflowResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Relevance"])


def _router_mode(value: str | None) -> RouterMode:
    return RouterMode(value or settings.default_router_mode)


def _to_record(payload: ProductPayload) -> ProductRecord:
    return ProductRecord(**payload.model_dump())


def _raise_http(e: AgentError) -> NoReturn:
    if isinstance(e, AgentAborted):
        logger.info("Run aborted (step=%s)", e.step)
        raise HTTPException(
            status_code=409,
            detail="The run was cancelled or superseded by a newer request.",
        ) from e

    step = e.step or "workflow"
    logger.error("Step '%s' failed: %s", step, e)
    raise HTTPException(
        status_code=502,
        detail=f"The {step} step failed: {e}. Please retry.",
    ) from e


# ---------------------------------------------------------------------------
# POST /context
# ---------------------------------------------------------------------------


@router.post(
    "/context",
    response_model=ContextResponse,
    summary="Summarise the shopper intent behind a query",
)
async def context_endpoint(
    request: ContextRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator_dep),
) -> ContextResponse:
    try:
        result = await orchestrator.run_context_only(
            request.query, _router_mode(request.router_mode),
        )
    except AgentError as e:
        _raise_http(e)
    return ContextResponse.from_result(result)


# ---------------------------------------------------------------------------
# POST /extract
# ---------------------------------------------------------------------------


@router.post(
    "/extract",
    response_model=ProductResponse,
    summary="Extract structured product details from a product page URL",
)
async def extract_endpoint(
    request: ExtractRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator_dep),
) -> ProductResponse:
    try:
        record = await orchestrator.run_extraction_only(request.url, request.query)
    except AgentError as e:
        _raise_http(e)
    return ProductResponse.from_record(record)


# ---------------------------------------------------------------------------
# POST /analyse
# ---------------------------------------------------------------------------


@router.post(
    "/analyse",
    response_model=WorkflowResponse,
    summary="Score a product's relevance to a search query",
    description=(
        "Runs context gathering and (when a URL is given) product extraction "
        "in parallel, then a deep relevance judgment on the merged product. "
        "A new request with the same session_id cancels the previous one."
    ),
)
async def analyse_endpoint(
    request: AnalyseRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator_dep),
) -> WorkflowResponse:
    session_id = request.session_id or uuid.uuid4().hex

    logger.info(
        "Analyse request: query='%s', url=%s, session=%s",
        request.query[:80], request.url, session_id,
    )

    try:
        result = await orchestrator.run_full_workflow(
            query=request.query,
            url=request.url,
            fallback_product=_to_record(request.product),
            router_mode=_router_mode(request.router_mode),
            session_id=session_id,
        )
    except AgentError as e:
        _raise_http(e)
    except Exception as e:
        # Graph runtime errors outside the agent taxonomy
        logger.exception("Workflow failed: %s", e)
        raise HTTPException(
            status_code=502,
            detail=f"Workflow error: {e}",
        ) from e

    return WorkflowResponse.from_result(session_id, result)


@router.post(
    "/analyse/{session_id}/cancel",
    response_model=CancelResponse,
    summary="Cancel the in-flight run of a session",
)
async def cancel_endpoint(
    session_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator_dep),
) -> CancelResponse:
    return CancelResponse(
        session_id=session_id,
        cancelled=orchestrator.cancel(session_id),
    )


# ---------------------------------------------------------------------------
# POST /critique
# ---------------------------------------------------------------------------


@router.post(
    "/critique",
    response_model=CritiqueResponse,
    summary="Ask a reviewer model whether an analysis holds up",
)
async def critique_endpoint(
    request: CritiqueRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator_dep),
) -> CritiqueResponse:
    if not settings.critic_enabled:
        raise HTTPException(status_code=404, detail="Critic is disabled.")

    analysis = AnalysisResult(
        relevance_score=request.analysis.relevance_score,
        reasoning=request.analysis.reasoning,
        key_matches=tuple(request.analysis.key_matches),
        missing_features=tuple(request.analysis.missing_features),
        customer_utility_assessment=request.analysis.customer_utility_assessment,
        human_review_needed=request.analysis.human_review_needed,
        review_reason=request.analysis.review_reason,
    )

    try:
        evaluation = await orchestrator.run_critique(
            request.query,
            _to_record(request.product),
            request.context_overview,
            analysis,
        )
    except AgentError as e:
        _raise_http(e)

    return CritiqueResponse.from_evaluation(evaluation)
