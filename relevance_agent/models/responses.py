# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the API. Each has a
# `from_*` constructor mapping the agents' frozen dataclasses, so route
# handlers stay thin.
#
# DESIGN DECISION: Cost is a separate field, never mixed into the payload.
# Clients can ignore it; figures are estimates, not billing records.
# =============================================================================

from __future__ import annotations

from pydantic import BaseModel, Field

from relevance_agent.agents.analyst import AnalysisResult
from relevance_agent.agents.base import CostMeta
from relevance_agent.agents.context import ContextResult
from relevance_agent.agents.critic import CriticEvaluation
from relevance_agent.agents.extraction import ProductRecord
from relevance_agent.agents.orchestrator import CostBreakdown, WorkflowResult


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class CostResponse(BaseModel):
    estimated_cost_usd: float
    prompt_tokens: int | None = None
    completion_tokens: int | None = None

    @classmethod
    def from_meta(cls, meta: CostMeta | None) -> CostResponse:
        if meta is None:
            return cls(estimated_cost_usd=0.0)
        return cls(
            estimated_cost_usd=meta.estimated_cost_usd,
            prompt_tokens=meta.prompt_tokens,
            completion_tokens=meta.completion_tokens,
        )


class CitationResponse(BaseModel):
    uri: str
    title: str


class ContextResponse(BaseModel):
    """Intent overview; `citations` is always empty for KNOWLEDGE."""

    overview: str
    citations: list[CitationResponse] = Field(default_factory=list)
    source: str = Field(description="SEARCH or KNOWLEDGE")
    cost: CostResponse

    @classmethod
    def from_result(cls, result: ContextResult) -> ContextResponse:
        return cls(
            overview=result.overview,
            citations=[
                CitationResponse(uri=c.uri, title=c.title)
                for c in result.citations
            ],
            source=result.source.value,
            cost=CostResponse.from_meta(result.cost),
        )


class ProductResponse(BaseModel):
    name: str
    description: str
    price: str
    category: str
    brand: str
    size: str
    color: str
    gender_audience: str
    badge: str
    cost: CostResponse

    @classmethod
    def from_record(cls, record: ProductRecord) -> ProductResponse:
        return cls(
            name=record.name,
            description=record.description,
            price=record.price,
            category=record.category,
            brand=record.brand,
            size=record.size,
            color=record.color,
            gender_audience=record.gender_audience,
            badge=record.badge,
            cost=CostResponse.from_meta(record.cost),
        )


class AnalysisResponse(BaseModel):
    relevance_score: int = Field(ge=0, le=100)
    band: str = Field(description="Embarrassing, Bad, Okay, Good or Excellent")
    reasoning: str
    key_matches: list[str]
    missing_features: list[str]
    customer_utility_assessment: str
    human_review_needed: bool
    review_reason: str
    cost: CostResponse

    @classmethod
    def from_result(cls, result: AnalysisResult) -> AnalysisResponse:
        return cls(
            relevance_score=result.relevance_score,
            band=result.band.value,
            reasoning=result.reasoning,
            key_matches=list(result.key_matches),
            missing_features=list(result.missing_features),
            customer_utility_assessment=result.customer_utility_assessment,
            human_review_needed=result.human_review_needed,
            review_reason=result.review_reason,
            cost=CostResponse.from_meta(result.cost),
        )


class CostBreakdownResponse(BaseModel):
    router_cost_usd: float
    context_cost_usd: float
    extraction_cost_usd: float
    analysis_cost_usd: float
    total_cost_usd: float

    @classmethod
    def from_breakdown(cls, costs: CostBreakdown) -> CostBreakdownResponse:
        return cls(
            router_cost_usd=costs.router,
            context_cost_usd=costs.context,
            extraction_cost_usd=costs.extraction,
            analysis_cost_usd=costs.analysis,
            total_cost_usd=costs.total,
        )


class WorkflowResponse(BaseModel):
    """Response for POST /analyse."""

    session_id: str
    needs_search: bool
    context: ContextResponse
    product: ProductResponse
    analysis: AnalysisResponse
    costs: CostBreakdownResponse
    extraction_error: str | None = Field(
        default=None,
        description="Set when extraction failed and the supplied product was used",
    )

    @classmethod
    def from_result(cls, session_id: str, result: WorkflowResult) -> WorkflowResponse:
        return cls(
            session_id=session_id,
            needs_search=result.needs_search,
            context=ContextResponse.from_result(result.context),
            product=ProductResponse.from_record(result.product),
            analysis=AnalysisResponse.from_result(result.analysis),
            costs=CostBreakdownResponse.from_breakdown(result.costs),
            extraction_error=result.extraction_error,
        )


class CancelResponse(BaseModel):
    session_id: str
    cancelled: bool


class CritiqueResponse(BaseModel):
    satisfactory: bool
    score_adjustment_needed: bool
    critique: str
    suggestions: list[str]
    cost: CostResponse

    @classmethod
    def from_evaluation(cls, evaluation: CriticEvaluation) -> CritiqueResponse:
        return cls(
            satisfactory=evaluation.satisfactory,
            score_adjustment_needed=evaluation.score_adjustment_needed,
            critique=evaluation.critique,
            suggestions=list(evaluation.suggestions),
            cost=CostResponse.from_meta(evaluation.cost),
        )
