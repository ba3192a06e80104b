# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API. FastAPI uses
# them for body validation (automatic 422s), OpenAPI docs and type hints.
#
# Field names are snake_case; the agents' camelCase JSON contracts stay
# inside the agents package.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

RouterModeLiteral = Literal["smart", "force-search", "force-knowledge"]


class ProductPayload(BaseModel):
    """
    Product attributes supplied by the caller.

    Used as the fallback record when no URL is given or extraction fails.
    Every field defaults to "".
    """

    name: str = ""
    description: str = ""
    price: str = ""
    category: str = ""
    brand: str = ""
    size: str = ""
    color: str = ""
    gender_audience: str = ""
    badge: str = ""


class ContextRequest(BaseModel):
    """Request body for POST /context — intent overview only."""

    query: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="The shopper's search query, exactly as typed",
        examples=["red dress"],
    )
    router_mode: RouterModeLiteral | None = Field(
        default=None,
        description=(
            "'smart' lets the router decide whether to search, "
            "'force-search' / 'force-knowledge' skip the router. "
            "Defaults to DEFAULT_ROUTER_MODE."
        ),
    )


class ExtractRequest(BaseModel):
    """Request body for POST /extract — product page → product record."""

    url: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Product page URL",
        examples=["https://www.example-store.com/ip/red-maxi-dress/123"],
    )
    query: str | None = Field(
        default=None,
        max_length=500,
        description="Optional search query used to focus the extraction",
    )


class AnalyseRequest(BaseModel):
    """
    Request body for POST /analyse — the full relevance workflow.

    Example:
        {
            "query": "size 8 running shoes",
            "product": {"name": "Trail Runner", "size": "6",
                        "category": "Footwear"},
            "router_mode": "force-knowledge"
        }
    """

    query: str = Field(..., min_length=1, max_length=500)
    url: str | None = Field(
        default=None,
        max_length=2000,
        description="Product page to extract from. Overrides `product` on success.",
    )
    product: ProductPayload = Field(default_factory=ProductPayload)
    router_mode: RouterModeLiteral | None = None

    # A new run for the same session cancels the previous one still in
    # flight. Omit it and the run gets a session of its own.
    session_id: str | None = Field(default=None, max_length=128)

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "query": "red dress",
                    "product": {
                        "name": "Red Maxi Dress",
                        "brand": "Acme",
                        "gender_audience": "Women",
                        "size": "M",
                        "color": "Red",
                    },
                    "router_mode": "force-knowledge",
                },
                {
                    "query": "best noise cancelling headphones 2025",
                    "url": "https://www.example-store.com/ip/headphones/456",
                    "router_mode": "smart",
                    "session_id": "tab-1",
                },
            ]
        }
    )


class AnalysisPayload(BaseModel):
    """A finished analysis, as returned by POST /analyse."""

    relevance_score: int = Field(..., ge=0, le=100)
    reasoning: str
    key_matches: list[str] = Field(default_factory=list)
    missing_features: list[str] = Field(default_factory=list)
    customer_utility_assessment: str = ""
    human_review_needed: bool = False
    review_reason: str = ""


class CritiqueRequest(BaseModel):
    """Request body for POST /critique — second opinion on an analysis."""

    query: str = Field(..., min_length=1, max_length=500)
    product: ProductPayload
    context_overview: str = ""
    analysis: AnalysisPayload
