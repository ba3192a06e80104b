# =============================================================================
# Router Agent — Does This Query Need Live Web Search?
# =============================================================================
#
# A cheap lightweight-tier classifier run before the context step in
# "smart" mode. Web search costs a flat surcharge per call, so the default
# answer is NO unless the query shows volatility signals.
#
# DESIGN DECISION: Fail toward search.
# If the router call fails or returns garbage, we return needs_search=True
# with cost 0. Paying for a search beats silently producing an ungrounded
# context. Only AgentAborted escapes.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import BaseModel, Field, ValidationError

from relevance_agent.agents.base import (
    AgentRuntime,
    CancellationToken,
    parse_json_object,
)
from relevance_agent.errors import AgentAborted, AgentError
from relevance_agent.services.llm import LLMProvider, ModelTier
from relevance_agent.services.pricing import ModelPricing

logger = logging.getLogger(__name__)

STEP = "router"


@dataclass(frozen=True)
class RouterDecision:
    """Whether the context step should search; consumed by the orchestrator."""

    needs_search: bool
    cost: float
    reason: str = ""


ROUTER_SCHEMA = {
    "type": "object",
    "properties": {
        "needsSearch": {"type": "boolean"},
        "reason": {"type": "string"},
    },
    "required": ["needsSearch", "reason"],
}


class _RouterPayload(BaseModel):
    needs_search: bool = Field(alias="needsSearch")
    reason: str = ""


def build_router_prompt(query: str) -> str:
    return f"""You are a smart query router optimizing for cost and efficiency.
Analyze this search query: "{query}".

Your Goal: Determine if real-time web search is absolutely necessary.
Default to FALSE (Internal Knowledge) unless the query requires real-time \
data or very specific recent knowledge.

CRITERIA FOR "NO SEARCH" (Return false):
- Generic product names (e.g., "tv", "milk", "eggs", "laptop", "shampoo", \
"coffee maker").
- Broad categories (e.g., "running shoes", "red dress", "office chair").
- Common knowledge products where attributes are stable (e.g., \
"aa batteries", "iphone charger").
- Queries where the user intent is obvious from general knowledge \
(e.g. "hdmi cable").

CRITERIA FOR "SEARCH NEEDED" (Return true):
- Specific, complex model numbers (e.g., "Sony XR-65A95L", \
"Samsung S24 Ultra").
- "Best of" queries mentioning a year, "latest" or "new" \
(e.g., "best laptops 2025").
- Highly specific or ambiguous brand names that might be unknown.
- Queries looking for "deals", "stock", "near me", or "price" which \
fluctuates.
- Viral or trending items (e.g. "tiktok leggings").

Respond in JSON: {{ "needsSearch": boolean, "reason": string }}"""


class RouterAgent:
    """Binary search-vs-knowledge classifier on the lightweight tier."""

    def __init__(
        self,
        llm: LLMProvider,
        pricing: ModelPricing | None = None,
    ) -> None:
        self._runtime = AgentRuntime(llm, ModelTier.LIGHTWEIGHT, STEP, pricing)

    async def decide(
        self,
        query: str,
        token: CancellationToken | None = None,
    ) -> RouterDecision:
        try:
            response, cost = await self._runtime.generate(
                build_router_prompt(query),
                response_schema=ROUTER_SCHEMA,
                token=token,
            )
            payload = _RouterPayload.model_validate(
                parse_json_object(response.content, STEP)
            )
        except AgentAborted:
            raise
        except (AgentError, ValidationError) as e:
            logger.warning("Router failed, defaulting to search: %s", e)
            return RouterDecision(
                needs_search=True, cost=0.0, reason="router unavailable",
            )

        logger.info(
            "Router decision for '%s': search=%s (%s)",
            query[:80], payload.needs_search, payload.reason,
        )
        return RouterDecision(
            needs_search=payload.needs_search,
            cost=cost.estimated_cost_usd,
            reason=payload.reason,
        )
