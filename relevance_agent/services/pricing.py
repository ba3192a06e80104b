# =============================================================================
# Tier Pricing Registry — Cost Estimation for Agent Calls
# =============================================================================
#
# Maps a model tier → per-token costs in USD, plus a flat surcharge for every
# call that enables the web-search tool.
#
# DESIGN DECISION: Static dict rather than database or config file.
# Pricing changes rarely, lookups are free, and the history lives in git.
#
# DESIGN DECISION: Priced by TIER, not by model name.
# Agents declare a tier at construction; the provider decides which model
# serves it. Figures are estimates for display, never a billing ledger.
#
# cost = (search ? SEARCH_SURCHARGE_USD : 0)
#        + input_tokens  * input_cost_per_token
#        + output_tokens * output_cost_per_token
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass

from relevance_agent.services.llm import ModelTier

# Flat estimate per search-augmented call (~$35 per 1,000 requests)
SEARCH_SURCHARGE_USD = 0.035


@dataclass(frozen=True)
class ModelPricing:
    """Per-token costs for a model tier."""

    input_cost_per_token: float    # USD per input token
    output_cost_per_token: float   # USD per output token
    label: str                     # Human-readable tier name


PRICING_REGISTRY: dict[ModelTier, ModelPricing] = {
    ModelTier.LIGHTWEIGHT: ModelPricing(
        0.075 / 1_000_000, 0.30 / 1_000_000, "Lightweight",
    ),
    ModelTier.HEAVYWEIGHT: ModelPricing(
        3.50 / 1_000_000, 10.50 / 1_000_000, "Heavyweight",
    ),
}


def estimate_cost(
    tier: ModelTier,
    input_tokens: int | None,
    output_tokens: int | None,
    has_search: bool = False,
    pricing: ModelPricing | None = None,
) -> float:
    """
    Calculate estimated cost in USD for one model call.

    Missing usage counters (None) count as zero tokens, so a search call
    that reported no usage still costs the surcharge.

    Args:
        tier: Tier the calling agent declared.
        input_tokens: Prompt tokens reported by the provider.
        output_tokens: Completion tokens reported by the provider.
        has_search: Whether the web-search tool was enabled for the call.
        pricing: Optional per-agent override of the registry rates.
    """
    rates = pricing or PRICING_REGISTRY[tier]
    cost = SEARCH_SURCHARGE_USD if has_search else 0.0
    cost += rates.input_cost_per_token * (input_tokens or 0)
    cost += rates.output_cost_per_token * (output_tokens or 0)
    return cost


def get_pricing(tier: ModelTier) -> ModelPricing:
    """Look up pricing for a model tier."""
    return PRICING_REGISTRY[tier]
