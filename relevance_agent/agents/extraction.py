# =============================================================================
# Extraction Agent — Product Page URL → Structured ProductRecord
# =============================================================================
#
# Uses a search-augmented call so the model can look up the page (or the
# product named in its URL) and answer with a bare JSON object.
#
# Parsing, in order:
#   1. Strip leading/trailing Markdown code fences.
#   2. Empty text → all-empty ProductRecord carrying the observed cost.
#   3. Invalid JSON (or JSON that is not an object) → ParseFailure. A garbled
#      record would corrupt the analysis, so this is never degraded.
#   4. Every expected field defaults to "", so downstream code never has to
#      tell "missing" from "empty".
#
# DESIGN DECISION: Cache key is the URL alone.
# The query shapes the prompt but is not part of the key, so a second query
# against the same URL reuses the first extraction. Kept as-is; see
# DESIGN.md (open question).
# =============================================================================

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any

from relevance_agent.agents.base import (
    ZERO_COST,
    AgentRuntime,
    CancellationToken,
    CostMeta,
    parse_json_object,
    raise_if_cancelled,
    strip_code_fences,
)
from relevance_agent.errors import AgentAborted, AgentError
from relevance_agent.services.cache import ResultCache
from relevance_agent.services.llm import LLMProvider, ModelTier
from relevance_agent.services.pricing import ModelPricing

logger = logging.getLogger(__name__)

STEP = "extraction"


@dataclass(frozen=True)
class ProductRecord:
    """Product attributes. Unknown values are "" and never None."""

    name: str = ""
    description: str = ""
    price: str = ""
    category: str = ""
    brand: str = ""
    size: str = ""
    color: str = ""
    gender_audience: str = ""
    badge: str = ""
    cost: CostMeta | None = None


PRODUCT_FIELDS = (
    "name", "description", "price", "category", "brand",
    "size", "color", "gender_audience", "badge",
)

# JSON keys the model may use for each field, first match wins
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "gender_audience": ("gender", "genderAudience", "gender_audience"),
}


def build_extraction_prompt(url: str, query: str | None = None) -> str:
    focus = (
        f'\nThe shopper searched for "{query}". Pay particular attention '
        "to the attributes that matter for that search (size, color, "
        "audience, brand).\n"
        if query
        else ""
    )
    return f"""I need to extract product details for an e-commerce item.

Here is the link provided: "{url}"
{focus}
Please perform a web search for this URL or the product keywords contained \
within it to find the most accurate and up-to-date information.

Task:
1. Identify the product name, price, brand, and key attributes.
2. Return the data strictly as a JSON object.
3. Do NOT use markdown code blocks. Just the raw JSON string.

Required JSON Structure:
{{
  "name": "string",
  "description": "string (summary)",
  "price": "string",
  "category": "string",
  "brand": "string",
  "size": "string (comma separated)",
  "color": "string (comma separated)",
  "gender": "string (Men, Women, etc)",
  "badge": "string (optional, e.g. Best Seller)"
}}

If you cannot find the specific product, try to infer the category and \
brand from the URL itself, or return empty strings for unknown fields."""


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(_as_text(v) for v in value if v is not None)
    return str(value).strip()


def record_from_payload(
    payload: dict[str, Any],
    cost: CostMeta | None = None,
) -> ProductRecord:
    """Build a ProductRecord from parsed JSON, defaulting absent fields."""
    values = {}
    for name in PRODUCT_FIELDS:
        raw = None
        for key in _FIELD_ALIASES.get(name, (name,)):
            if payload.get(key) is not None:
                raw = payload[key]
                break
        values[name] = _as_text(raw)
    return ProductRecord(**values, cost=cost)


class ExtractionAgent:
    """Search-grounded product extraction on the lightweight tier."""

    def __init__(
        self,
        llm: LLMProvider,
        cache: ResultCache[ProductRecord] | None = None,
        pricing: ModelPricing | None = None,
    ) -> None:
        self._runtime = AgentRuntime(llm, ModelTier.LIGHTWEIGHT, STEP, pricing)
        self._cache = cache if cache is not None else ResultCache("extraction")

    async def extract(
        self,
        url: str,
        query: str | None = None,
        token: CancellationToken | None = None,
    ) -> ProductRecord:
        """
        Extract a ProductRecord for the product at `url`.

        Raises:
            AgentAborted: The token was signalled.
            ParseFailure / UpstreamFailure: Re-raised with a user-facing
                message naming the URL, tagged step="extraction".
        """
        raise_if_cancelled(token, STEP)

        cache_key = url.strip()
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.info("Extraction cache hit for %s", cache_key)
            return dataclasses.replace(cached, cost=ZERO_COST)

        try:
            response, cost = await self._runtime.generate(
                build_extraction_prompt(url, query),
                web_search=True,
                token=token,
            )

            text = strip_code_fences(response.content)
            if not text:
                logger.warning("Extraction returned no text for %s", url)
                return ProductRecord(cost=cost)

            record = record_from_payload(parse_json_object(text, STEP), cost)

        except AgentAborted:
            raise
        except AgentError as e:
            logger.error("Extraction failed for %s: %s", url, e)
            raise type(e)(
                f"Could not extract product details from {url}. The URL "
                f"might be invalid or not indexable by web search. ({e})",
                step=STEP,
            ) from e

        self._cache.put(cache_key, record)
        logger.info("Extracted '%s' (%s) from %s", record.name, record.brand, url)
        return record
