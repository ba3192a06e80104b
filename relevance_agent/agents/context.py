# =============================================================================
# Context Agent — What Is the Shopper Looking For?
# =============================================================================
#
# Produces a 2–3 sentence "intent overview" for a query, used as background
# by the analysis step. The caller picks the mode; the agent never decides:
#
#   SEARCH    — web search enabled, overview grounded in live pages,
#               cited pages returned as citations (+ search surcharge)
#   KNOWLEDGE — model's general knowledge only, never any citations
#
# Both prompts demand a literal reading of the query: a query that happens
# to be a brand name must not be "corrected" into a dictionary word.
#
# DESIGN DECISION: Cache key is (normalised query, needs_search).
# The two modes produce different kinds of context, so switching mode for
# the same query is deliberately a cache miss.
#
# DESIGN DECISION: Degrade instead of failing.
# If the call fails, the workflow continues with a placeholder overview so
# the analysis can still run on the product data alone.
# =============================================================================

from __future__ import annotations

import dataclasses
import enum
import logging
from dataclasses import dataclass

from relevance_agent.agents.base import (
    ZERO_COST,
    AgentRuntime,
    CancellationToken,
    CostMeta,
    raise_if_cancelled,
)
from relevance_agent.errors import AgentAborted, AgentError
from relevance_agent.services.cache import ResultCache, normalize_query
from relevance_agent.services.llm import LLMProvider, ModelTier, WebCitation
from relevance_agent.services.pricing import ModelPricing

logger = logging.getLogger(__name__)

STEP = "context"

CONTEXT_UNAVAILABLE = "context unavailable"


class ContextSource(str, enum.Enum):
    SEARCH = "SEARCH"
    KNOWLEDGE = "KNOWLEDGE"


@dataclass(frozen=True)
class Citation:
    """A page that grounded the overview. `uri` is never empty."""

    uri: str
    title: str


@dataclass(frozen=True)
class ContextResult:
    """Intent overview for a query. `citations` is empty for KNOWLEDGE."""

    overview: str
    citations: tuple[Citation, ...]
    source: ContextSource
    cost: CostMeta = ZERO_COST


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


def build_search_prompt(query: str) -> str:
    return f"""Perform a web search to understand the current context and \
user intent for the query: "{query}".

IMPORTANT:
1. Assume there is no spell check issue. Interpret the query exactly as it \
is written; do not correct it into a different word.
2. Investigate how this query is handled on major retailer sites alongside \
general web search results.

What are customers usually looking for when they search this? Are there \
specific brands, features, or price points associated with this query \
currently?
Summarize the intent in 2-3 sentences."""


def build_knowledge_prompt(query: str) -> str:
    return f"""You are an e-commerce expert. The shopping customer has \
searched for: "{query}".

IMPORTANT: Assume there is no spell check issue. Interpret the query exactly \
as it is written. If the query is itself a brand or product name, treat it \
as that brand or product even when it resembles a common word.

Based on general knowledge, explain what customers are looking for when \
they search this. Use the intent explicitly expressed by the query rather \
than an implicitly inferred one.

Summarize the intent in 2-3 sentences."""


def _to_citations(raw: list[WebCitation]) -> tuple[Citation, ...]:
    """Drop citations without a URI; fall back to the URI as title."""
    return tuple(
        Citation(uri=c.uri, title=c.title or c.uri)
        for c in raw
        if c.uri
    )


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class ContextAgent:
    """Intent overview synthesis on the lightweight tier."""

    def __init__(
        self,
        llm: LLMProvider,
        cache: ResultCache[ContextResult] | None = None,
        pricing: ModelPricing | None = None,
    ) -> None:
        self._runtime = AgentRuntime(llm, ModelTier.LIGHTWEIGHT, STEP, pricing)
        self._cache = cache if cache is not None else ResultCache("context")

    async def get_context(
        self,
        query: str,
        needs_search: bool,
        token: CancellationToken | None = None,
    ) -> ContextResult:
        """
        Return the intent overview for `query` in the requested mode.

        Cache hits are returned with zero cost (no model call was made).

        Raises:
            AgentAborted: The token was signalled. All other failures yield
                the "context unavailable" placeholder.
        """
        raise_if_cancelled(token, STEP)

        cache_key = (normalize_query(query), needs_search)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.info("Context cache hit for '%s'", query[:80])
            return dataclasses.replace(cached, cost=ZERO_COST)

        prompt = (
            build_search_prompt(query)
            if needs_search
            else build_knowledge_prompt(query)
        )

        try:
            response, cost = await self._runtime.generate(
                prompt, web_search=needs_search, token=token,
            )
        except AgentAborted:
            raise
        except AgentError as e:
            logger.warning("Context agent failed, degrading: %s", e)
            return ContextResult(
                overview=CONTEXT_UNAVAILABLE,
                citations=(),
                source=ContextSource.KNOWLEDGE,
            )

        source = ContextSource.SEARCH if needs_search else ContextSource.KNOWLEDGE
        overview = response.content.strip()
        if not overview:
            # The call was made and is billed, but an empty answer is not kept
            logger.warning("Context agent returned no text for '%s'", query[:80])
            return ContextResult(
                overview=CONTEXT_UNAVAILABLE,
                citations=(),
                source=source,
                cost=cost,
            )

        result = ContextResult(
            overview=overview,
            citations=_to_citations(response.citations) if needs_search else (),
            source=source,
            cost=cost,
        )
        self._cache.put(cache_key, result)

        logger.info(
            "Context ready for '%s': source=%s, citations=%d",
            query[:80], result.source.value, len(result.citations),
        )
        return result
