# =============================================================================
# Agent Runtime — Shared Invocation Contract for Every Agent
# =============================================================================
#
# Each agent composes one AgentRuntime rather than inheriting from a base
# class. The runtime owns the three things no agent may re-implement:
#
#   1. Cancellation — the token is checked before dispatch (the provider is
#      never called) and again after the response arrives (the response is
#      discarded and its usage is NOT billed).
#   2. Error normalisation — any provider exception becomes UpstreamFailure
#      carrying the original message; cancellation becomes AgentAborted.
#   3. Cost — surcharge for search calls + token cost at the agent's tier.
#
# DESIGN DECISION: asyncio.Event as the cancellation token.
# It is the closest thing asyncio has to a first-class token: set() to
# cancel, is_set() to check, safe to share between the tasks of one run.
# Cancellation is cooperative; an in-flight HTTP call is never interrupted.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from relevance_agent.errors import AgentAborted, ParseFailure, UpstreamFailure
from relevance_agent.services.llm import LLMProvider, LLMResponse, ModelTier
from relevance_agent.services.pricing import ModelPricing, estimate_cost

logger = logging.getLogger(__name__)

CancellationToken = asyncio.Event


@dataclass(frozen=True)
class CostMeta:
    """Cost side-channel attached to agent results. Never part of the payload."""

    estimated_cost_usd: float
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


ZERO_COST = CostMeta(estimated_cost_usd=0.0)


def raise_if_cancelled(token: CancellationToken | None, step: str) -> None:
    if token is not None and token.is_set():
        raise AgentAborted(step=step)


class AgentRuntime:
    """
    Invokes the remote inference capability on behalf of one agent.

    Args:
        llm: Provider used for every call.
        tier: Model tier the agent runs on; selects model and rates.
        step: Pipeline step name used in logs and error messages.
        pricing: Optional rate override for this agent.
    """

    def __init__(
        self,
        llm: LLMProvider,
        tier: ModelTier,
        step: str,
        pricing: ModelPricing | None = None,
    ) -> None:
        self.llm = llm
        self.tier = tier
        self.step = step
        self._pricing = pricing

    def estimate_cost(
        self,
        input_tokens: int | None,
        output_tokens: int | None,
        has_search: bool,
    ) -> float:
        return estimate_cost(
            self.tier, input_tokens, output_tokens,
            has_search=has_search, pricing=self._pricing,
        )

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        response_schema: dict[str, Any] | None = None,
        web_search: bool = False,
        reasoning_budget: int | None = None,
        token: CancellationToken | None = None,
    ) -> tuple[LLMResponse, CostMeta]:
        """
        Run one model call and price it.

        Raises:
            AgentAborted: Token signalled before dispatch or after the response.
            UpstreamFailure: The provider raised.
        """
        raise_if_cancelled(token, self.step)

        try:
            response = await self.llm.complete(
                prompt,
                self.tier,
                system=system,
                response_schema=response_schema,
                web_search=web_search,
                reasoning_budget=reasoning_budget,
            )
        except Exception as e:
            if token is not None and token.is_set():
                raise AgentAborted(step=self.step) from e
            logger.error("[%s] Generation failed: %s", self.step, e)
            raise UpstreamFailure(str(e), step=self.step) from e

        raise_if_cancelled(token, self.step)

        cost = CostMeta(
            estimated_cost_usd=self.estimate_cost(
                response.input_tokens, response.output_tokens, web_search,
            ),
            prompt_tokens=response.input_tokens,
            completion_tokens=response.output_tokens,
        )
        logger.info(
            "[%s] model=%s tokens=%s+%s search=%s cost=$%.6f",
            self.step, response.model, response.input_tokens,
            response.output_tokens, web_search, cost.estimated_cost_usd,
        )
        return response, cost


# ---------------------------------------------------------------------------
# JSON Helpers
# ---------------------------------------------------------------------------

_LEADING_FENCE = re.compile(r"^```[a-zA-Z]*\s*")
_TRAILING_FENCE = re.compile(r"\s*```$")


def strip_code_fences(text: str) -> str:
    """Remove a Markdown code fence wrapped around a model answer."""
    text = text.strip()
    text = _LEADING_FENCE.sub("", text)
    return _TRAILING_FENCE.sub("", text).strip()


def parse_json_object(text: str, step: str) -> dict[str, Any]:
    """
    Parse a model answer that should be a single JSON object.

    Raises:
        ParseFailure: Not valid JSON, or valid JSON that is not an object.
    """
    try:
        data = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise ParseFailure(f"Response is not valid JSON: {e}", step=step) from e
    if not isinstance(data, dict):
        raise ParseFailure(
            f"Expected a JSON object, got {type(data).__name__}", step=step,
        )
    return data
