# =============================================================================
# Multi-Provider LLM Abstraction — Remote Inference Capability
# =============================================================================
#
# A common interface for one-shot completions, with concrete implementations
# for Anthropic (Claude) and OpenAI-compatible APIs.
#
# Every call supports three optional capabilities the agents need:
#   - response_schema  — ask for a JSON object of a given shape
#   - web_search       — let the model ground its answer in live web results
#                        and return the cited pages
#   - reasoning_budget — grant the model extra thinking before answering
#
# DESIGN DECISION: Agents ask for a TIER, not a model.
# LIGHTWEIGHT and HEAVYWEIGHT map to models via config, so switching vendors
# is a .env change and pricing (services/pricing.py) stays tier-based.
#
# DESIGN DECISION: Native SDKs over LangChain wrappers.
# Web search tools, thinking and citation metadata differ per vendor; using
# the SDKs directly keeps those differences in one file.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — web_search server tool, extended thinking
#   ├── OpenAICompatibleProvider — web_search_options, reasoning_effort
#   └── get_llm_provider()       — lazy singleton factory, reads from config
# =============================================================================

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from relevance_agent.config import settings
from relevance_agent.errors import ConfigurationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class ModelTier(str, enum.Enum):
    """Cost/capability class an agent runs on."""

    LIGHTWEIGHT = "lightweight"
    HEAVYWEIGHT = "heavyweight"


@dataclass(frozen=True)
class WebCitation:
    """A web page the model cited while answering with search enabled."""

    uri: str
    title: str | None = None


@dataclass
class LLMResponse:
    """
    Standardised response from any LLM provider.

    Token counts are None when the provider did not report usage.
    """

    content: str
    model: str
    input_tokens: int | None
    output_tokens: int | None
    citations: list[WebCitation] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """Protocol every provider implements. Checked statically by mypy."""

    async def complete(
        self,
        prompt: str,
        tier: ModelTier,
        *,
        system: str | None = None,
        response_schema: dict[str, Any] | None = None,
        web_search: bool = False,
        reasoning_budget: int | None = None,
    ) -> LLMResponse:
        """
        Generate a completion for a single user prompt.

        Args:
            prompt: The user message.
            tier: Which configured model serves the call.
            system: Optional system prompt.
            response_schema: JSON Schema the answer must follow. The provider
                asks for a bare JSON object; validating it is the caller's job.
            web_search: Enable the provider's web search tool.
            reasoning_budget: Thinking tokens to allow before answering.
        """
        ...


def _schema_instruction(schema: dict[str, Any]) -> str:
    return (
        "Respond with ONLY a JSON object (no markdown, no explanation) "
        "matching this JSON Schema:\n" + json.dumps(schema, indent=2)
    )


def _merge_system(system: str | None, schema: dict[str, Any] | None) -> str | None:
    if schema is None:
        return system
    instruction = _schema_instruction(schema)
    return f"{system}\n\n{instruction}" if system else instruction


def _dedupe(citations: list[WebCitation]) -> list[WebCitation]:
    seen: set[str] = set()
    unique = []
    for citation in citations:
        if citation.uri in seen:
            continue
        seen.add(citation.uri)
        unique.append(citation)
    return unique


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native SDK.

    KEY API DIFFERENCES:
    - System prompts are a top-level `system=` kwarg, not a message.
    - Web search is a server-side tool; the answer arrives as several text
      blocks, each carrying the citations it relied on.
    - Extended thinking requires temperature to be left unset and
      max_tokens to exceed the thinking budget. Such calls are streamed.
    """

    def __init__(
        self,
        api_key: str | None = None,
        models: dict[ModelTier, str] | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ConfigurationError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=resolved_key)
        self._models = models or {
            ModelTier.LIGHTWEIGHT: settings.llm_model_lightweight,
            ModelTier.HEAVYWEIGHT: settings.llm_model_heavyweight,
        }
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized AnthropicProvider (lightweight=%s, heavyweight=%s)",
            self._models[ModelTier.LIGHTWEIGHT],
            self._models[ModelTier.HEAVYWEIGHT],
        )

    async def complete(
        self,
        prompt: str,
        tier: ModelTier,
        *,
        system: str | None = None,
        response_schema: dict[str, Any] | None = None,
        web_search: bool = False,
        reasoning_budget: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        kwargs: dict = {
            "model": self._models[tier],
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self._max_tokens,
        }

        merged_system = _merge_system(system, response_schema)
        if merged_system:
            kwargs["system"] = merged_system

        if web_search:
            kwargs["tools"] = [{
                "type": "web_search_20250305",
                "name": "web_search",
                "max_uses": settings.web_search_max_uses,
            }]

        if reasoning_budget:
            kwargs["thinking"] = {
                "type": "enabled",
                "budget_tokens": reasoning_budget,
            }
            kwargs["max_tokens"] = reasoning_budget + self._max_tokens
        else:
            kwargs["temperature"] = self._temperature

        if reasoning_budget:
            # The SDK rejects non-streaming calls whose max_tokens could
            # outlast its request timeout; thinking budgets cross that line.
            async with self._client.messages.stream(**kwargs) as stream:
                response = await stream.get_final_message()
        else:
            response = await self._client.messages.create(**kwargs)

        # Search answers are split across text blocks; thinking and tool
        # blocks are skipped.
        parts: list[str] = []
        citations: list[WebCitation] = []
        for block in response.content:
            if block.type != "text":
                continue
            parts.append(block.text)
            for citation in getattr(block, "citations", None) or []:
                url = getattr(citation, "url", None)
                if url:
                    citations.append(
                        WebCitation(uri=url, title=getattr(citation, "title", None))
                    )

        usage = response.usage
        return LLMResponse(
            content="".join(parts),
            model=response.model,
            input_tokens=usage.input_tokens if usage else None,
            output_tokens=usage.output_tokens if usage else None,
            citations=_dedupe(citations),
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible
# ---------------------------------------------------------------------------


_REASONING_MODEL_PREFIXES = ("o1", "o3", "o4", "gpt-5")


def _is_reasoning_model(model: str) -> bool:
    return model.startswith(_REASONING_MODEL_PREFIXES)


class OpenAICompatibleProvider:
    """
    OpenAI-compatible provider for any API that follows the OpenAI spec.

    Web search is only available on dedicated search models, so search calls
    are routed to `llm_search_model` regardless of tier. Those models reject
    `temperature` and `response_format`, so both are dropped for search
    calls. Reasoning models take `reasoning_effort` and
    `max_completion_tokens` instead of a temperature.
    """

    def __init__(
        self,
        api_key: str | None = None,
        models: dict[ModelTier, str] | None = None,
        base_url: str | None = None,
        search_model: str | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
        if not resolved_key:
            raise ConfigurationError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        resolved_base_url = base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._models = models or {
            ModelTier.LIGHTWEIGHT: settings.llm_model_lightweight,
            ModelTier.HEAVYWEIGHT: settings.llm_model_heavyweight,
        }
        self._search_model = search_model or settings.llm_search_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (lightweight=%s, "
            "heavyweight=%s, base_url=%s)",
            self._models[ModelTier.LIGHTWEIGHT],
            self._models[ModelTier.HEAVYWEIGHT],
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def complete(
        self,
        prompt: str,
        tier: ModelTier,
        *,
        system: str | None = None,
        response_schema: dict[str, Any] | None = None,
        web_search: bool = False,
        reasoning_budget: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using an OpenAI-compatible API."""
        model = self._search_model if web_search else self._models[tier]

        messages: list[dict[str, str]] = []
        merged_system = _merge_system(system, response_schema)
        if merged_system:
            messages.append({"role": "system", "content": merged_system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict = {"model": model, "messages": messages}

        if web_search:
            kwargs["web_search_options"] = {}
            kwargs["max_tokens"] = self._max_tokens
        elif reasoning_budget and _is_reasoning_model(model):
            kwargs["reasoning_effort"] = (
                "high" if reasoning_budget >= 16_384 else "medium"
            )
            kwargs["max_completion_tokens"] = reasoning_budget + self._max_tokens
        else:
            kwargs["temperature"] = self._temperature
            kwargs["max_tokens"] = self._max_tokens

        if response_schema is not None and not web_search:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._client.chat.completions.create(**kwargs)

        message = response.choices[0].message
        citations = []
        for annotation in getattr(message, "annotations", None) or []:
            if annotation.type != "url_citation":
                continue
            cited = annotation.url_citation
            if cited.url:
                citations.append(WebCitation(uri=cited.url, title=cited.title))

        usage = response.usage
        return LLMResponse(
            content=message.content or "",
            model=response.model or model,
            input_tokens=usage.prompt_tokens if usage else None,
            output_tokens=usage.completion_tokens if usage else None,
            citations=_dedupe(citations),
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

# Lazy singleton — avoid re-creating client on every request
_provider: AnthropicProvider | OpenAICompatibleProvider | None = None


def get_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Factory that returns the configured LLM provider.

    Reads `llm_provider` from settings:
    - "anthropic" → AnthropicProvider (Claude)
    - "openai_compatible" → OpenAICompatibleProvider

    Raises:
        ConfigurationError: Unknown provider type or missing API key.
    """
    global _provider
    if _provider is None:
        if settings.llm_provider == "openai_compatible":
            _provider = OpenAICompatibleProvider()
        elif settings.llm_provider == "anthropic":
            _provider = AnthropicProvider()
        else:
            raise ConfigurationError(
                f"Unknown LLM_PROVIDER '{settings.llm_provider}'. "
                "Supported: 'anthropic', 'openai_compatible'"
            )
    return _provider
