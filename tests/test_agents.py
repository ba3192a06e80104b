# =============================================================================
# Unit Tests — Agents
# =============================================================================
#
# Tests each agent against a mock LLM provider. No API keys or network.
#
# Test groups:
#   1. AgentRuntime (cancellation checkpoints, error normalisation, cost)
#   2. JSON helpers
#   3. Router (fail toward search)
#   4. Context (modes, citations, cache, degradation)
#   5. Extraction (fences, defaults, cache by URL, failures)
#   6. Analyst (strict schema, bands, clamping, never cached)
#   7. Critic (fails open)
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from relevance_agent.agents.analyst import (
    AnalysisResult,
    AnalystAgent,
    RelevanceBand,
    build_analysis_prompt,
)
from relevance_agent.agents.base import (
    ZERO_COST,
    AgentRuntime,
    CancellationToken,
    parse_json_object,
    strip_code_fences,
)
from relevance_agent.agents.context import (
    CONTEXT_UNAVAILABLE,
    ContextAgent,
    ContextSource,
)
from relevance_agent.agents.critic import CRITIC_UNAVAILABLE, CriticAgent
from relevance_agent.agents.extraction import ExtractionAgent, ProductRecord
from relevance_agent.agents.router import RouterAgent
from relevance_agent.errors import AgentAborted, ParseFailure, UpstreamFailure
from relevance_agent.services.cache import ResultCache
from relevance_agent.services.llm import LLMResponse, ModelTier, WebCitation
from relevance_agent.services.pricing import SEARCH_SURCHARGE_USD, estimate_cost


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _llm_returning(content, input_tokens=100, output_tokens=50, citations=None):
    mock_llm = AsyncMock()
    mock_llm.complete.return_value = LLMResponse(
        content=content if isinstance(content, str) else json.dumps(content),
        model="test-model",
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        citations=citations or [],
    )
    return mock_llm


def _cancelled_token() -> CancellationToken:
    token = CancellationToken()
    token.set()
    return token


_ANALYSIS = {
    "relevanceScore": 85,
    "reasoning": "Exact match on color and category.",
    "keyMatches": ["Color: Red", "Category: Dress"],
    "missingFeatures": [],
    "customerUtilityAssessment": "Fully satisfies the search.",
    "humanReviewNeeded": False,
    "reviewReason": "Match is definitive and query is unambiguous",
}


# ---------------------------------------------------------------------------
# 1. AgentRuntime
# ---------------------------------------------------------------------------


class TestAgentRuntime:
    def test_cost_attached_to_response(self):
        mock_llm = _llm_returning("ok", input_tokens=1000, output_tokens=200)
        runtime = AgentRuntime(mock_llm, ModelTier.HEAVYWEIGHT, "test")

        response, cost = _run(runtime.generate("prompt"))

        assert response.content == "ok"
        assert cost.prompt_tokens == 1000
        assert cost.completion_tokens == 200
        assert cost.estimated_cost_usd == pytest.approx(
            estimate_cost(ModelTier.HEAVYWEIGHT, 1000, 200)
        )

    def test_search_call_includes_surcharge_without_usage(self):
        mock_llm = _llm_returning("ok", input_tokens=None, output_tokens=None)
        runtime = AgentRuntime(mock_llm, ModelTier.LIGHTWEIGHT, "test")

        _, cost = _run(runtime.generate("prompt", web_search=True))

        assert cost.estimated_cost_usd == pytest.approx(SEARCH_SURCHARGE_USD)
        assert cost.prompt_tokens is None

    def test_cancelled_before_dispatch_never_calls_provider(self):
        mock_llm = _llm_returning("ok")
        runtime = AgentRuntime(mock_llm, ModelTier.LIGHTWEIGHT, "router")

        with pytest.raises(AgentAborted) as exc_info:
            _run(runtime.generate("prompt", token=_cancelled_token()))

        assert exc_info.value.step == "router"
        mock_llm.complete.assert_not_called()

    def test_cancelled_during_call_discards_response(self):
        token = CancellationToken()

        async def cancel_then_answer(*args, **kwargs):
            token.set()
            return LLMResponse("ok", "test-model", 10, 10)

        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = cancel_then_answer
        runtime = AgentRuntime(mock_llm, ModelTier.LIGHTWEIGHT, "context")

        with pytest.raises(AgentAborted):
            _run(runtime.generate("prompt", token=token))
        mock_llm.complete.assert_called_once()

    def test_provider_error_becomes_upstream_failure(self):
        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = RuntimeError("429 rate limited")
        runtime = AgentRuntime(mock_llm, ModelTier.HEAVYWEIGHT, "analysis")

        with pytest.raises(UpstreamFailure, match="429 rate limited") as exc_info:
            _run(runtime.generate("prompt"))
        assert exc_info.value.step == "analysis"

    def test_provider_error_after_cancel_is_aborted(self):
        token = CancellationToken()

        async def cancel_then_fail(*args, **kwargs):
            token.set()
            raise RuntimeError("connection reset")

        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = cancel_then_fail
        runtime = AgentRuntime(mock_llm, ModelTier.LIGHTWEIGHT, "context")

        with pytest.raises(AgentAborted):
            _run(runtime.generate("prompt", token=token))

    def test_options_forwarded_to_provider(self):
        mock_llm = _llm_returning("ok")
        runtime = AgentRuntime(mock_llm, ModelTier.HEAVYWEIGHT, "analysis")

        _run(runtime.generate(
            "prompt", response_schema={"type": "object"}, reasoning_budget=512,
        ))

        call = mock_llm.complete.call_args
        assert call.args == ("prompt", ModelTier.HEAVYWEIGHT)
        assert call.kwargs["response_schema"] == {"type": "object"}
        assert call.kwargs["reasoning_budget"] == 512
        assert call.kwargs["web_search"] is False


# ---------------------------------------------------------------------------
# 2. JSON Helpers
# ---------------------------------------------------------------------------


class TestJsonHelpers:
    def test_strip_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strip_bare_fence(self):
        assert strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'

    def test_unfenced_text_unchanged(self):
        assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'

    def test_parse_rejects_invalid_json(self):
        with pytest.raises(ParseFailure) as exc_info:
            parse_json_object("Sorry, I could not find it.", "extraction")
        assert exc_info.value.step == "extraction"

    def test_parse_rejects_non_object(self):
        with pytest.raises(ParseFailure, match="list"):
            parse_json_object("[1, 2]", "analysis")


# ---------------------------------------------------------------------------
# 3. Router
# ---------------------------------------------------------------------------


class TestRouterAgent:
    def test_generic_query_skips_search(self):
        mock_llm = _llm_returning(
            {"needsSearch": False, "reason": "generic product"},
            input_tokens=80, output_tokens=12,
        )
        decision = _run(RouterAgent(mock_llm).decide("red dress"))

        assert decision.needs_search is False
        assert decision.reason == "generic product"
        assert decision.cost == pytest.approx(
            estimate_cost(ModelTier.LIGHTWEIGHT, 80, 12)
        )
        assert mock_llm.complete.call_args.kwargs["web_search"] is False

    def test_prompt_mentions_query(self):
        mock_llm = _llm_returning({"needsSearch": True, "reason": "model number"})
        _run(RouterAgent(mock_llm).decide("Sony XR-65A95L"))
        assert '"Sony XR-65A95L"' in mock_llm.complete.call_args.args[0]

    def test_malformed_response_defaults_to_search(self):
        mock_llm = _llm_returning("I think you should search.")
        decision = _run(RouterAgent(mock_llm).decide("tv"))
        assert decision.needs_search is True
        assert decision.cost == 0.0

    def test_missing_field_defaults_to_search(self):
        mock_llm = _llm_returning({"reason": "forgot the flag"})
        decision = _run(RouterAgent(mock_llm).decide("tv"))
        assert decision.needs_search is True
        assert decision.cost == 0.0

    def test_provider_failure_defaults_to_search(self):
        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = TimeoutError("timed out")
        decision = _run(RouterAgent(mock_llm).decide("tv"))
        assert decision.needs_search is True
        assert decision.cost == 0.0

    def test_abort_propagates(self):
        mock_llm = _llm_returning({"needsSearch": False, "reason": ""})
        with pytest.raises(AgentAborted):
            _run(RouterAgent(mock_llm).decide("tv", _cancelled_token()))
        mock_llm.complete.assert_not_called()


# ---------------------------------------------------------------------------
# 4. Context
# ---------------------------------------------------------------------------


class TestContextAgent:
    def test_search_mode_returns_filtered_citations(self):
        citations = [
            WebCitation(uri="https://a.example", title="Retailer A"),
            WebCitation(uri="", title="No link"),
            WebCitation(uri="https://b.example", title=None),
        ]
        mock_llm = _llm_returning(
            "Shoppers want the 2025 flagship models.", citations=citations,
        )

        result = _run(ContextAgent(mock_llm).get_context("best tv 2025", True))

        assert result.source is ContextSource.SEARCH
        assert [c.uri for c in result.citations] == [
            "https://a.example", "https://b.example",
        ]
        assert result.citations[1].title == "https://b.example"
        assert result.cost.estimated_cost_usd > SEARCH_SURCHARGE_USD
        assert mock_llm.complete.call_args.kwargs["web_search"] is True

    def test_knowledge_mode_has_no_citations(self):
        citations = [WebCitation(uri="https://a.example", title="A")]
        mock_llm = _llm_returning("Shoppers want a red dress.", citations=citations)

        result = _run(ContextAgent(mock_llm).get_context("red dress", False))

        assert result.source is ContextSource.KNOWLEDGE
        assert result.citations == ()
        assert result.overview == "Shoppers want a red dress."
        assert mock_llm.complete.call_args.kwargs["web_search"] is False

    def test_prompts_require_literal_reading(self):
        mock_llm = _llm_returning("overview")
        agent = ContextAgent(mock_llm)

        _run(agent.get_context("maggi", False))
        knowledge_prompt = mock_llm.complete.call_args.args[0]
        _run(agent.get_context("maggi", True))
        search_prompt = mock_llm.complete.call_args.args[0]

        for prompt in (knowledge_prompt, search_prompt):
            assert '"maggi"' in prompt
            assert "no spell check issue" in prompt

    def test_repeat_query_served_from_cache(self):
        mock_llm = _llm_returning("Shoppers want a red dress.")
        agent = ContextAgent(mock_llm)

        first = _run(agent.get_context("Red Dress", False))
        second = _run(agent.get_context("  red dress ", False))

        mock_llm.complete.assert_called_once()
        assert second.overview == first.overview
        assert second.cost == ZERO_COST
        assert first.cost.estimated_cost_usd > 0

    def test_mode_switch_is_a_cache_miss(self):
        mock_llm = _llm_returning("overview")
        agent = ContextAgent(mock_llm)

        _run(agent.get_context("tv", False))
        _run(agent.get_context("tv", True))

        assert mock_llm.complete.call_count == 2

    def test_injected_cache_is_used(self):
        cache = ResultCache("context")
        mock_llm = _llm_returning("overview")
        _run(ContextAgent(mock_llm, cache=cache).get_context("tv", False))
        assert ("tv", False) in cache

    def test_empty_answer_degrades_and_is_not_cached(self):
        mock_llm = _llm_returning("   ")
        agent = ContextAgent(mock_llm)

        result = _run(agent.get_context("tv", True))

        assert result.overview == CONTEXT_UNAVAILABLE
        assert result.citations == ()
        assert result.cost.estimated_cost_usd > SEARCH_SURCHARGE_USD

        _run(agent.get_context("tv", True))
        assert mock_llm.complete.call_count == 2

    def test_failure_degrades_and_is_not_cached(self):
        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = RuntimeError("503 unavailable")
        agent = ContextAgent(mock_llm)

        result = _run(agent.get_context("tv", True))

        assert result.overview == CONTEXT_UNAVAILABLE
        assert result.source is ContextSource.KNOWLEDGE
        assert result.citations == ()

        _run(agent.get_context("tv", True))
        assert mock_llm.complete.call_count == 2

    def test_abort_propagates_even_on_cache_hit(self):
        mock_llm = _llm_returning("overview")
        agent = ContextAgent(mock_llm)
        _run(agent.get_context("tv", False))

        with pytest.raises(AgentAborted):
            _run(agent.get_context("tv", False, _cancelled_token()))


# ---------------------------------------------------------------------------
# 5. Extraction
# ---------------------------------------------------------------------------

_PRODUCT_JSON = {
    "name": "Trail Runner",
    "description": "Lightweight trail running shoe.",
    "price": "$89.99",
    "category": "Footwear",
    "brand": "Stride",
    "size": "6",
    "color": "Blue",
    "gender": "Men",
}


class TestExtractionAgent:
    def test_fenced_and_bare_json_extract_identically(self):
        bare = _llm_returning(json.dumps(_PRODUCT_JSON))
        fenced = _llm_returning("```json\n" + json.dumps(_PRODUCT_JSON) + "\n```")

        a = _run(ExtractionAgent(bare).extract("https://shop.example/p/1"))
        b = _run(ExtractionAgent(fenced).extract("https://shop.example/p/1"))

        assert a == b
        assert a.name == "Trail Runner"

    def test_missing_fields_default_to_empty(self):
        mock_llm = _llm_returning({"name": "Mystery Item", "price": None})

        record = _run(ExtractionAgent(mock_llm).extract("https://shop.example/p/2"))

        assert record.name == "Mystery Item"
        assert record.price == ""
        assert record.brand == ""
        assert record.badge == ""

    def test_gender_alias_and_list_values(self):
        mock_llm = _llm_returning({
            "name": "Tee",
            "gender": "Women",
            "size": ["S", "M", "L"],
            "color": ["Red", "Blue"],
        })

        record = _run(ExtractionAgent(mock_llm).extract("https://shop.example/p/3"))

        assert record.gender_audience == "Women"
        assert record.size == "S, M, L"
        assert record.color == "Red, Blue"

    def test_search_is_enabled_and_query_focuses_prompt(self):
        mock_llm = _llm_returning(_PRODUCT_JSON)

        _run(ExtractionAgent(mock_llm).extract(
            "https://shop.example/p/1", query="size 8 running shoes",
        ))

        call = mock_llm.complete.call_args
        assert call.kwargs["web_search"] is True
        assert "https://shop.example/p/1" in call.args[0]
        assert "size 8 running shoes" in call.args[0]

    def test_empty_text_gives_empty_record_with_cost(self):
        mock_llm = _llm_returning("```\n```")
        agent = ExtractionAgent(mock_llm)

        record = _run(agent.extract("https://shop.example/p/4"))

        assert record.name == ""
        assert record.cost is not None
        assert record.cost.estimated_cost_usd > 0

        # Empty results are not cached
        _run(agent.extract("https://shop.example/p/4"))
        assert mock_llm.complete.call_count == 2

    def test_invalid_json_is_parse_failure_naming_url(self):
        mock_llm = _llm_returning("I could not find that product.")

        with pytest.raises(ParseFailure) as exc_info:
            _run(ExtractionAgent(mock_llm).extract("https://shop.example/p/5"))

        assert exc_info.value.step == "extraction"
        assert "https://shop.example/p/5" in str(exc_info.value)

    def test_upstream_failure_keeps_type(self):
        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(UpstreamFailure, match="Could not extract"):
            _run(ExtractionAgent(mock_llm).extract("https://shop.example/p/6"))

    def test_cached_by_url(self):
        mock_llm = _llm_returning(_PRODUCT_JSON)
        agent = ExtractionAgent(mock_llm)

        first = _run(agent.extract("https://shop.example/p/1", query="shoes"))
        second = _run(agent.extract(" https://shop.example/p/1 ", query="boots"))

        mock_llm.complete.assert_called_once()
        assert second.name == first.name
        assert second.cost == ZERO_COST


# ---------------------------------------------------------------------------
# 6. Analyst
# ---------------------------------------------------------------------------


class TestRelevanceBand:
    @pytest.mark.parametrize(
        ("score", "band"),
        [
            (100, RelevanceBand.EXCELLENT),
            (80, RelevanceBand.EXCELLENT),
            (79, RelevanceBand.GOOD),
            (60, RelevanceBand.GOOD),
            (59, RelevanceBand.OKAY),
            (40, RelevanceBand.OKAY),
            (39, RelevanceBand.BAD),
            (20, RelevanceBand.BAD),
            (19, RelevanceBand.EMBARRASSING),
            (0, RelevanceBand.EMBARRASSING),
        ],
    )
    def test_band_thresholds(self, score, band):
        assert RelevanceBand.from_score(score) is band


class TestAnalystAgent:
    _dress = ProductRecord(
        name="Red Maxi Dress",
        brand="Acme",
        category="Dresses",
        color="Red",
        gender_audience="Women",
    )

    def test_prompt_carries_query_product_and_context(self):
        prompt = build_analysis_prompt(
            "red dress", self._dress, "Shoppers want a red dress.",
        )
        assert 'search query: "red dress"' in prompt
        assert "Name: Red Maxi Dress" in prompt
        assert "Gender/Audience: Women" in prompt
        assert '"Shoppers want a red dress."' in prompt
        assert "can only raise relevance" in prompt

    def test_uses_heavyweight_tier_and_reasoning_budget(self):
        mock_llm = _llm_returning(_ANALYSIS)

        _run(AnalystAgent(mock_llm, reasoning_budget=1024).analyse(
            "red dress", self._dress, "overview",
        ))

        call = mock_llm.complete.call_args
        assert call.args[1] is ModelTier.HEAVYWEIGHT
        assert call.kwargs["reasoning_budget"] == 1024
        assert call.kwargs["response_schema"]["required"][0] == "relevanceScore"

    def test_red_dress_scenario_is_excellent(self):
        mock_llm = _llm_returning({**_ANALYSIS, "relevanceScore": 92})

        result = _run(AnalystAgent(mock_llm).analyse(
            "red dress", self._dress, "Shoppers want a red dress.",
        ))

        assert isinstance(result, AnalysisResult)
        assert result.relevance_score == 92
        assert result.band is RelevanceBand.EXCELLENT
        assert result.key_matches == ("Color: Red", "Category: Dress")
        assert result.cost.estimated_cost_usd > 0

    def test_size_mismatch_scenario_is_bad(self):
        shoe = ProductRecord(name="Trail Runner", category="Footwear", size="6")
        mock_llm = _llm_returning({
            **_ANALYSIS,
            "relevanceScore": 30,
            "reasoning": "Size 6 is unusable for a size 8 query.",
            "keyMatches": ["Category: Running shoes"],
            "missingFeatures": ["Size 8"],
        })

        result = _run(AnalystAgent(mock_llm).analyse(
            "size 8 running shoes", shoe, "Shoppers want running shoes in size 8.",
        ))

        assert result.band is RelevanceBand.BAD
        assert "Size 8" in result.missing_features

    def test_never_cached(self):
        mock_llm = _llm_returning(_ANALYSIS)
        agent = AnalystAgent(mock_llm)

        _run(agent.analyse("red dress", self._dress, "overview"))
        _run(agent.analyse("red dress", self._dress, "overview"))

        assert mock_llm.complete.call_count == 2

    def test_missing_field_is_parse_failure(self):
        incomplete = {k: v for k, v in _ANALYSIS.items() if k != "reviewReason"}
        mock_llm = _llm_returning(incomplete)

        with pytest.raises(ParseFailure) as exc_info:
            _run(AnalystAgent(mock_llm).analyse("red dress", self._dress, ""))
        assert exc_info.value.step == "analysis"

    def test_empty_response_is_parse_failure(self):
        mock_llm = _llm_returning("   ")

        with pytest.raises(ParseFailure, match="No response text"):
            _run(AnalystAgent(mock_llm).analyse("red dress", self._dress, ""))

    def test_fenced_verdict_accepted(self):
        mock_llm = _llm_returning("```json\n" + json.dumps(_ANALYSIS) + "\n```")
        result = _run(AnalystAgent(mock_llm).analyse("red dress", self._dress, ""))
        assert result.relevance_score == 85

    @pytest.mark.parametrize("raw", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_score_is_parse_failure(self, raw):
        # json.loads accepts NaN and Infinity literals
        mock_llm = _llm_returning({**_ANALYSIS, "relevanceScore": raw})
        with pytest.raises(ParseFailure) as exc_info:
            _run(AnalystAgent(mock_llm).analyse("red dress", self._dress, ""))
        assert exc_info.value.step == "analysis"

    @pytest.mark.parametrize(
        ("raw", "expected"), [(104.6, 100), (-3, 0), (79.6, 80)],
    )
    def test_score_rounded_and_clamped(self, raw, expected):
        mock_llm = _llm_returning({**_ANALYSIS, "relevanceScore": raw})
        result = _run(AnalystAgent(mock_llm).analyse("red dress", self._dress, ""))
        assert result.relevance_score == expected

    def test_upstream_failure_propagates(self):
        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = RuntimeError("overloaded")
        with pytest.raises(UpstreamFailure):
            _run(AnalystAgent(mock_llm).analyse("red dress", self._dress, ""))


# ---------------------------------------------------------------------------
# 7. Critic
# ---------------------------------------------------------------------------


class TestCriticAgent:
    _analysis = AnalysisResult(
        relevance_score=90,
        reasoning="Great match.",
        key_matches=("Category",),
        missing_features=("Wrong gender",),
        customer_utility_assessment="",
        human_review_needed=False,
        review_reason="",
    )

    def test_flags_inconsistent_analysis(self):
        mock_llm = _llm_returning({
            "satisfactory": False,
            "scoreAdjustmentNeeded": True,
            "critique": "Score of 90 contradicts a gender mismatch.",
            "suggestions": ["Downgrade score significantly."],
        })

        evaluation = _run(CriticAgent(mock_llm).evaluate(
            "mens shoes", ProductRecord(name="Women's Runner"), "", self._analysis,
        ))

        assert evaluation.satisfactory is False
        assert evaluation.score_adjustment_needed is True
        assert evaluation.suggestions == ("Downgrade score significantly.",)
        prompt = mock_llm.complete.call_args.args[0]
        assert "Score: 90/100" in prompt
        assert "Wrong gender" in prompt

    def test_fails_open_on_garbage(self):
        mock_llm = _llm_returning("not json")
        evaluation = _run(CriticAgent(mock_llm).evaluate(
            "tv", ProductRecord(), "", self._analysis,
        ))
        assert evaluation == CRITIC_UNAVAILABLE

    def test_abort_propagates(self):
        mock_llm = _llm_returning("{}")
        with pytest.raises(AgentAborted):
            _run(CriticAgent(mock_llm).evaluate(
                "tv", ProductRecord(), "", self._analysis, _cancelled_token(),
            ))
