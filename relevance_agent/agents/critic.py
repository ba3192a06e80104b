# =============================================================================
# Critic Agent — Second Opinion on a Finished Analysis
# =============================================================================
#
# Optional QA pass: a heavyweight-tier reviewer reads the query, a product
# summary and the analyst's verdict, and says whether the verdict holds up
# (missed mismatch, unjustified score, hallucinated feature, vague
# reasoning). It is not a node of the workflow graph; callers run it after
# a workflow when they want a second opinion.
#
# DESIGN DECISION: Fail open.
# If the critic itself fails, report the analysis as satisfactory with
# cost 0 rather than blocking a finished result on a reviewer outage.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import BaseModel, Field, ValidationError

from relevance_agent.agents.analyst import AnalysisResult
from relevance_agent.agents.base import (
    ZERO_COST,
    AgentRuntime,
    CancellationToken,
    CostMeta,
    parse_json_object,
)
from relevance_agent.agents.extraction import ProductRecord
from relevance_agent.errors import AgentAborted, AgentError
from relevance_agent.services.llm import LLMProvider, ModelTier
from relevance_agent.services.pricing import ModelPricing

logger = logging.getLogger(__name__)

STEP = "critic"


@dataclass(frozen=True)
class CriticEvaluation:
    satisfactory: bool
    score_adjustment_needed: bool
    critique: str
    suggestions: tuple[str, ...]
    cost: CostMeta = ZERO_COST


CRITIC_UNAVAILABLE = CriticEvaluation(
    satisfactory=True,
    score_adjustment_needed=False,
    critique="Critic unavailable",
    suggestions=(),
)

CRITIC_SCHEMA = {
    "type": "object",
    "properties": {
        "satisfactory": {"type": "boolean"},
        "scoreAdjustmentNeeded": {"type": "boolean"},
        "critique": {"type": "string"},
        "suggestions": {"type": "array", "items": {"type": "string"}},
    },
    "required": [
        "satisfactory", "scoreAdjustmentNeeded", "critique", "suggestions",
    ],
}


class _CriticPayload(BaseModel):
    satisfactory: bool
    score_adjustment_needed: bool = Field(alias="scoreAdjustmentNeeded")
    critique: str
    suggestions: list[str]


def build_critic_prompt(
    query: str,
    product: ProductRecord,
    context_overview: str,
    analysis: AnalysisResult,
) -> str:
    return f"""You are a Senior QA Critic for an e-commerce relevance engine.
Your job is to evaluate the *quality and accuracy* of a relevance analysis \
performed by another AI agent.

User Query: "{query}"
Context Summary: "{context_overview[:300]}..."
Product Name: "{product.name}"
Product Description: "{product.description[:200]}..."

---
Current Analysis to Evaluate:
Score: {analysis.relevance_score}/100
Reasoning: "{analysis.reasoning}"
Key Matches: {', '.join(analysis.key_matches)}
Missing Features: {', '.join(analysis.missing_features)}
---

YOUR TASK:
Determine if this analysis is satisfactory.
1. Did the analyst miss a critical mismatch (e.g., wrong gender, wrong size, \
incompatible category)?
2. Is the score justified by the reasoning? (e.g., A score of 90 shouldn't \
exist if "Wrong Category" is listed).
3. Did the analyst hallucinate features not present in the product details?
4. Is the reasoning too vague?

If the analysis is solid, return "satisfactory": true.
If the analysis is flawed, weak, or missed something obvious, return \
"satisfactory": false and provide 2-3 SPECIFIC, ACTIONABLE suggestions for \
the analyst to fix it.

Examples of suggestions:
- "The user queried for 'Men's shoes' but the product is 'Women's'. \
Downgrade score significantly."
- "Re-evaluate the 'size' attribute. The query asks for 'Travel size' but \
the product is 12oz."
- "The reasoning claims the product is waterproof, but the description only \
says water-resistant. Verify and adjust.\""""


class CriticAgent:
    """Reviews an AnalysisResult on the heavyweight tier."""

    def __init__(
        self,
        llm: LLMProvider,
        pricing: ModelPricing | None = None,
    ) -> None:
        self._runtime = AgentRuntime(llm, ModelTier.HEAVYWEIGHT, STEP, pricing)

    async def evaluate(
        self,
        query: str,
        product: ProductRecord,
        context_overview: str,
        analysis: AnalysisResult,
        token: CancellationToken | None = None,
    ) -> CriticEvaluation:
        try:
            response, cost = await self._runtime.generate(
                build_critic_prompt(query, product, context_overview, analysis),
                response_schema=CRITIC_SCHEMA,
                token=token,
            )
            payload = _CriticPayload.model_validate(
                parse_json_object(response.content, STEP)
            )
        except AgentAborted:
            raise
        except (AgentError, ValidationError) as e:
            logger.warning("Critic failed, assuming satisfactory: %s", e)
            return CRITIC_UNAVAILABLE

        logger.info(
            "Critic verdict: satisfactory=%s, adjust=%s",
            payload.satisfactory, payload.score_adjustment_needed,
        )
        return CriticEvaluation(
            satisfactory=payload.satisfactory,
            score_adjustment_needed=payload.score_adjustment_needed,
            critique=payload.critique,
            suggestions=tuple(payload.suggestions),
            cost=cost,
        )
