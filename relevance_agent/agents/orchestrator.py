# =============================================================================
# LangGraph Orchestrator — Two Branches, One Merge, One Judgment
# =============================================================================
#
# GRAPH TOPOLOGY (fixed):
#
#          ┌──▶ context_branch ────┐
#   START ─┤                       ├──▶ merge ──▶ analyse ──▶ END
#          └──▶ extraction_branch ─┘
#
#   context_branch    — router (smart mode only) then context agent
#   extraction_branch — extraction agent, only when a URL was supplied
#   merge             — waits for BOTH branches, rechecks the cancellation
#                       token, picks the product record
#   analyse           — analyst agent on the merged record + overview
#
# DESIGN DECISION: Parallel branches as one LangGraph superstep.
# Both branch nodes start from START, so LangGraph runs them as concurrent
# asyncio tasks and only schedules `merge` once both have written their
# state. If either branch raises, the sibling task is cancelled and the
# error propagates out of ainvoke(); merge never sees a half-finished run.
#
# DESIGN DECISION: Extracted record wins.
# When extraction produced a record it is used as-is, even if the caller's
# fallback has more fields filled in. No field-level merge.
#
# DESIGN DECISION: One in-flight run per session.
# Starting a run cancels the token of the previous run for the same
# session_id. The superseded run settles as AgentAborted, so its result
# never reaches a caller.
#
# DESIGN DECISION: Cancellation token carried in graph state.
# asyncio.Event is not serialisable; safe because the graph has no
# checkpointer.
# =============================================================================

from __future__ import annotations

import dataclasses
import enum
import logging
from dataclasses import dataclass

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from relevance_agent.agents.analyst import AnalysisResult, AnalystAgent
from relevance_agent.agents.base import (
    CancellationToken,
    CostMeta,
    raise_if_cancelled,
)
from relevance_agent.agents.context import ContextAgent, ContextResult
from relevance_agent.agents.critic import CriticAgent, CriticEvaluation
from relevance_agent.agents.extraction import ExtractionAgent, ProductRecord
from relevance_agent.agents.router import RouterAgent
from relevance_agent.config import settings
from relevance_agent.errors import AgentAborted, AgentError
from relevance_agent.services.cache import ResultCache
from relevance_agent.services.llm import LLMProvider, get_llm_provider

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"


class RouterMode(str, enum.Enum):
    SMART = "smart"
    FORCE_SEARCH = "force-search"
    FORCE_KNOWLEDGE = "force-knowledge"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CostBreakdown:
    """Estimated USD per step of one workflow run."""

    router: float = 0.0
    context: float = 0.0
    extraction: float = 0.0
    analysis: float = 0.0

    @property
    def total(self) -> float:
        return self.router + self.context + self.extraction + self.analysis


@dataclass(frozen=True)
class WorkflowResult:
    """Terminal artifact of one end-to-end run."""

    context: ContextResult
    product: ProductRecord
    analysis: AnalysisResult
    costs: CostBreakdown
    needs_search: bool
    extraction_error: str | None = None


# ---------------------------------------------------------------------------
# Graph State Schema
# ---------------------------------------------------------------------------


class WorkflowState(TypedDict, total=False):
    """
    State that flows through the graph.

    total=False so each node only returns the keys it owns. The two branch
    nodes write disjoint keys, so their parallel updates never conflict.
    """

    # --- Input (set by caller) ---
    query: str
    url: str | None
    fallback_product: ProductRecord
    router_mode: RouterMode
    token: CancellationToken

    # --- Branch A: context ---
    needs_search: bool
    router_cost: float
    context: ContextResult

    # --- Branch B: extraction ---
    extracted_product: ProductRecord | None
    extraction_error: str | None

    # --- Merge + analysis ---
    product: ProductRecord
    analysis: AnalysisResult


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Orchestrator:
    """
    Owns the agents, their caches and the compiled workflow graph.

    Caches are injected so tests can supply empty or pre-seeded ones; by
    default each orchestrator gets fresh caches that live as long as it does.
    """

    def __init__(
        self,
        llm: LLMProvider,
        context_cache: ResultCache[ContextResult] | None = None,
        extraction_cache: ResultCache[ProductRecord] | None = None,
        reasoning_budget: int | None = None,
    ) -> None:
        self.context_cache = (
            context_cache if context_cache is not None else ResultCache("context")
        )
        self.extraction_cache = (
            extraction_cache
            if extraction_cache is not None
            else ResultCache("extraction")
        )

        self._router = RouterAgent(llm)
        self._context = ContextAgent(llm, cache=self.context_cache)
        self._extraction = ExtractionAgent(llm, cache=self.extraction_cache)
        self._analyst = AnalystAgent(llm, reasoning_budget=reasoning_budget)
        self._critic = CriticAgent(llm)

        self._inflight: dict[str, CancellationToken] = {}
        self._graph = self._build_graph()

    def _build_graph(self):
        builder = StateGraph(WorkflowState)
        builder.add_node("context_branch", self._context_branch_node)
        builder.add_node("extraction_branch", self._extraction_branch_node)
        builder.add_node("merge", self._merge_node)
        builder.add_node("analyse", self._analyse_node)

        builder.add_edge(START, "context_branch")
        builder.add_edge(START, "extraction_branch")
        builder.add_edge(["context_branch", "extraction_branch"], "merge")
        builder.add_edge("merge", "analyse")
        builder.add_edge("analyse", END)
        return builder.compile()

    # -----------------------------------------------------------------------
    # Node Functions
    # -----------------------------------------------------------------------

    async def _context_branch_node(self, state: WorkflowState) -> dict:
        needs_search, router_cost = await self._resolve_route(
            state["query"], state["router_mode"], state["token"],
        )
        context = await self._context.get_context(
            state["query"], needs_search, state["token"],
        )
        return {
            "needs_search": needs_search,
            "router_cost": router_cost,
            "context": context,
        }

    async def _extraction_branch_node(self, state: WorkflowState) -> dict:
        url = state.get("url")
        if not url:
            return {"extracted_product": None, "extraction_error": None}

        try:
            product = await self._extraction.extract(
                url, state["query"], state["token"],
            )
        except AgentAborted:
            raise
        except AgentError as e:
            if settings.extraction_failure_fatal:
                raise
            logger.warning(
                "Extraction branch failed, using fallback product: %s", e,
            )
            return {"extracted_product": None, "extraction_error": str(e)}

        return {"extracted_product": product, "extraction_error": None}

    async def _merge_node(self, state: WorkflowState) -> dict:
        raise_if_cancelled(state["token"], "merge")

        extracted = state.get("extracted_product")
        if extracted is not None:
            logger.info("Merge: using extracted product '%s'", extracted.name)
            return {"product": extracted}

        logger.info("Merge: using caller-supplied product")
        return {"product": state["fallback_product"]}

    async def _analyse_node(self, state: WorkflowState) -> dict:
        analysis = await self._analyst.analyse(
            state["query"],
            state["product"],
            state["context"].overview,
            state["token"],
        )
        return {"analysis": analysis}

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def run_context_only(
        self,
        query: str,
        mode: RouterMode = RouterMode.SMART,
        token: CancellationToken | None = None,
    ) -> ContextResult:
        """
        Route and fetch the intent overview without any analysis.

        The returned cost includes the router step.
        """
        needs_search, router_cost = await self._resolve_route(query, mode, token)
        context = await self._context.get_context(query, needs_search, token)
        return dataclasses.replace(
            context,
            cost=dataclasses.replace(
                context.cost,
                estimated_cost_usd=context.cost.estimated_cost_usd + router_cost,
            ),
        )

    async def run_extraction_only(
        self,
        url: str,
        query: str | None = None,
        token: CancellationToken | None = None,
    ) -> ProductRecord:
        """Standalone extraction; every failure propagates."""
        return await self._extraction.extract(url, query, token)

    async def run_full_workflow(
        self,
        query: str,
        url: str | None = None,
        fallback_product: ProductRecord | None = None,
        router_mode: RouterMode = RouterMode.SMART,
        token: CancellationToken | None = None,
        session_id: str = DEFAULT_SESSION,
    ) -> WorkflowResult:
        """
        Run the full two-branch workflow and return its result.

        Cancels any run still in flight for the same session first.

        Raises:
            AgentAborted: Token signalled, or this run was superseded.
            UpstreamFailure / ParseFailure: Analysis failed (or extraction,
                when EXTRACTION_FAILURE_FATAL is set).
        """
        token = token if token is not None else CancellationToken()

        previous = self._inflight.get(session_id)
        if previous is not None and previous is not token:
            logger.info("Superseding in-flight run for session '%s'", session_id)
            previous.set()
        self._inflight[session_id] = token

        logger.info(
            "Workflow start: query='%s', url=%s, mode=%s, session=%s",
            query[:80], url, router_mode.value, session_id,
        )

        try:
            raise_if_cancelled(token, "workflow")
            state = await self._graph.ainvoke({
                "query": query,
                "url": url,
                "fallback_product": fallback_product or ProductRecord(),
                "router_mode": router_mode,
                "token": token,
            })
        finally:
            if self._inflight.get(session_id) is token:
                del self._inflight[session_id]

        # A run superseded after its last model call still must not deliver
        raise_if_cancelled(token, "workflow")

        result = _to_workflow_result(state)
        logger.info(
            "Workflow complete: score=%d (%s), total_cost=$%.6f",
            result.analysis.relevance_score,
            result.analysis.band.value,
            result.costs.total,
        )
        return result

    def cancel(self, session_id: str = DEFAULT_SESSION) -> bool:
        """Signal the in-flight run of a session. Returns False if none."""
        token = self._inflight.get(session_id)
        if token is None:
            return False
        token.set()
        logger.info("Cancelled in-flight run for session '%s'", session_id)
        return True

    async def run_critique(
        self,
        query: str,
        product: ProductRecord,
        context_overview: str,
        analysis: AnalysisResult,
        token: CancellationToken | None = None,
    ) -> CriticEvaluation:
        """Second-opinion review of a finished analysis (fails open)."""
        return await self._critic.evaluate(
            query, product, context_overview, analysis, token,
        )

    # -----------------------------------------------------------------------
    # Internal Helpers
    # -----------------------------------------------------------------------

    async def _resolve_route(
        self,
        query: str,
        mode: RouterMode,
        token: CancellationToken | None,
    ) -> tuple[bool, float]:
        """Forced modes skip the router entirely and cost nothing."""
        if mode is RouterMode.FORCE_SEARCH:
            logger.info("Router skipped: forcing search for '%s'", query[:80])
            return True, 0.0
        if mode is RouterMode.FORCE_KNOWLEDGE:
            logger.info("Router skipped: forcing knowledge for '%s'", query[:80])
            return False, 0.0

        decision = await self._router.decide(query, token)
        return decision.needs_search, decision.cost


def _cost_of(meta: CostMeta | None) -> float:
    return meta.estimated_cost_usd if meta is not None else 0.0


def _to_workflow_result(state: WorkflowState) -> WorkflowResult:
    extracted = state.get("extracted_product")
    costs = CostBreakdown(
        router=state.get("router_cost", 0.0),
        context=_cost_of(state["context"].cost),
        extraction=_cost_of(extracted.cost) if extracted is not None else 0.0,
        analysis=_cost_of(state["analysis"].cost),
    )
    return WorkflowResult(
        context=state["context"],
        product=state["product"],
        analysis=state["analysis"],
        costs=costs,
        needs_search=state["needs_search"],
        extraction_error=state.get("extraction_error"),
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

# Lazy singleton — caches live for the life of the process
_orchestrator: Orchestrator | None = None


def get_orchestrator() -> Orchestrator:
    """
    Return the process-wide orchestrator, building it on first use.

    Raises:
        ConfigurationError: No credential for the configured provider.
    """
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = Orchestrator(get_llm_provider())
    return _orchestrator
