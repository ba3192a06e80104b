# =============================================================================
# Agents Package — LangGraph Multi-Agent Orchestration
# =============================================================================
#   - base.py: shared runtime — cancellation checks, cost estimation,
#     JSON clean-up
#   - router.py: lightweight yes/no "does this query need live search?"
#   - context.py: intent overview, grounded by web search or from knowledge
#   - extraction.py: product page URL → structured ProductRecord
#   - analyst.py: deep-reasoning 0-100 relevance verdict
#   - critic.py: optional second opinion on a finished analysis
#   - orchestrator.py: LangGraph graph — context and extraction branches in
#     parallel, merged, then analysed
# =============================================================================
