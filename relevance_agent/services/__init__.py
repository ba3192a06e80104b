# =============================================================================
# Services Package — Shared Infrastructure
# =============================================================================
#   - llm.py: multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#     with web search, reasoning budgets and structured output
#   - pricing.py: per-tier token pricing and cost estimation
#   - cache.py: in-process result caches keyed by normalised input
# =============================================================================
