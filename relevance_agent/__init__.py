# =============================================================================
# Product Relevance Agent
# =============================================================================
# A multi-agent service that scores how well a product matches a shopper's
# search query. A router decides whether live web search is needed, context
# gathering and product extraction run in parallel under LangGraph, and an
# analyst model returns a 0-100 relevance verdict.
#
# Package structure:
#   relevance_agent/
#   ├── api/          → FastAPI route handlers (context, extract, analyse,
#   │                    cancel, critique)
#   ├── agents/       → Router, context, extraction, analyst and critic
#   │                    agents plus the LangGraph orchestrator
#   ├── models/       → Pydantic V2 request/response schemas
#   └── services/     → LLM provider abstraction, pricing, result caches
# =============================================================================
