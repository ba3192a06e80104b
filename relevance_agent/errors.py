# =============================================================================
# Error Taxonomy
# =============================================================================
#
#   AgentError
#   ├── AgentAborted      — cooperative cancellation; a non-error outcome
#   ├── UpstreamFailure   — the model provider failed (network, rate limit…)
#   └── ParseFailure      — structured output did not have the expected shape
#   ConfigurationError    — no credential / bad provider config (ValueError)
#
# `step` names the pipeline step that failed ("router", "context",
# "extraction", "analysis", "critic") so callers can build a message that
# tells the user what to retry.
# =============================================================================

from __future__ import annotations


class AgentError(Exception):
    """Base class for failures raised by agents and the orchestrator."""

    def __init__(self, message: str, step: str | None = None) -> None:
        super().__init__(message)
        self.step = step


class AgentAborted(AgentError):
    """The run's cancellation token was signalled (or the run superseded)."""

    def __init__(self, message: str = "Aborted", step: str | None = None) -> None:
        super().__init__(message, step)


class UpstreamFailure(AgentError):
    """The remote inference call raised."""


class ParseFailure(AgentError):
    """The model response could not be parsed into the expected structure."""


class ConfigurationError(ValueError):
    """The remote inference capability cannot be reached as configured."""
