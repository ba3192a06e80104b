# =============================================================================
# Result Caches — Process-Lifetime Memoisation for Agent Outputs
# =============================================================================
#
# One ResultCache per cached agent type (context, extraction). The
# orchestrator builds them once and injects them into the agents, so tests
# can pass an empty or pre-seeded cache instead of sharing module globals.
#
# DESIGN DECISION: Append-only, no eviction, no locking.
# Values are frozen dataclasses and are never updated in place. Two
# concurrent runs may both miss and both write the same key; the values are
# equivalent, so last write wins.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Hashable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


def normalize_query(query: str) -> str:
    """Cache-key form of a query. The model always sees the original text."""
    return query.strip().casefold()


class ResultCache(Generic[V]):
    """Unbounded in-memory map from a hashable key to an immutable result."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[Hashable, V] = {}

    def get(self, key: Hashable) -> V | None:
        value = self._entries.get(key)
        if value is not None:
            logger.debug("Cache hit [%s]: %r", self.name, key)
        return value

    def put(self, key: Hashable, value: V) -> None:
        self._entries[key] = value

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
