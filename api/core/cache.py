"""In-memory TTL caching for public template listings.

Note: Cache is per-worker/replica, not shared across instances.
Suitable for data that can tolerate short-term staleness (30-60s).

The cache is an explicit object with an injected timer so tests can move
time forward without sleeping. It is never consulted for view counting.
"""

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from cachetools import TTLCache

if TYPE_CHECKING:
    from schemas import TemplateSummary

DEFAULT_TTL_SECONDS = 60
DEFAULT_MAX_SIZE = 256


class TemplateListingCache:
    """TTL cache of template listings keyed by (search query, limit)."""

    def __init__(
        self,
        *,
        ttl: float = DEFAULT_TTL_SECONDS,
        maxsize: int = DEFAULT_MAX_SIZE,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: TTLCache[tuple[str, int], list["TemplateSummary"]] = TTLCache(
            maxsize=maxsize,
            ttl=ttl,
            timer=timer,
        )

    def get(self, query: str, limit: int) -> "list[TemplateSummary] | None":
        return self._cache.get((query, limit))

    def set(self, query: str, limit: int, templates: "list[TemplateSummary]") -> None:
        self._cache[(query, limit)] = templates

    def invalidate(self) -> None:
        """Drop every listing. Call after a template is created or changed."""
        self._cache.clear()
