"""
Local cache of derived reports with optimistic updates.

Readers keep their own copy of each project's report and re-derive it from
the database whenever they are told it may be stale; pushed change events are
only hints. A mutation can be shown immediately with ``optimistic``: the
local copy is changed, the write is submitted, and the copy is then replaced
with what the server returned, or put back if the write failed.
"""
import copy
import logging
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from fastapi import Request

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReportCache(Generic[T]):
    """Per-key cache of derived values, refreshed through a loader."""

    def __init__(self, loader: Callable[[str], Awaitable[T]]):
        self._loader = loader
        self._items: dict[str, T] = {}
        self._stale: set[str] = set()

    def peek(self, key: str) -> Optional[T]:
        """Cached value without refreshing, stale or not."""
        return self._items.get(key)

    def is_stale(self, key: str) -> bool:
        return key in self._stale or key not in self._items

    def invalidate(self, key: str) -> None:
        self._stale.add(key)

    def clear(self) -> None:
        self._items.clear()
        self._stale.clear()

    async def get(self, key: str) -> T:
        """Cached value, re-derived through the loader when missing or stale."""
        if self.is_stale(key):
            self._items[key] = await self._loader(key)
            self._stale.discard(key)
        return self._items[key]

    async def optimistic(
        self,
        key: str,
        change: Callable[[T], T],
        submit: Callable[[T], Awaitable[Optional[T]]],
    ) -> T:
        """
        Apply ``change`` locally, then persist it with ``submit``.

        ``submit`` receives the locally changed value and returns the server's
        version, or None to keep the local value until the next ``get``
        reloads it. On any error the previous value is restored and the error
        propagates.
        """
        previous = await self.get(key)
        self._items[key] = change(copy.deepcopy(previous))
        try:
            confirmed = await submit(self._items[key])
        except Exception:
            logger.info("Rolling back optimistic update of %s", key)
            self._items[key] = previous
            raise

        if confirmed is None:
            self.invalidate(key)
            return self._items[key]
        self._items[key] = confirmed
        self._stale.discard(key)
        return confirmed


def get_report_cache(request: Request) -> ReportCache:
    """Dependency to get the application's shared report cache."""
    return request.app.state.report_cache
