"""Time-boxed, single-flight cache of the engine's narrator list.

The narrator list comes from the engine itself and rarely changes, so it is
cached for a fixed TTL. Concurrent callers during a refresh share one fetch.
A failed fetch is not cached: callers get an empty set and the next call
fetches again.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable

from voicepeak_broker.errors import MetadataFetchFailed

logger = logging.getLogger(__name__)

EMPTY: frozenset[str] = frozenset()


class NarratorCache:
    """Caches the set of valid narrator names.

    Attributes:
        ttl: Seconds a successful fetch stays valid.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Iterable[str]]],
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize cache.

        Args:
            fetch: Coroutine function returning the current narrator names.
            ttl: Cache TTL in seconds.
            clock: Monotonic time source.
        """
        self._fetch = fetch
        self.ttl = ttl
        self._clock = clock

        self._narrators: frozenset[str] | None = None
        self._fetched_at = 0.0
        self._inflight: asyncio.Future | None = None
        self._last_fetch_failed = False

    @property
    def last_fetch_failed(self) -> bool:
        """True when the most recent fetch failed and no set is cached."""
        return self._last_fetch_failed

    async def get(self) -> frozenset[str]:
        """Get the narrator set, fetching it if missing or expired."""
        if self._narrators is not None and self._clock() - self._fetched_at < self.ttl:
            return self._narrators

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._load())
        # Shield so one cancelled waiter does not cancel the shared fetch.
        return await asyncio.shield(self._inflight)

    async def refresh(self) -> frozenset[str]:
        """Invalidate the cached set and fetch it again.

        A fetch already in flight is joined rather than duplicated.
        """
        self._narrators = None
        self._fetched_at = 0.0
        return await self.get()

    def clear(self) -> None:
        """Invalidate without fetching. An in-flight fetch is abandoned."""
        self._narrators = None
        self._fetched_at = 0.0
        self._inflight = None

    async def is_valid(self, name: str | None) -> bool:
        """Check a caller-supplied narrator name.

        An absent name is valid (the field is optional). While the narrator
        list is unavailable because the last fetch failed, names cannot be
        verified and are let through; the engine rejects unknown ones itself.
        """
        if not name:
            return True
        narrators = await self.get()
        if not narrators and self._last_fetch_failed:
            logger.warning("Narrator list unavailable, not verifying %r", name)
            return True
        return name in narrators

    async def _load(self) -> frozenset[str]:
        this_fetch = asyncio.current_task()
        try:
            names: frozenset[str] | None = await self._fetch_names()
        except MetadataFetchFailed as e:
            logger.error("Failed to fetch narrators: %s", e)
            names = None
        except asyncio.CancelledError:
            if self._inflight is this_fetch:
                self._inflight = None
            raise

        # A clear() during the fetch abandons it; its result is not cached.
        if self._inflight is this_fetch:
            self._inflight = None
            self._narrators = names
            self._fetched_at = self._clock() if names is not None else 0.0
            self._last_fetch_failed = names is None

        if names is None:
            return EMPTY
        logger.info("Narrator list fetched: %d narrator(s)", len(names))
        return names

    async def _fetch_names(self) -> frozenset[str]:
        try:
            names = await self._fetch()
        except Exception as e:
            raise MetadataFetchFailed(f"Narrator fetch failed: {e}") from e
        return frozenset(name.strip() for name in names if name and name.strip())
