"""
Cooperative cancellation for running jobs.

Each run owns a ``CancellationToken`` that lives only in the engine's
local scope. The ``CancellationRegistry`` makes the run reachable from
outside by job key, but stores nothing more than a marker string in a
``CacheBackend``, so the backing store may be out of process (Redis).

Signalling is direct: ``cancel(key)`` flips the marker to
``cancel_requested``; an administrative ``cancel_all()`` removes every
job marker. A token bound to a key polls its marker whenever it is
asked and reports cancellation once the marker says so or has vanished.
Nothing interrupts a service mid-call: the engine and the services poll
at their own safe points.

Architecture:
    ::

        engine scope                       registry (cache backend)
        ┌────────────────────┐  register   ┌──────────────────────────────┐
        │ CancellationToken  │────────────▶│ portables:export:01J9 running│
        │   .cancelled ──────┼── probe ───▶│                              │
        └────────────────────┘             └──────────────────────────────┘
                                                       ▲
                         admin / CLI: registry.cancel("portables:export:01J9")

Tags:
    cancellation, cooperative, registry, portables
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from portables.core.cache import CacheBackend, InMemoryCache
from portables.core.errors import OperationCancelled
from portables.core.logging import get_logger

if TYPE_CHECKING:
    from portables.core.jobs import Job

logger = get_logger(__name__)

KEY_PREFIX = "portables:"
MARKER_RUNNING = "running"
MARKER_CANCEL_REQUESTED = "cancel_requested"


def job_cache_key(job: Job) -> str:
    """Registry key for a job: direction plus id."""
    return f"{KEY_PREFIX}{job.job_type.value}:{job.job_id}"


class CancellationToken:
    """A thread-safe cooperative cancellation flag.

    Example:
        token = CancellationToken()
        token.cancel()
        token.cancelled  # True
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._probe: Callable[[], bool] | None = None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        probe = self._probe
        if probe is not None and probe():
            self._event.set()
            return True
        return False

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled("Operation was cancelled")

    def bind(self, probe: Callable[[], bool] | None) -> None:
        """Attach (or detach with ``None``) an external cancellation probe."""
        self._probe = probe

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._event.is_set()})"


class CancellationRegistry:
    """Job key → marker bookkeeping for cancellable runs.

    Args:
        cache: Backing store for markers. Defaults to a process-local
            :class:`InMemoryCache` without expiry.
    """

    def __init__(self, cache: CacheBackend | None = None) -> None:
        self._cache: CacheBackend = cache if cache is not None else InMemoryCache(default_ttl_seconds=None)

    def register(self, key: str, token: CancellationToken) -> None:
        """Publish a marker for *key* and bind *token* to it."""
        self._cache.set(key, MARKER_RUNNING)
        token.bind(lambda: self.is_cancel_requested(key))
        logger.debug("cancellation.registered", key=key)

    def unregister(self, key: str, token: CancellationToken | None = None) -> None:
        """Remove the marker for *key*; unbinds *token* first so it does not observe the removal."""
        if token is not None:
            token.bind(None)
        self._cache.delete(key)
        logger.debug("cancellation.unregistered", key=key)

    def cancel(self, key: str) -> bool:
        """Request cancellation of a registered run. Returns ``False`` if no such run."""
        # Conditional write: a run that already unregistered leaves no marker behind
        if not self._cache.replace(key, MARKER_CANCEL_REQUESTED):
            return False
        logger.info("cancellation.requested", key=key)
        return True

    def cancel_all(self) -> int:
        """Administrative clear of every job marker; bound tokens observe cancellation.

        Only keys under ``KEY_PREFIX`` are removed, so a shared Redis
        database keeps its other data.
        """
        keys = self._cache.keys(KEY_PREFIX)
        for key in keys:
            self._cache.delete(key)
        logger.warning("cancellation.cleared_all", count=len(keys))
        return len(keys)

    def is_registered(self, key: str) -> bool:
        return self._cache.exists(key)

    def is_cancel_requested(self, key: str) -> bool:
        marker = self._cache.get(key)
        return marker is None or marker == MARKER_CANCEL_REQUESTED

    def running_keys(self) -> list[str]:
        return sorted(
            k for k in self._cache.keys(KEY_PREFIX) if self._cache.get(k) == MARKER_RUNNING
        )


__all__ = [
    "CancellationToken",
    "CancellationRegistry",
    "job_cache_key",
    "MARKER_RUNNING",
    "MARKER_CANCEL_REQUESTED",
]
