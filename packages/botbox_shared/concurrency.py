"""Cooperative cancellation and per-entity locking primitives.

Mutations are serialized per entity id (one lock per id, looked up from a
thread-safe registry) so unrelated entities proceed in parallel. Blocking
operations accept a ``CancellationToken`` and poll it cooperatively; nothing
in the system interrupts a thread forcibly.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from threading import Event, Lock, RLock
from time import monotonic

from packages.botbox_shared.logging import get_logger

_LOGGER = get_logger(__name__)


class CancellationToken:
    """One-shot cancellation signal shared between a caller and its work."""

    def __init__(self) -> None:
        self._event = Event()
        self._lock = Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        """Return whether cancellation was requested."""
        return self._event.is_set()

    @property
    def reason(self) -> str:
        """Return the reason passed to ``cancel`` (empty until cancelled)."""
        return self._reason

    def cancel(self, reason: str = "cancelled") -> bool:
        """Request cancellation; return ``False`` when already cancelled."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            _run_callback(callback)
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block up to ``timeout`` seconds; return ``True`` once cancelled."""
        return self._event.wait(timeout)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on cancellation (immediately if already cancelled).

        Returns a function that detaches the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        _run_callback(callback)
        return lambda: None

    def _remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass


def _run_callback(callback: Callable[[], None]) -> None:
    try:
        callback()
    except Exception:  # noqa: BLE001
        _LOGGER.exception("cancellation callback failed")


class Deadline:
    """Monotonic deadline helper; ``None`` seconds means unbounded."""

    def __init__(self, seconds: float | None) -> None:
        self._expires_at = None if seconds is None else monotonic() + max(seconds, 0.0)

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and monotonic() >= self._expires_at

    def remaining(self, cap: float | None = None) -> float | None:
        """Return seconds left (optionally capped); ``None`` when unbounded."""
        if self._expires_at is None:
            return cap
        left = max(self._expires_at - monotonic(), 0.0)
        return left if cap is None else min(left, cap)


def wait_until(
    predicate: Callable[[], bool],
    *,
    token: CancellationToken,
    deadline: Deadline,
    poll_interval: float,
) -> bool | None:
    """Poll ``predicate`` until it holds.

    Returns ``True`` when it held, ``False`` on deadline expiry and ``None``
    when ``token`` was cancelled first. Exceptions from ``predicate``
    propagate.
    """
    while True:
        if token.cancelled:
            return None
        if predicate():
            return True
        if deadline.expired:
            return False
        if token.wait(deadline.remaining(poll_interval)):
            return None


class KeyedLocks:
    """Registry of re-entrant locks keyed by entity id."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[str, RLock] = {}

    def lock_for(self, key: str) -> RLock:
        """Return the lock owned by ``key``, creating it on first use."""
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of a block."""
        with self.lock_for(key):
            yield

    def discard(self, key: str) -> None:
        """Drop the lock for ``key`` (callers must not be holding it)."""
        with self._guard:
            self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
