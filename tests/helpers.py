"""Shared fakes for lifecycle tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from threading import Event, Lock

from packages.botbox_shared.concurrency import CancellationToken
from services.action.event_router.domain import Transition


class StepClock:
    """Deterministic clock advancing one millisecond per ``now`` call."""

    def __init__(self, start: datetime | None = None) -> None:
        self._lock = Lock()
        self._current = start or datetime(2026, 1, 1, tzinfo=UTC)
        self._counter = 0

    def now(self) -> datetime:
        with self._lock:
            self._current += timedelta(milliseconds=1)
            return self._current

    def new_id(self) -> str:
        with self._lock:
            self._counter += 1
            return f"id-{self._counter:04d}"


class FakeBotRuntime:
    """Scriptable ``BotRuntime``; healthy and terminated flip instantly."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.calls: list[tuple[str, str]] = []
        self.launch_errors: dict[str, Exception] = {}
        self.terminate_errors: dict[str, Exception] = {}
        self.never_healthy: set[str] = set()
        self.never_terminates: set[str] = set()
        self.launch_gates: dict[str, Event] = {}
        self.cancel_on_launch: dict[str, str] = {}
        self.cancel_on_terminate: dict[str, str] = {}
        self._running: set[str] = set()

    def launch(self, bot_id: str, *, cancel_token: CancellationToken) -> None:
        with self._lock:
            self.calls.append(("launch", bot_id))
        gate = self.launch_gates.get(bot_id)
        if gate is not None:
            gate.wait(5.0)
        error = self.launch_errors.get(bot_id)
        if error is not None:
            raise error
        with self._lock:
            self._running.add(bot_id)
        if bot_id in self.cancel_on_launch:
            cancel_token.cancel(self.cancel_on_launch[bot_id])

    def is_healthy(self, bot_id: str) -> bool:
        with self._lock:
            return bot_id in self._running and bot_id not in self.never_healthy

    def terminate(self, bot_id: str, *, cancel_token: CancellationToken) -> None:
        with self._lock:
            self.calls.append(("terminate", bot_id))
        error = self.terminate_errors.get(bot_id)
        if error is not None:
            raise error
        if bot_id in self.cancel_on_terminate:
            cancel_token.cancel(self.cancel_on_terminate[bot_id])
        if bot_id in self.never_terminates:
            return
        with self._lock:
            self._running.discard(bot_id)

    def is_terminated(self, bot_id: str) -> bool:
        with self._lock:
            return bot_id not in self._running

    def crash(self, bot_id: str) -> None:
        with self._lock:
            self._running.discard(bot_id)


class RecordingPublisher:
    """``TransitionPublisher`` keeping every published transition."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.transitions: list[Transition] = []

    def publish(self, transition: Transition) -> None:
        with self._lock:
            self.transitions.append(transition)

    def states(self, entity_id: str) -> list[str]:
        with self._lock:
            return [
                str(item.to_state)
                for item in self.transitions
                if item.entity_id == entity_id
            ]
