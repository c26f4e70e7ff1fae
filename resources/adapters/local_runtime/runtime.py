"""In-process bot runtime with one heartbeat thread per bot."""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Event, Lock, Thread
from time import monotonic

from packages.botbox_shared.concurrency import CancellationToken
from packages.botbox_shared.logging import fields, get_logger, log_context
from resources.adapters.local_runtime.config import LocalRuntimeSettings

_LOGGER = get_logger(__name__)

_STALE_HEARTBEATS = 3


@dataclass
class _BotThread:
    stop_event: Event = field(default_factory=Event)
    crashed: Event = field(default_factory=Event)
    last_heartbeat: float | None = None
    thread: Thread | None = None


class LocalThreadBotRuntime:
    """``BotRuntime`` that runs each bot as a daemon heartbeat loop.

    A bot is healthy while its loop is alive and its last heartbeat is
    fresh. ``crash`` simulates an unexpected exit for recovery drills.
    """

    def __init__(self, *, settings: LocalRuntimeSettings) -> None:
        self._settings = settings
        self._lock = Lock()
        self._bots: dict[str, _BotThread] = {}

    def launch(self, bot_id: str, *, cancel_token: CancellationToken) -> None:
        """Start the heartbeat loop for ``bot_id`` unless it already runs."""
        with self._lock:
            current = self._bots.get(bot_id)
            if current is not None and _alive(current):
                return
            state = _BotThread()
            state.thread = Thread(
                target=self._run_loop,
                args=(bot_id, state),
                name=f"bot-{bot_id}",
                daemon=True,
            )
            self._bots[bot_id] = state
            state.thread.start()
        with log_context({fields.BOT_ID: bot_id}):
            _LOGGER.info("local bot launched")

    def is_healthy(self, bot_id: str) -> bool:
        with self._lock:
            state = self._bots.get(bot_id)
        if state is None or not _alive(state) or state.last_heartbeat is None:
            return False
        age = monotonic() - state.last_heartbeat
        return age <= self._settings.heartbeat_interval_seconds * _STALE_HEARTBEATS

    def terminate(self, bot_id: str, *, cancel_token: CancellationToken) -> None:
        """Ask the loop for ``bot_id`` to exit; returns without waiting."""
        with self._lock:
            state = self._bots.get(bot_id)
        if state is not None:
            state.stop_event.set()

    def is_terminated(self, bot_id: str) -> bool:
        with self._lock:
            state = self._bots.get(bot_id)
        return state is None or not _alive(state)

    def crash(self, bot_id: str) -> None:
        """Make the loop for ``bot_id`` exit as if the bot died."""
        with self._lock:
            state = self._bots.get(bot_id)
        if state is not None:
            state.crashed.set()
            state.stop_event.set()

    def shutdown(self, *, timeout_seconds: float = 1.0) -> None:
        """Stop every loop and wait briefly for the threads to exit."""
        with self._lock:
            states = list(self._bots.values())
        for state in states:
            state.stop_event.set()
        for state in states:
            if state.thread is not None:
                state.thread.join(timeout_seconds)

    def _run_loop(self, bot_id: str, state: _BotThread) -> None:
        if state.stop_event.wait(self._settings.launch_delay_seconds):
            return
        while not state.stop_event.is_set():
            state.last_heartbeat = monotonic()
            state.stop_event.wait(self._settings.heartbeat_interval_seconds)
        with log_context({fields.BOT_ID: bot_id}):
            if state.crashed.is_set():
                _LOGGER.warning("local bot exited unexpectedly")
            else:
                _LOGGER.info("local bot stopped")


def _alive(state: _BotThread) -> bool:
    return state.thread is not None and state.thread.is_alive()
