"""Fixtures wiring a Worker over the in-process thread runtime."""

from __future__ import annotations

from typing import Iterator

import pytest

from packages.botbox_shared.clock import SystemClock
from packages.botbox_shared.config import BotBoxSettings
from resources.adapters.local_runtime import LocalRuntimeSettings, LocalThreadBotRuntime
from services.action.event_router import InMemoryEventSink
from services.lifecycle.worker import Worker, build_worker


@pytest.fixture()
def local_runtime() -> Iterator[LocalThreadBotRuntime]:
    runtime = LocalThreadBotRuntime(
        settings=LocalRuntimeSettings(heartbeat_interval_seconds=0.01)
    )
    yield runtime
    runtime.shutdown()


@pytest.fixture()
def live_worker(local_runtime: LocalThreadBotRuntime) -> Worker:
    """Worker with short health polling over real heartbeat threads."""
    settings = BotBoxSettings(
        components={
            "service": {
                "bot_runtime": {
                    "start_timeout_seconds": 2.0,
                    "stop_timeout_seconds": 2.0,
                    "health_poll_interval_seconds": 0.01,
                },
                "jobs": {"max_attempts": 3},
            }
        }
    )
    return build_worker(settings=settings, runtime=local_runtime, clock=SystemClock())


@pytest.fixture()
def live_sink(live_worker: Worker) -> Iterator[InMemoryEventSink]:
    recorded = InMemoryEventSink()
    subscription = live_worker.router.subscribe(recorded)
    yield recorded
    subscription.unsubscribe()
