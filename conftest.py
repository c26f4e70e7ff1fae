"""Repository-wide pytest fixtures for lifecycle components."""

from __future__ import annotations

from typing import Iterator

import pytest

from services.action.event_router import (
    DefaultEventRouter,
    EventRouterSettings,
    InMemoryEventSink,
)
from services.lifecycle.bot_runtime import BotRuntimeSettings
from services.lifecycle.deployments import DeploymentController, DeploymentSettings
from services.lifecycle.jobs import InMemoryJobArchive, JobSettings
from services.lifecycle.worker import DefaultWorker
from tests.helpers import FakeBotRuntime, RecordingPublisher, StepClock


@pytest.fixture()
def clock() -> StepClock:
    return StepClock()


@pytest.fixture()
def fake_runtime() -> FakeBotRuntime:
    return FakeBotRuntime()


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def fast_bot_settings() -> BotRuntimeSettings:
    """Short timeouts so failure paths finish quickly."""
    return BotRuntimeSettings(
        start_timeout_seconds=0.2,
        stop_timeout_seconds=0.2,
        health_poll_interval_seconds=0.01,
    )


@pytest.fixture()
def router(clock: StepClock) -> DefaultEventRouter:
    return DefaultEventRouter(settings=EventRouterSettings(), clock=clock)


@pytest.fixture()
def sink(router: DefaultEventRouter) -> Iterator[InMemoryEventSink]:
    """Sink subscribed to ``router`` for the duration of one test."""
    recorded = InMemoryEventSink()
    subscription = router.subscribe(recorded)
    yield recorded
    subscription.unsubscribe()


@pytest.fixture()
def archive() -> InMemoryJobArchive:
    return InMemoryJobArchive()


@pytest.fixture()
def controller(
    fake_runtime: FakeBotRuntime,
    router: DefaultEventRouter,
    clock: StepClock,
    fast_bot_settings: BotRuntimeSettings,
    archive: InMemoryJobArchive,
) -> DeploymentController:
    return DeploymentController(
        runtime=fake_runtime,
        publisher=router,
        clock=clock,
        bot_runtime_settings=fast_bot_settings,
        job_settings=JobSettings(),
        deployment_settings=DeploymentSettings(cancel_timeout_seconds=1.0),
        archive=archive,
    )


@pytest.fixture()
def worker(
    controller: DeploymentController, router: DefaultEventRouter
) -> DefaultWorker:
    return DefaultWorker(controller=controller, router=router)
