"""Worker orchestration tests."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from packages.botbox_shared.concurrency import CancellationToken
from packages.botbox_shared.config import BotBoxSettings
from services.action.event_router import (
    DefaultEventRouter,
    InMemoryEventSink,
    NotificationKind,
)
from services.lifecycle.bot_runtime import Bot, BotStatus
from services.lifecycle.errors import (
    AlreadyDeployed,
    DeploymentCancelled,
    DeploymentFailed,
    DeploymentNotFound,
    OrchestrationError,
)
from services.lifecycle.jobs import JobResult, JobStatus
from services.lifecycle.worker import DefaultWorker, build_worker
from tests.helpers import FakeBotRuntime, StepClock


def _ok(token: CancellationToken) -> None:
    del token


class _FakeExplodingController:
    """Controller stand-in raising non-lifecycle errors."""

    def deploy(self, bot_id: str, **_: Any) -> None:
        raise KeyError(bot_id)

    def undeploy(self, deployment_id: str, **_: Any) -> None:
        raise RuntimeError("registry corrupted")


def test_deploy_accepts_bot_or_id(worker: DefaultWorker) -> None:
    """Bots may be passed as entities or by id."""
    bot = Bot.new(clock=StepClock(), name="crawler")

    deployment = worker.deploy(bot=bot, environment="prod")

    assert deployment.bot_id == bot.id
    assert worker.status(bot_id=bot.id) == BotStatus.RUNNING
    assert worker.deploy(bot="other").bot_id == "other"


def test_lifecycle_errors_pass_through(worker: DefaultWorker) -> None:
    """Controller precondition errors reach the caller unchanged."""
    worker.deploy(bot="b1")

    with pytest.raises(AlreadyDeployed):
        worker.deploy(bot="b1")
    with pytest.raises(DeploymentNotFound):
        worker.undeploy(deployment_id="missing")


def test_unexpected_deploy_errors_become_deployment_failed(
    router: DefaultEventRouter,
) -> None:
    """Collaborator bugs during deploy surface as DeploymentFailed."""
    worker = DefaultWorker(
        controller=_FakeExplodingController(),  # type: ignore[arg-type]
        router=router,
    )

    with pytest.raises(DeploymentFailed) as exc_info:
        worker.deploy(bot="b1")

    assert "KeyError" in exc_info.value.reason


def test_unexpected_errors_elsewhere_become_orchestration_errors(
    router: DefaultEventRouter,
) -> None:
    """Other operations wrap unexpected errors in OrchestrationError."""
    worker = DefaultWorker(
        controller=_FakeExplodingController(),  # type: ignore[arg-type]
        router=router,
    )

    with pytest.raises(OrchestrationError) as exc_info:
        worker.undeploy(deployment_id="d1")

    assert "undeploy failed" in str(exc_info.value)


def test_schedule_and_undeploy_round_trip(
    worker: DefaultWorker, sink: InMemoryEventSink
) -> None:
    """Jobs run against a deployment and undeploy cancels the rest."""
    deployment = worker.deploy(bot="b1")
    done = worker.schedule(deployment_id=deployment.id, work=_ok)
    waiting = worker.schedule(deployment_id=deployment.id, work=_ok)

    assert done.execute() == JobResult.success()
    assert {job.job_id for job in worker.jobs(deployment_id=deployment.id)} == {
        done.job_id,
        waiting.job_id,
    }
    worker.undeploy(deployment_id=deployment.id)

    assert waiting.status() == JobStatus.CANCELLED
    assert worker.deployments() == []
    assert worker.status(bot_id="b1") == BotStatus.STOPPED
    assert len(worker.archived_jobs(deployment_id=deployment.id)) == 2
    assert sink.of_kind(NotificationKind.JOB_SUCCEEDED)[0].entity_id == done.job_id


def test_check_health_reports_and_marks_crashed_bots(
    worker: DefaultWorker, fake_runtime: FakeBotRuntime
) -> None:
    """Health checks probe every live deployment."""
    healthy = worker.deploy(bot="b1")
    crashed = worker.deploy(bot="b2")
    fake_runtime.crash("b2")

    statuses = worker.check_health()

    assert statuses == {healthy.id: BotStatus.RUNNING, crashed.id: BotStatus.UNKNOWN}


def test_recover_restarts_unknown_bot(
    worker: DefaultWorker, fake_runtime: FakeBotRuntime
) -> None:
    """recover is the caller-driven restart of an Unknown deployment."""
    deployment = worker.deploy(bot="b1")
    fake_runtime.crash("b1")
    worker.check_health()

    assert worker.recover(deployment_id=deployment.id) == BotStatus.RUNNING


def test_reset_allows_redeploy_after_failed_start(
    worker: DefaultWorker, fake_runtime: FakeBotRuntime
) -> None:
    """A bot left Unknown by a failed deploy is reset then redeployed."""
    fake_runtime.launch_errors["b1"] = RuntimeError("boom")
    with pytest.raises(DeploymentFailed):
        worker.deploy(bot="b1")
    del fake_runtime.launch_errors["b1"]

    assert worker.reset(bot_id="b1") == BotStatus.STOPPED
    assert worker.deploy(bot="b1").bot_id == "b1"


def test_public_operations_log_invocation_and_completion(
    worker: DefaultWorker, caplog: pytest.LogCaptureFixture
) -> None:
    """Instrumented operations log one invocation and one completion."""
    with caplog.at_level(logging.INFO):
        worker.deploy(bot="b1", principal="alice")

    messages = [
        record.getMessage()
        for record in caplog.records
        if record.name == "services.lifecycle.worker.implementation"
    ]
    assert messages == ["Public API invocation", "Public API completion"]


def test_build_worker_wires_settings_and_runtime() -> None:
    """The factory builds a working worker over an injected runtime."""
    settings = BotBoxSettings(
        components={
            "service": {
                "bot_runtime": {"health_poll_interval_seconds": 0.01},
                "deployments": {"default_environment": "staging"},
            }
        }
    )
    worker = build_worker(settings=settings, runtime=FakeBotRuntime(), clock=StepClock())
    sink = InMemoryEventSink()
    worker.router.subscribe(sink)

    deployment = worker.deploy(bot="b1")

    assert deployment.environment == "staging"
    assert [item.kind for item in sink.records] == [
        NotificationKind.DEPLOYMENT_STARTED,
        NotificationKind.DEPLOYMENT_SUCCEEDED,
    ]


def test_cancelled_deploy_is_not_reported_as_failure(
    worker: DefaultWorker, sink: InMemoryEventSink
) -> None:
    """A caller's cancellation passes through without alerts or translation."""
    token = CancellationToken()
    token.cancel("operator abort")

    with pytest.raises(DeploymentCancelled):
        worker.deploy(bot="b1", cancel_token=token)

    assert sink.alerts() == []
    assert worker.status(bot_id="b1") == BotStatus.STOPPED
    assert worker.deploy(bot="b1").bot_id == "b1"
