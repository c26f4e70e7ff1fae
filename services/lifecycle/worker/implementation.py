"""Concrete Worker implementation."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager

from packages.botbox_shared.concurrency import CancellationToken
from packages.botbox_shared.logging import (
    fields,
    get_logger,
    log_context,
    public_api_instrumented,
)
from services.action.event_router.service import EventRouter
from services.lifecycle.bot_runtime import Bot, BotStatus
from services.lifecycle.deployments import Deployment, DeploymentController
from services.lifecycle.errors import (
    DeploymentFailed,
    LifecycleError,
    OrchestrationError,
)
from services.lifecycle.jobs import Job, JobSnapshot, RetryPolicy, WorkExecutor
from services.lifecycle.worker.component import SERVICE_COMPONENT_ID
from services.lifecycle.worker.service import Worker

_LOGGER = get_logger(__name__)


class DefaultWorker(Worker):
    """Worker delegating to one Deployment Controller."""

    def __init__(self, *, controller: DeploymentController, router: EventRouter) -> None:
        self._controller = controller
        self._router = router

    @property
    def router(self) -> EventRouter:
        return self._router

    @property
    def controller(self) -> DeploymentController:
        return self._controller

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=SERVICE_COMPONENT_ID,
        id_fields=("environment",),
    )
    def deploy(
        self,
        *,
        bot: Bot | str,
        environment: str | None = None,
        principal: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Deployment:
        bot_id = bot if isinstance(bot, str) else bot.id
        with log_context({fields.BOT_ID: bot_id}):
            with _translated(
                lambda reason: DeploymentFailed(bot_id=bot_id, reason=reason)
            ):
                return self._controller.deploy(
                    bot_id, environment=environment, cancel_token=cancel_token
                )

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=SERVICE_COMPONENT_ID,
        id_fields=("deployment_id",),
    )
    def undeploy(
        self,
        *,
        deployment_id: str,
        principal: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        with _translated(_orchestration("undeploy")):
            self._controller.undeploy(deployment_id, cancel_token=cancel_token)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=SERVICE_COMPONENT_ID,
        id_fields=("deployment_id",),
    )
    def schedule(
        self,
        *,
        deployment_id: str,
        work: WorkExecutor,
        retry_policy: RetryPolicy | None = None,
        principal: str | None = None,
    ) -> Job:
        with _translated(_orchestration("schedule")):
            return self._controller.schedule(
                deployment_id, work, retry_policy=retry_policy
            )

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=SERVICE_COMPONENT_ID,
        id_fields=("deployment_id",),
    )
    def recover(
        self,
        *,
        deployment_id: str,
        principal: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> BotStatus:
        with _translated(_orchestration("recover")):
            return self._controller.restart(deployment_id, cancel_token=cancel_token)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=SERVICE_COMPONENT_ID,
        id_fields=("bot_id",),
    )
    def reset(
        self,
        *,
        bot_id: str,
        principal: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> BotStatus:
        with _translated(_orchestration("reset")):
            return self._controller.reset(bot_id, cancel_token=cancel_token)

    @public_api_instrumented(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    def check_health(self) -> dict[str, BotStatus]:
        statuses: dict[str, BotStatus] = {}
        for deployment in self._controller.deployments():
            with _translated(_orchestration("check health")):
                handle = self._controller.handle(deployment.bot_id)
                statuses[deployment.id] = handle.check_health()
        return statuses

    def status(self, *, bot_id: str) -> BotStatus:
        return self._controller.handle(bot_id).status()

    def deployments(self) -> list[Deployment]:
        return self._controller.deployments()

    def jobs(self, *, deployment_id: str) -> list[Job]:
        return self._controller.jobs(deployment_id)

    def archived_jobs(self, *, deployment_id: str | None = None) -> list[JobSnapshot]:
        return self._controller.archived_jobs(deployment_id=deployment_id)

    def register_bot(self, *, bot_id: str, owner_id: str) -> None:
        self._controller.register_bot(bot_id, owner_id=owner_id)

    def release_bot(self, *, bot_id: str) -> None:
        self._controller.release_bot(bot_id)

    def owner_of(self, *, bot_id: str) -> str | None:
        return self._controller.owner_of(bot_id)


def _orchestration(operation: str) -> Callable[[str], LifecycleError]:
    return lambda reason: OrchestrationError(f"{operation} failed: {reason}")


@contextmanager
def _translated(factory: Callable[[str], LifecycleError]) -> Iterator[None]:
    """Pass lifecycle errors through; wrap anything else with ``factory``."""
    try:
        yield
    except LifecycleError:
        raise
    except Exception as exc:
        raise factory(f"{type(exc).__name__}: {exc}") from exc
