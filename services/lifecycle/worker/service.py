"""Authoritative in-process Python API for the Worker."""

from __future__ import annotations

from abc import ABC, abstractmethod

from packages.botbox_shared.clock import Clock
from packages.botbox_shared.concurrency import CancellationToken
from packages.botbox_shared.config import BotBoxSettings
from services.action.event_router.service import EventRouter
from services.lifecycle.bot_runtime import Bot, BotRuntime, BotStatus
from services.lifecycle.deployments import Deployment
from services.lifecycle.jobs import (
    Job,
    JobArchive,
    JobSnapshot,
    RetryPolicy,
    WorkExecutor,
)


class Worker(ABC):
    """Public orchestration API over the Deployment Controller.

    Authorization is the caller's job; ``principal`` is recorded for
    observability only. Controller failures surface as lifecycle errors and
    unexpected collaborator failures are translated before reaching callers.
    """

    @property
    @abstractmethod
    def router(self) -> EventRouter:
        """Return the router receiving every lifecycle transition."""

    @abstractmethod
    def deploy(
        self,
        *,
        bot: Bot | str,
        environment: str | None = None,
        principal: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Deployment:
        """Start one stopped bot and return its new deployment."""

    @abstractmethod
    def undeploy(
        self,
        *,
        deployment_id: str,
        principal: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """Cancel jobs, stop the bot, and invalidate one deployment."""

    @abstractmethod
    def schedule(
        self,
        *,
        deployment_id: str,
        work: WorkExecutor,
        retry_policy: RetryPolicy | None = None,
        principal: str | None = None,
    ) -> Job:
        """Schedule one job against a live deployment."""

    @abstractmethod
    def recover(
        self,
        *,
        deployment_id: str,
        principal: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> BotStatus:
        """Restart the bot of a live deployment that entered ``Unknown``."""

    @abstractmethod
    def reset(
        self,
        *,
        bot_id: str,
        principal: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> BotStatus:
        """Stop an undeployed ``Unknown`` bot so it can be deployed again."""

    @abstractmethod
    def check_health(self) -> dict[str, BotStatus]:
        """Probe every deployed bot; return status keyed by deployment id."""

    @abstractmethod
    def status(self, *, bot_id: str) -> BotStatus:
        """Return one bot's status without blocking."""

    @abstractmethod
    def deployments(self) -> list[Deployment]:
        """Return every live deployment."""

    @abstractmethod
    def jobs(self, *, deployment_id: str) -> list[Job]:
        """Return the live jobs of one deployment."""

    @abstractmethod
    def archived_jobs(self, *, deployment_id: str | None = None) -> list[JobSnapshot]:
        """Return final job snapshots, optionally for one deployment."""

    @abstractmethod
    def register_bot(self, *, bot_id: str, owner_id: str) -> None:
        """Claim exclusive ownership of one bot for one BotBox."""

    @abstractmethod
    def release_bot(self, *, bot_id: str) -> None:
        """Drop ownership of one undeployed bot."""

    @abstractmethod
    def owner_of(self, *, bot_id: str) -> str | None:
        """Return the BotBox id holding one bot, if any."""


def build_worker(
    *,
    settings: BotBoxSettings,
    runtime: BotRuntime | None = None,
    router: EventRouter | None = None,
    clock: Clock | None = None,
    archive: JobArchive | None = None,
) -> Worker:
    """Build the default Worker and its controller from typed settings."""
    from packages.botbox_shared.clock import SystemClock
    from resources.adapters.local_runtime import (
        LocalThreadBotRuntime,
        resolve_local_runtime_settings,
    )
    from services.action.event_router.service import build_event_router
    from services.lifecycle.bot_runtime import resolve_bot_runtime_settings
    from services.lifecycle.deployments import (
        DeploymentController,
        resolve_deployment_settings,
    )
    from services.lifecycle.jobs import resolve_job_settings
    from services.lifecycle.worker.implementation import DefaultWorker

    resolved_clock = clock or SystemClock()
    resolved_router = router or build_event_router(
        settings=settings, clock=resolved_clock
    )
    controller = DeploymentController(
        runtime=runtime
        or LocalThreadBotRuntime(settings=resolve_local_runtime_settings(settings)),
        publisher=resolved_router,
        clock=resolved_clock,
        bot_runtime_settings=resolve_bot_runtime_settings(settings),
        job_settings=resolve_job_settings(settings),
        deployment_settings=resolve_deployment_settings(settings),
        archive=archive,
    )
    return DefaultWorker(controller=controller, router=resolved_router)
