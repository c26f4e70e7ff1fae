"""Deployment Controller binding bots to running environments."""

from __future__ import annotations

from threading import Lock

from packages.botbox_shared.clock import Clock
from packages.botbox_shared.concurrency import CancellationToken, Deadline, KeyedLocks
from packages.botbox_shared.logging import fields, get_logger, log_context
from services.action.event_router.domain import DeploymentEvent, EntityKind, Transition
from services.action.event_router.interfaces import TransitionPublisher
from services.lifecycle.bot_runtime import (
    BotRuntime,
    BotRuntimeHandle,
    BotRuntimeSettings,
    BotStatus,
)
from services.lifecycle.deployments.config import DeploymentSettings
from services.lifecycle.deployments.domain import Deployment
from services.lifecycle.errors import (
    AlreadyDeployed,
    BotInUse,
    BotOwnershipConflict,
    DeploymentCancelled,
    DeploymentFailed,
    DeploymentNotFound,
    InvalidStateTransition,
    LifecycleError,
)
from services.lifecycle.jobs import (
    InMemoryJobArchive,
    Job,
    JobArchive,
    JobSettings,
    JobSnapshot,
    RetryPolicy,
    WorkExecutor,
    resolve_retry_policy,
)

_LOGGER = get_logger(__name__)


class DeploymentController:
    """Own deployments, bot runtime handles, and the jobs scheduled on them.

    Deploy, undeploy, schedule and recovery for one bot are serialized by
    that bot's lock; different bots proceed in parallel. Registry reads
    never take a bot lock.
    """

    def __init__(
        self,
        *,
        runtime: BotRuntime,
        publisher: TransitionPublisher,
        clock: Clock,
        bot_runtime_settings: BotRuntimeSettings,
        job_settings: JobSettings,
        deployment_settings: DeploymentSettings,
        archive: JobArchive | None = None,
    ) -> None:
        self._runtime = runtime
        self._publisher = publisher
        self._clock = clock
        self._bot_runtime_settings = bot_runtime_settings
        self._job_settings = job_settings
        self._settings = deployment_settings
        self._archive = archive or InMemoryJobArchive()
        self._bot_locks = KeyedLocks()
        self._registry = Lock()
        self._handles: dict[str, BotRuntimeHandle] = {}
        self._owners: dict[str, str] = {}
        self._deployments: dict[str, Deployment] = {}
        self._by_bot: dict[str, str] = {}
        self._jobs: dict[str, Job] = {}
        self._sequences: dict[str, int] = {}

    def handle(self, bot_id: str) -> BotRuntimeHandle:
        """Return the runtime handle for ``bot_id``, creating it on first use."""
        with self._registry:
            handle = self._handles.get(bot_id)
            if handle is None:
                handle = BotRuntimeHandle(
                    bot_id=bot_id,
                    runtime=self._runtime,
                    publisher=self._publisher,
                    settings=self._bot_runtime_settings,
                    clock=self._clock,
                )
                self._handles[bot_id] = handle
            return handle

    def register_bot(self, bot_id: str, *, owner_id: str) -> None:
        """Record ``owner_id`` as the only BotBox allowed to hold ``bot_id``."""
        with self._registry:
            current = self._owners.get(bot_id)
            if current is not None and current != owner_id:
                raise BotOwnershipConflict(bot_id=bot_id, owner_id=current)
            self._owners[bot_id] = owner_id

    def release_bot(self, bot_id: str) -> None:
        """Forget an undeployed bot and its handle."""
        with self._bot_locks.hold(bot_id):
            deployment_id = self._by_bot.get(bot_id)
            if deployment_id is not None:
                raise BotInUse(bot_id=bot_id, deployment_id=deployment_id)
            with self._registry:
                self._owners.pop(bot_id, None)
                self._handles.pop(bot_id, None)
        self._bot_locks.discard(bot_id)

    def owner_of(self, bot_id: str) -> str | None:
        with self._registry:
            return self._owners.get(bot_id)

    def deploy(
        self,
        bot_id: str,
        *,
        environment: str | None = None,
        cancel_token: CancellationToken | None = None,
        timeout_seconds: float | None = None,
    ) -> Deployment:
        """Start ``bot_id`` and create its deployment.

        Requires the bot to be ``Stopped`` and undeployed. When the bot fails
        to start no deployment exists and ``DeploymentFailed`` is raised. A
        cancelled deploy raises ``DeploymentCancelled`` and leaves the bot
        ``Stopped``; a token cancelled up front publishes nothing.
        """
        resolved_environment = environment or self._settings.default_environment
        with self._bot_locks.hold(bot_id):
            existing = self._by_bot.get(bot_id)
            if existing is not None:
                raise AlreadyDeployed(bot_id=bot_id, deployment_id=existing)
            handle = self.handle(bot_id)
            status = handle.status()
            if status != BotStatus.STOPPED:
                raise InvalidStateTransition(
                    entity_kind=EntityKind.BOT,
                    entity_id=bot_id,
                    current=status,
                    operation="deploy",
                )

            token = cancel_token or CancellationToken()
            if token.cancelled:
                raise DeploymentCancelled(bot_id=bot_id, reason=token.reason)

            deployment_id = self._clock.new_id()
            attributes = {"bot_id": bot_id, "environment": resolved_environment}
            self._publish(
                deployment_id, DeploymentEvent.STARTED, attributes=attributes
            )
            try:
                outcome = handle.start(
                    cancel_token=token, timeout_seconds=timeout_seconds
                )
            except LifecycleError as exc:
                self._abandon(
                    deployment_id, DeploymentEvent.FAILED, exc.message, attributes
                )
                raise DeploymentFailed(bot_id=bot_id, reason=exc.message) from exc
            if outcome != BotStatus.RUNNING:
                reason = handle.snapshot().reason or f"bot ended {outcome}"
                if token.cancelled and outcome == BotStatus.STOPPED:
                    self._abandon(
                        deployment_id, DeploymentEvent.CANCELLED, reason, attributes
                    )
                    raise DeploymentCancelled(bot_id=bot_id, reason=reason)
                self._abandon(deployment_id, DeploymentEvent.FAILED, reason, attributes)
                raise DeploymentFailed(bot_id=bot_id, reason=reason)

            now = self._clock.now()
            deployment = Deployment(
                id=deployment_id,
                bot_id=bot_id,
                environment=resolved_environment,
                created_at=now,
                updated_at=now,
            )
            with self._registry:
                self._deployments[deployment_id] = deployment
                self._by_bot[bot_id] = deployment_id
            self._publish(
                deployment_id, DeploymentEvent.SUCCEEDED, attributes=attributes
            )
            return deployment

    def undeploy(
        self,
        deployment_id: str,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """Cancel outstanding jobs, stop the bot, and invalidate the deployment.

        Job cancellation completes (or times out) before the bot is stopped.
        A failed stop still invalidates the deployment before the error is
        raised; the bot is then ``Unknown`` and needs ``reset``.
        """
        deployment = self.deployment(deployment_id)
        with self._bot_locks.hold(deployment.bot_id):
            deployment = self.deployment(deployment_id)
            jobs = self.jobs(deployment_id)
            for job in jobs:
                job.cancel(reason="undeploy")
            deadline = Deadline(self._settings.cancel_timeout_seconds)
            for job in jobs:
                if not job.wait_idle(deadline.remaining()):
                    with log_context(
                        {fields.JOB_ID: job.job_id, fields.DEPLOYMENT_ID: deployment_id}
                    ):
                        _LOGGER.warning("job work still running after cancel timeout")

            stop_error: LifecycleError | None = None
            try:
                self.handle(deployment.bot_id).stop(cancel_token=cancel_token)
            except LifecycleError as exc:
                stop_error = exc

            with self._registry:
                self._deployments.pop(deployment_id, None)
                self._by_bot.pop(deployment.bot_id, None)
                for job in jobs:
                    self._jobs.pop(job.job_id, None)
            for job in jobs:
                self._archive.record(job.snapshot())
            self._publish(
                deployment_id,
                DeploymentEvent.UNDEPLOYED,
                attributes={
                    "bot_id": deployment.bot_id,
                    "environment": deployment.environment,
                    "bot_status": str(self.handle(deployment.bot_id).status()),
                },
            )
            with self._registry:
                self._sequences.pop(deployment_id, None)
            if stop_error is not None:
                raise stop_error

    def schedule(
        self,
        deployment_id: str,
        work: WorkExecutor,
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> Job:
        """Create a ``Pending`` job bound to a live deployment."""
        deployment = self.deployment(deployment_id)
        with self._bot_locks.hold(deployment.bot_id):
            deployment = self.deployment(deployment_id)
            handle = self.handle(deployment.bot_id)

            def _guard() -> None:
                if deployment_id not in self._deployments:
                    raise DeploymentNotFound(deployment_id=deployment_id)
                status = handle.status()
                if status != BotStatus.RUNNING:
                    raise InvalidStateTransition(
                        entity_kind=EntityKind.BOT,
                        entity_id=deployment.bot_id,
                        current=status,
                        operation="execute jobs",
                    )

            job = Job(
                job_id=self._clock.new_id(),
                deployment_id=deployment_id,
                work=work,
                publisher=self._publisher,
                clock=self._clock,
                retry_policy=resolve_retry_policy(
                    retry_policy, settings=self._job_settings
                ),
                execute_timeout_seconds=self._job_settings.execute_timeout_seconds,
                guard=_guard,
                on_terminal=self._archive.record,
            )
            with self._registry:
                self._jobs[job.job_id] = job
            return job

    def restart(
        self,
        deployment_id: str,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> BotStatus:
        """Explicitly start the bot of a live deployment after a failure."""
        deployment = self.deployment(deployment_id)
        with self._bot_locks.hold(deployment.bot_id):
            self.deployment(deployment_id)
            return self.handle(deployment.bot_id).start(cancel_token=cancel_token)

    def reset(
        self,
        bot_id: str,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> BotStatus:
        """Stop an undeployed bot left ``Unknown`` so it can be deployed again."""
        with self._bot_locks.hold(bot_id):
            deployment_id = self._by_bot.get(bot_id)
            handle = self.handle(bot_id)
            if deployment_id is not None:
                raise InvalidStateTransition(
                    entity_kind=EntityKind.BOT,
                    entity_id=bot_id,
                    current=handle.status(),
                    operation="reset",
                    detail=f"bot is deployed as {deployment_id}",
                )
            return handle.stop(cancel_token=cancel_token)

    def deployment(self, deployment_id: str) -> Deployment:
        with self._registry:
            deployment = self._deployments.get(deployment_id)
        if deployment is None:
            raise DeploymentNotFound(deployment_id=deployment_id)
        return deployment

    def deployment_for_bot(self, bot_id: str) -> Deployment | None:
        with self._registry:
            deployment_id = self._by_bot.get(bot_id)
            return None if deployment_id is None else self._deployments[deployment_id]

    def deployments(self) -> list[Deployment]:
        with self._registry:
            return list(self._deployments.values())

    def deployment_status(self, deployment_id: str) -> BotStatus:
        """Return the status of the deployment's bot."""
        deployment = self.deployment(deployment_id)
        return self.handle(deployment.bot_id).status()

    def jobs(self, deployment_id: str) -> list[Job]:
        self.deployment(deployment_id)
        with self._registry:
            return [
                job for job in self._jobs.values() if job.deployment_id == deployment_id
            ]

    def job(self, job_id: str) -> Job | None:
        with self._registry:
            return self._jobs.get(job_id)

    def archived_jobs(self, *, deployment_id: str | None = None) -> list[JobSnapshot]:
        return self._archive.list(deployment_id=deployment_id)

    def _abandon(
        self,
        deployment_id: str,
        event: DeploymentEvent,
        reason: str,
        attributes: dict[str, str],
    ) -> None:
        with log_context(
            {fields.DEPLOYMENT_ID: deployment_id, fields.BOT_ID: attributes["bot_id"]}
        ):
            if event == DeploymentEvent.FAILED:
                _LOGGER.warning("deployment failed: %s", reason)
            else:
                _LOGGER.info("deployment cancelled: %s", reason)
        self._publish(
            deployment_id,
            event,
            attributes={**attributes, "reason": reason},
        )
        with self._registry:
            self._sequences.pop(deployment_id, None)

    def _publish(
        self,
        deployment_id: str,
        event: DeploymentEvent,
        *,
        attributes: dict[str, str],
    ) -> None:
        with self._registry:
            previous = self._sequences.get(deployment_id, 0)
            self._sequences[deployment_id] = previous + 1
        self._publisher.publish(
            Transition(
                entity_kind=EntityKind.DEPLOYMENT,
                entity_id=deployment_id,
                from_state=_PREVIOUS_EVENT.get(event, ""),
                to_state=event,
                occurred_at=self._clock.now(),
                sequence=previous + 1,
                attributes=attributes,
            )
        )


_PREVIOUS_EVENT = {
    DeploymentEvent.SUCCEEDED: DeploymentEvent.STARTED,
    DeploymentEvent.FAILED: DeploymentEvent.STARTED,
    DeploymentEvent.CANCELLED: DeploymentEvent.STARTED,
    DeploymentEvent.UNDEPLOYED: DeploymentEvent.SUCCEEDED,
}
