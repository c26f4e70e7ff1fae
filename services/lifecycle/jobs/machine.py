"""State machine governing one job's lifecycle."""

from __future__ import annotations

from collections.abc import Callable
from contextvars import copy_context
from threading import Condition, Event, RLock, Thread

from packages.botbox_shared.clock import Clock
from packages.botbox_shared.concurrency import CancellationToken, Deadline
from packages.botbox_shared.logging import fields, get_logger, log_context
from services.action.event_router.domain import EntityKind, Transition
from services.action.event_router.interfaces import TransitionPublisher
from services.lifecycle.errors import (
    InvalidStateTransition,
    OperationTimeout,
    RetryExhausted,
    WorkFailure,
)
from services.lifecycle.jobs.domain import (
    TERMINAL_STATUSES,
    JobResult,
    JobSnapshot,
    JobStatus,
    WorkExecutor,
)
from services.lifecycle.jobs.retry_policy import RetryPolicy, compute_retry_at

_LOGGER = get_logger(__name__)

_CANCELLED = "cancelled"
_IDLE_POLL_SECONDS = 0.05


class Job:
    """Pending -> Running -> {Completed, Cancelled, Failed}; Failed may retry.

    Every status write happens under the job lock and is published while the
    lock is held, so subscribers see one job's transitions in commit order.
    When ``cancel`` and a finishing ``execute`` race, whichever commits
    first wins and the other side's write is discarded.

    ``guard`` runs under the job lock right before ``Running`` is committed
    and raises to refuse execution (for example when the bot is down).
    ``on_terminal`` receives each final snapshot for archiving.
    """

    def __init__(
        self,
        *,
        job_id: str,
        deployment_id: str,
        work: WorkExecutor,
        publisher: TransitionPublisher,
        clock: Clock,
        retry_policy: RetryPolicy,
        execute_timeout_seconds: float | None = None,
        guard: Callable[[], None] | None = None,
        on_terminal: Callable[[JobSnapshot], None] | None = None,
    ) -> None:
        self._work = work
        self._publisher = publisher
        self._clock = clock
        self._policy = retry_policy
        self._execute_timeout_seconds = execute_timeout_seconds
        self._guard = guard
        self._on_terminal = on_terminal
        self._lock = RLock()
        self._wakeup = Event()
        self._claimed = False
        self._run_token: CancellationToken | None = None
        self._inflight = 0
        self._idle = Condition()
        now = clock.now()
        self._snapshot = JobSnapshot(
            job_id=job_id,
            deployment_id=deployment_id,
            status=JobStatus.PENDING,
            max_attempts=retry_policy.max_attempts,
            created_at=now,
            updated_at=now,
        )

    @property
    def job_id(self) -> str:
        return self._snapshot.job_id

    @property
    def deployment_id(self) -> str:
        return self._snapshot.deployment_id

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    def status(self) -> JobStatus:
        return self._snapshot.status

    def snapshot(self) -> JobSnapshot:
        """Return status, retry count and result read atomically."""
        return self._snapshot

    def execute(
        self,
        *,
        timeout_seconds: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> JobResult:
        """Run the work once and report its outcome.

        Only a ``Pending`` job may execute; anything else raises
        ``InvalidStateTransition`` and changes nothing. A retried job first
        waits (cancellably) for its backoff. Work errors are reported as
        ``JobResult.failure``; cancellation as ``JobResult.skipped``. Exceeding
        the timeout commits ``Failed`` and raises ``OperationTimeout``.

        Work abandoned by an earlier timed-out attempt must return before a
        new attempt starts. The wait shares the execute timeout; when it
        expires the job stays ``Pending`` and ``InvalidStateTransition`` is
        raised.
        """
        with self._lock:
            current = self._snapshot.status
            if current != JobStatus.PENDING or self._claimed:
                raise InvalidStateTransition(
                    entity_kind=EntityKind.JOB,
                    entity_id=self.job_id,
                    current=current,
                    operation="execute",
                    detail="already executing" if self._claimed else "",
                )
            self._claimed = True
            self._wakeup.clear()

        detach = (
            cancel_token.add_callback(lambda: self.cancel(reason=cancel_token.reason))
            if cancel_token is not None
            else None
        )
        timeout = (
            self._execute_timeout_seconds
            if timeout_seconds is None
            else timeout_seconds
        )
        try:
            self._await_retry_at()
            previous_returned = self._await_previous_attempt(timeout)
            with self._lock:
                if self._snapshot.status == JobStatus.CANCELLED:
                    return JobResult.skipped(_CANCELLED)
                if not previous_returned:
                    raise InvalidStateTransition(
                        entity_kind=EntityKind.JOB,
                        entity_id=self.job_id,
                        current=self._snapshot.status,
                        operation="execute",
                        detail="previous attempt still running",
                    )
                if self._guard is not None:
                    self._guard()
                run_token = CancellationToken()
                self._run_token = run_token
                self._commit(JobStatus.RUNNING, result=None, failure_reason="")
            return self._run(run_token, timeout)
        finally:
            if detach is not None:
                detach()
            with self._lock:
                self._claimed = False

    def cancel(self, *, reason: str = _CANCELLED) -> JobStatus:
        """Cancel a pending or running job; a no-op once terminal."""
        with self._lock:
            status = self._snapshot.status
            if status in TERMINAL_STATUSES:
                return status
            run_token = self._run_token
            self._commit(JobStatus.CANCELLED, result=JobResult.skipped(_CANCELLED))
            self._wakeup.set()
        if run_token is not None:
            run_token.cancel(reason or _CANCELLED)
        return JobStatus.CANCELLED

    def retry(self) -> JobStatus:
        """Move a failed job back to ``Pending`` for another attempt.

        Raises ``RetryExhausted`` (the job stays ``Failed``) once the attempt
        budget is spent.
        """
        with self._lock:
            snapshot = self._snapshot
            if snapshot.status != JobStatus.FAILED:
                raise InvalidStateTransition(
                    entity_kind=EntityKind.JOB,
                    entity_id=self.job_id,
                    current=snapshot.status,
                    operation="retry",
                )
            if snapshot.exhausted:
                raise RetryExhausted(
                    job_id=self.job_id,
                    attempts=snapshot.retry_count + 1,
                    max_attempts=snapshot.max_attempts,
                )
            retry_count = snapshot.retry_count + 1
            retry_at = compute_retry_at(
                self._clock.now(),
                retry_count,
                backoff_strategy=self._policy.backoff_strategy,
                backoff_base_seconds=self._policy.backoff_base_seconds,
            )
            self._commit(
                JobStatus.PENDING,
                retry_count=retry_count,
                retry_at=retry_at,
                result=None,
            )
            return JobStatus.PENDING

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until no work thread of this job is still running."""
        with self._idle:
            return self._idle.wait_for(lambda: self._inflight == 0, timeout)

    def _await_previous_attempt(self, timeout: float | None) -> bool:
        """Wait for timed-out work to return; ``False`` when time runs out."""
        deadline = Deadline(timeout)
        with self._idle:
            while self._inflight:
                if self._wakeup.is_set():
                    return True
                if deadline.expired:
                    return False
                self._idle.wait(deadline.remaining(_IDLE_POLL_SECONDS))
        return True

    def _await_retry_at(self) -> None:
        retry_at = self._snapshot.retry_at
        if retry_at is None:
            return
        delay = (retry_at - self._clock.now()).total_seconds()
        if delay > 0:
            self._wakeup.wait(delay)

    def _run(self, run_token: CancellationToken, timeout: float | None) -> JobResult:
        done = Event()
        wake = Event()
        errors: list[Exception] = []
        run_token.add_callback(wake.set)

        def _target() -> None:
            try:
                with log_context(
                    {fields.JOB_ID: self.job_id, fields.DEPLOYMENT_ID: self.deployment_id}
                ):
                    self._work(run_token)
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)
            finally:
                done.set()
                wake.set()
                with self._idle:
                    self._inflight -= 1
                    self._idle.notify_all()

        with self._idle:
            self._inflight += 1
        context = copy_context()
        Thread(
            target=context.run, args=(_target,), name=f"job-{self.job_id}", daemon=True
        ).start()
        wake.wait(timeout)

        with self._lock:
            if self._snapshot.status == JobStatus.CANCELLED:
                if done.is_set():
                    self._log("late job result discarded after cancel")
                return JobResult.skipped(_CANCELLED)
            if not done.is_set():
                reason = f"timeout after {timeout}s"
                self._commit_failure(reason)
                run_token.cancel("timeout")
                raise OperationTimeout(
                    entity_kind=EntityKind.JOB,
                    entity_id=self.job_id,
                    operation="execute",
                    timeout_seconds=timeout or 0.0,
                )
            if errors:
                reason = _failure_reason(errors[0])
                self._commit_failure(reason)
                return JobResult.failure(reason)
            result = JobResult.success()
            self._commit(JobStatus.COMPLETED, result=result)
            return result

    def _commit_failure(self, reason: str) -> None:
        self._commit(
            JobStatus.FAILED,
            failure_reason=reason,
            result=JobResult.failure(reason),
        )

    def _commit(self, status: JobStatus, **changes: object) -> None:
        previous = self._snapshot
        snapshot = previous.model_copy(
            update={
                **changes,
                "status": status,
                "updated_at": self._clock.now(),
                "sequence": previous.sequence + 1,
            }
        )
        self._snapshot = snapshot

        attributes: dict[str, str | int | bool] = {
            "deployment_id": snapshot.deployment_id,
            "retry_count": snapshot.retry_count,
        }
        if status == JobStatus.FAILED:
            attributes.update(
                reason=snapshot.failure_reason,
                max_attempts=snapshot.max_attempts,
                exhausted=snapshot.exhausted,
            )
        with log_context(
            {
                fields.JOB_ID: snapshot.job_id,
                fields.DEPLOYMENT_ID: snapshot.deployment_id,
                fields.FROM_STATE: str(previous.status),
                fields.TO_STATE: str(status),
                fields.SEQUENCE: snapshot.sequence,
            }
        ):
            if status == JobStatus.FAILED:
                _LOGGER.warning("job failed: %s", snapshot.failure_reason)
            else:
                _LOGGER.debug("job transition committed")

        self._publisher.publish(
            Transition(
                entity_kind=EntityKind.JOB,
                entity_id=snapshot.job_id,
                from_state=previous.status,
                to_state=status,
                occurred_at=snapshot.updated_at,
                sequence=snapshot.sequence,
                attributes=attributes,
            )
        )
        if snapshot.archivable and self._on_terminal is not None:
            self._on_terminal(snapshot)

    def _log(self, message: str) -> None:
        with log_context({fields.JOB_ID: self.job_id}):
            _LOGGER.info(message)


def _failure_reason(exc: Exception) -> str:
    if isinstance(exc, WorkFailure):
        return exc.reason
    return f"{type(exc).__name__}: {exc}"
