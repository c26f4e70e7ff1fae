"""Job State Machine tests."""

from __future__ import annotations

from collections.abc import Callable
from threading import Event, Lock, Thread

import pytest

from packages.botbox_shared.concurrency import CancellationToken
from services.action.event_router import (
    AlertKind,
    DefaultEventRouter,
    InMemoryEventSink,
    NotificationKind,
    Severity,
)
from services.lifecycle.errors import (
    InvalidStateTransition,
    OperationTimeout,
    RetryExhausted,
    WorkFailure,
)
from services.lifecycle.jobs import (
    Job,
    JobOutcome,
    JobResult,
    JobSnapshot,
    JobStatus,
    RetryPolicy,
    WorkExecutor,
)
from tests.helpers import RecordingPublisher, StepClock


def _job(
    work: WorkExecutor,
    publisher: object,
    *,
    policy: RetryPolicy | None = None,
    guard: Callable[[], None] | None = None,
    on_terminal: Callable[[JobSnapshot], None] | None = None,
) -> Job:
    return Job(
        job_id="j1",
        deployment_id="d1",
        work=work,
        publisher=publisher,  # type: ignore[arg-type]
        clock=StepClock(),
        retry_policy=policy or RetryPolicy(),
        guard=guard,
        on_terminal=on_terminal,
    )


def _ok(token: CancellationToken) -> None:
    del token


def _fail(token: CancellationToken) -> None:
    del token
    raise WorkFailure("disk full")


def _blocking(release: Event, started: Event | None = None) -> WorkExecutor:
    def _work(token: CancellationToken) -> None:
        if started is not None:
            started.set()
        release.wait(5.0)

    return _work


def _wait_for(predicate: Callable[[], bool]) -> None:
    for _ in range(500):
        if predicate():
            return
        Event().wait(0.01)
    raise AssertionError("condition never held")


def test_execute_success_completes(publisher: RecordingPublisher) -> None:
    """Successful work ends Completed with a Success result."""
    job = _job(_ok, publisher)

    result = job.execute()

    assert result == JobResult.success()
    assert job.status() == JobStatus.COMPLETED
    assert publisher.states("j1") == ["running", "completed"]


def test_work_failure_reason_is_reported_verbatim(
    publisher: RecordingPublisher,
) -> None:
    """WorkFailure reasons flow into the result and snapshot unchanged."""
    job = _job(_fail, publisher)

    result = job.execute()

    assert result == JobResult.failure("disk full")
    assert job.status() == JobStatus.FAILED
    assert job.snapshot().failure_reason == "disk full"


def test_unexpected_exception_is_a_failure(publisher: RecordingPublisher) -> None:
    """Any exception from work is a failure named after its type."""

    def _explode(token: CancellationToken) -> None:
        raise ValueError("bad input")

    result = _job(_explode, publisher).execute()

    assert result.outcome == JobOutcome.FAILURE
    assert result.reason == "ValueError: bad input"


def test_execute_from_non_pending_is_rejected_without_effect(
    publisher: RecordingPublisher,
) -> None:
    """A second execute raises and leaves the snapshot untouched."""
    job = _job(_ok, publisher)
    job.execute()
    before = job.snapshot()

    with pytest.raises(InvalidStateTransition):
        job.execute()

    assert job.snapshot() == before
    assert len(publisher.transitions) == 2


def test_concurrent_execute_is_rejected(publisher: RecordingPublisher) -> None:
    """Only one caller may run a job at a time."""
    release, started = Event(), Event()
    job = _job(_blocking(release, started), publisher)
    runner = Thread(target=job.execute)
    runner.start()
    started.wait(2.0)
    try:
        with pytest.raises(InvalidStateTransition):
            job.execute()
    finally:
        release.set()
        runner.join(2.0)

    assert job.status() == JobStatus.COMPLETED


def test_cancel_pending_job(publisher: RecordingPublisher) -> None:
    """Cancelling a pending job is terminal and skips execution."""
    job = _job(_ok, publisher)

    assert job.cancel() == JobStatus.CANCELLED
    assert job.snapshot().result == JobResult.skipped("cancelled")
    with pytest.raises(InvalidStateTransition):
        job.execute()


def test_cancel_is_idempotent(publisher: RecordingPublisher) -> None:
    """A second cancel has no further observable effect."""
    job = _job(_ok, publisher)
    job.cancel()
    after_first = job.snapshot()

    assert job.cancel() == JobStatus.CANCELLED
    assert job.snapshot() == after_first
    assert publisher.states("j1") == ["cancelled"]


def test_cancel_on_completed_job_is_noop(publisher: RecordingPublisher) -> None:
    """Terminal jobs ignore cancel."""
    job = _job(_ok, publisher)
    job.execute()

    assert job.cancel() == JobStatus.COMPLETED


def test_cancel_while_running_signals_work_and_skips(
    publisher: RecordingPublisher,
) -> None:
    """Running work observes the token and the result is Skipped."""
    observed = Event()
    started = Event()

    def _cooperative(token: CancellationToken) -> None:
        started.set()
        if token.wait(5.0):
            observed.set()

    job = _job(_cooperative, publisher)
    results: list[JobResult] = []
    runner = Thread(target=lambda: results.append(job.execute()))
    runner.start()
    started.wait(2.0)

    job.cancel()
    runner.join(2.0)

    assert results == [JobResult.skipped("cancelled")]
    assert observed.wait(2.0)
    assert job.status() == JobStatus.CANCELLED
    assert job.wait_idle(2.0)


def test_late_completion_after_cancel_is_discarded(
    publisher: RecordingPublisher,
) -> None:
    """Work finishing after cancel never overwrites Cancelled."""
    release, started = Event(), Event()
    job = _job(_blocking(release, started), publisher)
    results: list[JobResult] = []
    runner = Thread(target=lambda: results.append(job.execute()))
    runner.start()
    started.wait(2.0)

    job.cancel()
    runner.join(2.0)
    release.set()
    assert job.wait_idle(2.0)

    assert results[0].outcome == JobOutcome.SKIPPED
    assert job.status() == JobStatus.CANCELLED
    assert "completed" not in publisher.states("j1")


def test_caller_token_cancels_job(publisher: RecordingPublisher) -> None:
    """Cancelling the caller's token cancels the running job."""
    started = Event()

    def _work(token: CancellationToken) -> None:
        started.set()
        token.wait(5.0)

    job = _job(_work, publisher)
    token = CancellationToken()
    results: list[JobResult] = []
    runner = Thread(target=lambda: results.append(job.execute(cancel_token=token)))
    runner.start()
    started.wait(2.0)

    token.cancel("shutdown")
    runner.join(2.0)

    assert results[0].outcome == JobOutcome.SKIPPED
    assert job.status() == JobStatus.CANCELLED


def test_execute_timeout_fails_job(publisher: RecordingPublisher) -> None:
    """Exceeding the execute timeout commits Failed and raises."""
    release = Event()
    job = _job(_blocking(release), publisher)

    with pytest.raises(OperationTimeout):
        job.execute(timeout_seconds=0.05)
    release.set()

    assert job.status() == JobStatus.FAILED
    assert job.snapshot().failure_reason.startswith("timeout")


def test_retry_after_timeout_waits_for_abandoned_work(
    publisher: RecordingPublisher,
) -> None:
    """A new attempt starts only after the timed-out attempt's work returns."""
    release = Event()
    guard = Lock()
    active = [0]
    peak = [0]

    def _work(token: CancellationToken) -> None:
        del token
        with guard:
            active[0] += 1
            peak[0] = max(peak[0], active[0])
        try:
            release.wait(5.0)
        finally:
            with guard:
                active[0] -= 1

    job = _job(_work, publisher)
    with pytest.raises(OperationTimeout):
        job.execute(timeout_seconds=0.05)
    job.retry()

    results: list[JobResult] = []
    runner = Thread(target=lambda: results.append(job.execute(timeout_seconds=5.0)))
    runner.start()
    Event().wait(0.1)
    assert job.status() == JobStatus.PENDING
    release.set()
    runner.join(5.0)

    assert results == [JobResult.success()]
    assert peak[0] == 1


def test_execute_refused_while_abandoned_work_still_runs(
    publisher: RecordingPublisher,
) -> None:
    """Attempts never overlap; the retried job stays Pending when refused."""
    release = Event()
    job = _job(_blocking(release), publisher)
    with pytest.raises(OperationTimeout):
        job.execute(timeout_seconds=0.05)
    job.retry()

    with pytest.raises(InvalidStateTransition) as exc_info:
        job.execute(timeout_seconds=0.05)
    release.set()

    assert "previous attempt still running" in str(exc_info.value)
    assert job.status() == JobStatus.PENDING
    assert job.wait_idle(5.0)
    assert job.execute() == JobResult.success()


def test_retry_returns_failed_job_to_pending(publisher: RecordingPublisher) -> None:
    """retry increments retry_count and allows another execute."""
    job = _job(_fail, publisher)
    job.execute()

    assert job.retry() == JobStatus.PENDING
    assert job.snapshot().retry_count == 1
    assert job.snapshot().result is None


def test_retry_from_non_failed_is_rejected(publisher: RecordingPublisher) -> None:
    """Only Failed jobs may retry."""
    job = _job(_ok, publisher)

    with pytest.raises(InvalidStateTransition):
        job.retry()
    job.execute()
    with pytest.raises(InvalidStateTransition):
        job.retry()


def test_fixed_backoff_sets_retry_at(publisher: RecordingPublisher) -> None:
    """A fixed backoff schedules the next attempt after the base delay."""
    job = _job(
        _fail,
        publisher,
        policy=RetryPolicy(backoff_strategy="fixed", backoff_base_seconds=30.0),
    )
    job.execute()
    failed_at = job.snapshot().updated_at

    job.retry()

    retry_at = job.snapshot().retry_at
    assert retry_at is not None
    assert (retry_at - failed_at).total_seconds() >= 30.0


def test_cancel_interrupts_backoff_wait(publisher: RecordingPublisher) -> None:
    """A job waiting out its backoff can be cancelled promptly."""
    job = _job(
        _fail,
        publisher,
        policy=RetryPolicy(backoff_strategy="fixed", backoff_base_seconds=30.0),
    )
    job.execute()
    job.retry()
    results: list[JobResult] = []
    runner = Thread(target=lambda: results.append(job.execute()))
    runner.start()
    _wait_for(lambda: job._claimed)

    job.cancel()
    runner.join(2.0)

    assert not runner.is_alive()
    assert results == [JobResult.skipped("cancelled")]


def test_guard_refusal_keeps_job_pending(publisher: RecordingPublisher) -> None:
    """A refusing guard propagates its error and changes nothing."""

    def _guard() -> None:
        raise InvalidStateTransition(
            entity_kind="bot", entity_id="b1", current="unknown", operation="execute"
        )

    job = _job(_ok, publisher, guard=_guard)

    with pytest.raises(InvalidStateTransition):
        job.execute()

    assert job.status() == JobStatus.PENDING
    assert publisher.transitions == []


def test_on_terminal_receives_only_final_snapshots(
    publisher: RecordingPublisher,
) -> None:
    """Failures with retries left are not final; completion is."""
    archived: list[JobSnapshot] = []
    attempts = iter([_fail, _ok])

    def _work(token: CancellationToken) -> None:
        next(attempts)(token)

    job = _job(_work, publisher, on_terminal=archived.append)

    job.execute()
    assert archived == []
    job.retry()
    job.execute()

    assert [item.status for item in archived] == [JobStatus.COMPLETED]


def test_three_failures_exhaust_budget_with_one_critical_alert(
    router: DefaultEventRouter, sink: InMemoryEventSink
) -> None:
    """max_attempts=3: the third failure is critical and a fourth try is refused."""
    job = _job(_fail, router, policy=RetryPolicy(max_attempts=3))

    job.execute()
    job.retry()
    job.execute()
    job.retry()
    job.execute()

    with pytest.raises(RetryExhausted):
        job.retry()
    with pytest.raises(InvalidStateTransition):
        job.execute()

    assert job.status() == JobStatus.FAILED
    assert job.snapshot().exhausted
    failures = sink.of_kind(AlertKind.JOB_FAILURE)
    assert [item.severity for item in failures] == [
        Severity.WARNING,
        Severity.WARNING,
        Severity.CRITICAL,
    ]
    assert len(sink.of_kind(NotificationKind.JOB_STARTED)) == 3
