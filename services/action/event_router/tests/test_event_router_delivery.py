"""Fan-out, retry, and dead-letter tests for the default Event Router."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from services.action.event_router import (
    Alert,
    AlertKind,
    CallbackEventSink,
    DefaultEventRouter,
    EntityKind,
    EventRouterSettings,
    InMemoryEventSink,
    LoggingEventSink,
    Notification,
    NotificationKind,
    Severity,
    Transition,
    build_event_router,
)
from packages.botbox_shared.config import BotBoxSettings
from tests.helpers import StepClock

_AT = datetime(2026, 1, 1, tzinfo=UTC)


def _job(entity_id: str, to_state: str, sequence: int) -> Transition:
    attributes: dict[str, object] = {"retry_count": 0}
    if to_state == "failed":
        attributes.update(reason="boom", exhausted=False)
    return Transition(
        entity_kind=EntityKind.JOB,
        entity_id=entity_id,
        from_state="",
        to_state=to_state,
        occurred_at=_AT,
        sequence=sequence,
        attributes=attributes,
    )


class _FlakySink:
    """Sink failing a fixed number of times before accepting records."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0
        self.records: list[Alert | Notification] = []

    def deliver(self, record: Alert | Notification) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("sink offline")
        self.records.append(record)


def _router(**settings: int) -> DefaultEventRouter:
    return DefaultEventRouter(settings=EventRouterSettings(**settings), clock=StepClock())


def test_publish_fans_out_to_every_subscriber() -> None:
    """Each subscriber receives its own delivery of one record."""
    router = _router()
    first, second = InMemoryEventSink(), InMemoryEventSink()
    router.subscribe(first)
    router.subscribe(second)

    router.publish(_job("j1", "completed", 1))

    assert [item.kind for item in first.records] == [NotificationKind.JOB_SUCCEEDED]
    assert first.records == second.records


def test_kind_filter_limits_subscription() -> None:
    """Filtered subscribers receive only the kinds they asked for."""
    router = _router()
    alerts_only = InMemoryEventSink()
    router.subscribe(alerts_only, kinds=[AlertKind.JOB_FAILURE])

    router.publish(_job("j1", "running", 1))
    router.publish(_job("j1", "failed", 2))

    assert [item.kind for item in alerts_only.records] == [AlertKind.JOB_FAILURE]


def test_unsubscribe_stops_delivery() -> None:
    """An unsubscribed sink receives nothing further."""
    router = _router()
    sink = InMemoryEventSink()
    subscription = router.subscribe(sink)

    assert subscription.unsubscribe() is True
    assert subscription.unsubscribe() is False
    router.publish(_job("j1", "completed", 1))

    assert sink.records == []


def test_flaky_sink_is_retried_until_delivery() -> None:
    """Delivery is retried within the attempt budget."""
    router = _router(delivery_attempts=3)
    sink = _FlakySink(failures=2)
    router.subscribe(sink)

    router.publish(_job("j1", "completed", 1))

    assert sink.calls == 3
    assert len(sink.records) == 1
    assert router.undelivered() == []


def test_exhausted_delivery_is_dead_lettered_and_replayable() -> None:
    """A failing sink does not block others and its records can be replayed."""
    router = _router(delivery_attempts=2)
    broken = _FlakySink(failures=2)
    healthy = InMemoryEventSink()
    router.subscribe(broken)
    router.subscribe(healthy)

    router.publish(_job("j1", "completed", 1))

    assert len(healthy.records) == 1
    undelivered = router.undelivered()
    assert len(undelivered) == 1
    assert undelivered[0].attempts == 2
    assert "sink offline" in undelivered[0].error

    assert router.replay_undelivered() == 1
    assert len(broken.records) == 1
    assert router.undelivered() == []


def test_dead_letter_buffer_is_bounded() -> None:
    """Only the newest undelivered records are kept."""
    router = _router(delivery_attempts=1, max_undelivered=2)
    router.subscribe(_FlakySink(failures=100))

    for sequence in range(1, 4):
        router.publish(_job("j1", "completed", sequence))

    assert [item.record.sequence for item in router.undelivered()] == [2, 3]


def test_per_entity_order_is_preserved() -> None:
    """Records for one entity arrive in publication order."""
    router = _router()
    sink = InMemoryEventSink()
    router.subscribe(sink)

    router.publish(_job("j1", "running", 1))
    router.publish(_job("j2", "running", 1))
    router.publish(_job("j1", "completed", 2))

    assert [item.sequence for item in sink.for_entity("j1")] == [1, 2]


def test_in_memory_sink_drops_redelivered_records() -> None:
    """Redelivery of the same record id is recorded once."""
    router = _router()
    sink = InMemoryEventSink()
    router.subscribe(sink)
    router.publish(_job("j1", "completed", 1))

    sink.deliver(sink.records[0])

    assert len(sink.records) == 1
    assert sink.notifications() == sink.records
    assert sink.alerts() == []


def test_callback_sink_forwards_records() -> None:
    """Callback sinks hand every record to the callable."""
    router = _router()
    seen: list[str] = []
    router.subscribe(CallbackEventSink(lambda record: seen.append(record.record_id)))

    router.publish(_job("j1", "completed", 1))

    assert len(seen) == 1


def test_logging_sink_logs_alerts_by_severity(caplog: pytest.LogCaptureFixture) -> None:
    """Warning alerts log at WARNING and notifications at INFO."""
    router = _router()
    router.subscribe(LoggingEventSink())

    with caplog.at_level(logging.INFO):
        router.publish(_job("j1", "running", 1))
        router.publish(_job("j1", "failed", 2))

    levels = [
        record.levelno
        for record in caplog.records
        if record.name.startswith("services.action.event_router.sinks")
    ]
    assert levels == [logging.INFO, logging.WARNING]


def test_build_event_router_reads_component_settings() -> None:
    """The factory resolves delivery settings from the components tree."""
    settings = BotBoxSettings(
        components={"service": {"event_router": {"delivery_attempts": 1}}}
    )
    router = build_event_router(settings=settings, clock=StepClock())
    sink = _FlakySink(failures=1)
    router.subscribe(sink)

    router.publish(_job("j1", "completed", 1))

    assert sink.calls == 1
    assert len(router.undelivered()) == 1


def test_subscriber_cannot_change_what_others_receive() -> None:
    """A sink writing into a shared record fails alone; others see the original."""
    router = _router(delivery_attempts=1)

    def _tamper(record: Alert | Notification) -> None:
        record.attributes["bot_id"] = "tampered"  # type: ignore[union-attr,index]

    router.subscribe(CallbackEventSink(_tamper))
    honest = InMemoryEventSink()
    router.subscribe(honest)

    router.publish(
        Transition(
            entity_kind=EntityKind.DEPLOYMENT,
            entity_id="d1",
            from_state="",
            to_state="started",
            occurred_at=_AT,
            sequence=1,
            attributes={"bot_id": "b1", "environment": "prod"},
        )
    )

    [record] = honest.notifications()
    assert record.attributes["bot_id"] == "b1"
    [dead] = router.undelivered()
    assert "TypeError" in dead.error


def test_cancellations_never_raise_alerts() -> None:
    """Cancelled jobs, deploys and stops are informational at most."""
    router = _router()
    sink = InMemoryEventSink()
    router.subscribe(sink)

    router.publish(_job("j1", "cancelled", 1))
    for entity_kind, entity_id, to_state, attributes in [
        (EntityKind.DEPLOYMENT, "d1", "cancelled", {"reason": "start cancelled"}),
        (EntityKind.BOT, "b1", "stopped", {"reason": "start cancelled"}),
        (
            EntityKind.BOT,
            "b2",
            "unknown",
            {"reason": "stop cancelled", "cancelled": True},
        ),
    ]:
        router.publish(
            Transition(
                entity_kind=entity_kind,
                entity_id=entity_id,
                from_state="",
                to_state=to_state,
                occurred_at=_AT,
                sequence=1,
                attributes=attributes,
            )
        )

    assert sink.alerts() == []
    assert [item.kind for item in sink.records] == [
        NotificationKind.JOB_FAILED,
        NotificationKind.DEPLOYMENT_FAILED,
    ]
    assert {item.severity for item in sink.records} == {Severity.INFO}


def test_retry_delay_is_capped() -> None:
    """Delivery retries sleep on the publishing thread, so long delays are refused."""
    assert EventRouterSettings(delivery_retry_delay_seconds=1.0)
    with pytest.raises(ValidationError):
        EventRouterSettings(delivery_retry_delay_seconds=5.0)
