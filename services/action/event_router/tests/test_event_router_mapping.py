"""Transition-to-record mapping tests for the Event Router."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from services.action.event_router import (
    Alert,
    AlertKind,
    EntityKind,
    EventRouterSettings,
    Notification,
    NotificationKind,
    Severity,
    Transition,
    job_failure_severity,
    map_transition,
)

_AT = datetime(2026, 1, 1, tzinfo=UTC)


def _transition(
    kind: EntityKind,
    to_state: str,
    *,
    from_state: str = "",
    attributes: dict[str, object] | None = None,
    sequence: int = 1,
) -> Transition:
    return Transition(
        entity_kind=kind,
        entity_id="e1",
        from_state=from_state,
        to_state=to_state,
        occurred_at=_AT,
        sequence=sequence,
        attributes=attributes or {},
    )


def _map(transition: Transition, **settings: int) -> Alert | Notification | None:
    return map_transition(
        transition, settings=EventRouterSettings(**settings), record_id="r1"
    )


def test_bot_entering_unknown_raises_critical_unhealthy_alert() -> None:
    """Unknown bots are critical BotUnhealthy alerts carrying the reason."""
    record = _map(
        _transition(
            EntityKind.BOT,
            "unknown",
            from_state="starting",
            attributes={"reason": "launch failed"},
        )
    )

    assert isinstance(record, Alert)
    assert record.severity == Severity.CRITICAL
    assert record.kind == AlertKind.BOT_UNHEALTHY
    assert record.details.reason == "launch failed"


def test_bot_handed_back_unknown_by_cancelled_stop_is_not_alerted() -> None:
    """Cancellation never escalates, even when the bot stays Unknown."""
    record = _map(
        _transition(
            EntityKind.BOT,
            "unknown",
            from_state="stopping",
            attributes={"reason": "stop cancelled", "cancelled": True},
        )
    )

    assert record is None


@pytest.mark.parametrize("state", ["starting", "running", "stopping", "stopped"])
def test_other_bot_states_are_not_routed(state: str) -> None:
    """Only Unknown bot transitions produce records."""
    assert _map(_transition(EntityKind.BOT, state)) is None


def test_job_failure_alert_warns_before_retries_are_spent() -> None:
    """A first failure with retries left is a warning."""
    record = _map(
        _transition(
            EntityKind.JOB,
            "failed",
            attributes={"retry_count": 0, "exhausted": False, "reason": "boom"},
        )
    )

    assert isinstance(record, Alert)
    assert record.kind == AlertKind.JOB_FAILURE
    assert record.severity == Severity.WARNING
    assert record.details.error_message == "boom"


def test_job_failure_alert_is_critical_when_exhausted() -> None:
    """A failure that spends the retry budget escalates to critical."""
    record = _map(
        _transition(
            EntityKind.JOB,
            "failed",
            attributes={"retry_count": 2, "exhausted": True, "reason": "boom"},
        )
    )

    assert isinstance(record, Alert)
    assert record.severity == Severity.CRITICAL
    assert record.details.exhausted is True


def test_job_failure_severity_escalates_past_threshold() -> None:
    """Severity turns critical once retry_count reaches the threshold."""
    assert (
        job_failure_severity(retry_count=1, exhausted=False, critical_after_retries=2)
        == Severity.WARNING
    )
    assert (
        job_failure_severity(retry_count=2, exhausted=False, critical_after_retries=2)
        == Severity.CRITICAL
    )


@pytest.mark.parametrize(
    ("state", "kind"),
    [
        ("running", NotificationKind.JOB_STARTED),
        ("completed", NotificationKind.JOB_SUCCEEDED),
        ("cancelled", NotificationKind.JOB_FAILED),
    ],
)
def test_benign_job_transitions_are_info_notifications(
    state: str, kind: NotificationKind
) -> None:
    """Job start, success and cancellation are informational."""
    record = _map(_transition(EntityKind.JOB, state))

    assert isinstance(record, Notification)
    assert record.kind == kind
    assert record.severity == Severity.INFO


def test_job_returning_to_pending_is_not_routed() -> None:
    """Retry bookkeeping transitions produce nothing."""
    assert _map(_transition(EntityKind.JOB, "pending", from_state="failed")) is None


def test_deployment_failure_is_critical_alert() -> None:
    """Failed deployments raise critical DeploymentFailure alerts."""
    record = _map(
        _transition(
            EntityKind.DEPLOYMENT,
            "failed",
            attributes={"environment": "prod", "reason": "bot never healthy"},
        )
    )

    assert isinstance(record, Alert)
    assert record.kind == AlertKind.DEPLOYMENT_FAILURE
    assert record.severity == Severity.CRITICAL
    assert record.details.environment == "prod"
    assert record.details.reason == "bot never healthy"


@pytest.mark.parametrize(
    ("state", "kind"),
    [
        ("started", NotificationKind.DEPLOYMENT_STARTED),
        ("succeeded", NotificationKind.DEPLOYMENT_SUCCEEDED),
        ("cancelled", NotificationKind.DEPLOYMENT_FAILED),
        ("undeployed", NotificationKind.INFO),
    ],
)
def test_deployment_progress_is_notified(state: str, kind: NotificationKind) -> None:
    """Deployment progress steps are informational notifications."""
    record = _map(_transition(EntityKind.DEPLOYMENT, state))

    assert isinstance(record, Notification)
    assert record.kind == kind


@pytest.mark.parametrize(
    ("state", "kind"),
    [
        ("created", NotificationKind.PROJECT_CREATED),
        ("role_changed", NotificationKind.ROLE_CHANGED),
        ("invited", NotificationKind.INVITATION),
    ],
)
def test_botbox_events_are_notified(state: str, kind: NotificationKind) -> None:
    """Administrative BotBox changes map to their notification kinds."""
    record = _map(_transition(EntityKind.BOTBOX, state, attributes={"email": "a@b.c"}))

    assert isinstance(record, Notification)
    assert record.kind == kind
    assert record.attributes == {"email": "a@b.c"}


def test_records_carry_entity_key_and_sequence() -> None:
    """Records keep the entity id and sequence for subscriber deduplication."""
    record = _map(_transition(EntityKind.JOB, "completed", sequence=4))

    assert record is not None
    assert record.record_id == "r1"
    assert record.entity_id == "e1"
    assert record.sequence == 4
    assert record.timestamp == _AT


def test_records_are_immutable() -> None:
    """Alerts cannot be mutated after construction."""
    record = _map(_transition(EntityKind.BOT, "unknown"))

    assert record is not None
    with pytest.raises(ValidationError):
        record.severity = Severity.INFO  # type: ignore[misc]


def test_record_attributes_are_read_only() -> None:
    """Attribute mappings of transitions and notifications reject writes."""
    transition = _transition(
        EntityKind.BOTBOX, "invited", attributes={"email": "a@b.c"}
    )
    record = _map(transition)

    assert isinstance(record, Notification)
    with pytest.raises(TypeError):
        record.attributes["email"] = "x@y.z"  # type: ignore[index]
    with pytest.raises(TypeError):
        transition.attributes["email"] = "x@y.z"  # type: ignore[index]
    assert record.model_dump(mode="json")["attributes"] == {"email": "a@b.c"}
