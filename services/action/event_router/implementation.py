"""Concrete Event Router implementation."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from threading import Lock
from time import sleep

from packages.botbox_shared.clock import Clock
from packages.botbox_shared.logging import fields, get_logger, log_context
from services.action.event_router.config import EventRouterSettings
from services.action.event_router.domain import (
    Alert,
    AlertKind,
    BotBoxEvent,
    BotUnhealthyDetails,
    DeploymentEvent,
    DeploymentFailureDetails,
    EntityKind,
    JobFailureDetails,
    Notification,
    NotificationKind,
    Severity,
    Transition,
    UndeliveredRecord,
)
from services.action.event_router.interfaces import EventSink
from services.action.event_router.service import EventRouter, Subscription

_LOGGER = get_logger(__name__)

_JOB_NOTIFICATIONS = {
    "running": NotificationKind.JOB_STARTED,
    "completed": NotificationKind.JOB_SUCCEEDED,
    "cancelled": NotificationKind.JOB_FAILED,
}
_DEPLOYMENT_NOTIFICATIONS = {
    DeploymentEvent.STARTED: NotificationKind.DEPLOYMENT_STARTED,
    DeploymentEvent.SUCCEEDED: NotificationKind.DEPLOYMENT_SUCCEEDED,
    DeploymentEvent.CANCELLED: NotificationKind.DEPLOYMENT_FAILED,
    DeploymentEvent.UNDEPLOYED: NotificationKind.INFO,
}
_BOTBOX_NOTIFICATIONS = {
    BotBoxEvent.CREATED: NotificationKind.PROJECT_CREATED,
    BotBoxEvent.ROLE_CHANGED: NotificationKind.ROLE_CHANGED,
    BotBoxEvent.INVITED: NotificationKind.INVITATION,
}


class _Subscription(Subscription):
    def __init__(
        self,
        *,
        router: DefaultEventRouter,
        subscription_id: str,
        sink: EventSink,
        kinds: frozenset[str] | None,
    ) -> None:
        self._router = router
        self._subscription_id = subscription_id
        self.sink = sink
        self.kinds = kinds

    @property
    def subscription_id(self) -> str:
        return self._subscription_id

    def accepts(self, record: Alert | Notification) -> bool:
        return self.kinds is None or str(record.kind) in self.kinds

    def unsubscribe(self) -> bool:
        return self._router._remove(self._subscription_id)


class DefaultEventRouter(EventRouter):
    """Synchronous fan-out router with bounded retry and a dead-letter buffer.

    ``publish`` delivers on the caller's thread. Emitters publish while holding
    the lock of the entity that transitioned, so records for one entity reach
    each subscriber in commit order; records for different entities may
    interleave.
    """

    def __init__(self, *, settings: EventRouterSettings, clock: Clock) -> None:
        self._settings = settings
        self._clock = clock
        self._lock = Lock()
        self._subscriptions: tuple[_Subscription, ...] = ()
        self._undelivered: deque[UndeliveredRecord] = deque(
            maxlen=settings.max_undelivered
        )

    def publish(self, transition: Transition) -> None:
        try:
            record = map_transition(
                transition, settings=self._settings, record_id=self._clock.new_id()
            )
        except Exception:  # noqa: BLE001
            with log_context(_transition_context(transition)):
                _LOGGER.exception("transition could not be mapped to a record")
            return
        if record is None:
            return

        subscriptions = self._subscriptions
        for subscription in subscriptions:
            if subscription.accepts(record):
                self._deliver(subscription, record)

    def subscribe(
        self,
        sink: EventSink,
        *,
        kinds: Iterable[AlertKind | NotificationKind] | None = None,
    ) -> Subscription:
        subscription = _Subscription(
            router=self,
            subscription_id=self._clock.new_id(),
            sink=sink,
            kinds=None if kinds is None else frozenset(str(kind) for kind in kinds),
        )
        with self._lock:
            self._subscriptions = (*self._subscriptions, subscription)
        with log_context({fields.SUBSCRIPTION: subscription.subscription_id}):
            _LOGGER.debug("subscriber registered")
        return subscription

    def undelivered(self) -> list[UndeliveredRecord]:
        with self._lock:
            return list(self._undelivered)

    def replay_undelivered(self) -> int:
        """Retry dead letters for subscribers that are still registered.

        Replayed records carry their original ``sequence``; a subscriber that
        needs strict per-entity order must reorder or deduplicate on it.
        """
        with self._lock:
            pending = list(self._undelivered)
            self._undelivered.clear()
            active = {item.subscription_id: item for item in self._subscriptions}

        delivered = 0
        for item in pending:
            subscription = active.get(item.subscription_id)
            if subscription is None:
                continue
            if self._deliver(subscription, item.record):
                delivered += 1
        return delivered

    def _remove(self, subscription_id: str) -> bool:
        with self._lock:
            remaining = tuple(
                item
                for item in self._subscriptions
                if item.subscription_id != subscription_id
            )
            removed = len(remaining) != len(self._subscriptions)
            self._subscriptions = remaining
        return removed

    def _deliver(
        self, subscription: _Subscription, record: Alert | Notification
    ) -> bool:
        attempts = self._settings.delivery_attempts
        error = ""
        for attempt in range(1, attempts + 1):
            try:
                subscription.sink.deliver(record)
                return True
            except Exception as exc:  # noqa: BLE001
                error = f"{type(exc).__name__}: {exc}"
                with log_context(
                    {
                        fields.SUBSCRIPTION: subscription.subscription_id,
                        fields.RECORD_ID: record.record_id,
                        fields.ATTEMPT: attempt,
                        fields.ERRORS: [error],
                    }
                ):
                    _LOGGER.warning("event delivery attempt failed")
            if attempt < attempts and self._settings.delivery_retry_delay_seconds > 0:
                sleep(self._settings.delivery_retry_delay_seconds)

        with self._lock:
            self._undelivered.append(
                UndeliveredRecord(
                    subscription_id=subscription.subscription_id,
                    record=record,
                    attempts=attempts,
                    error=error,
                )
            )
        with log_context(
            {
                fields.SUBSCRIPTION: subscription.subscription_id,
                fields.RECORD_ID: record.record_id,
                fields.RECORD_KIND: str(record.kind),
            }
        ):
            _LOGGER.error("event delivery abandoned after %d attempts", attempts)
        return False


def map_transition(
    transition: Transition,
    *,
    settings: EventRouterSettings,
    record_id: str,
) -> Alert | Notification | None:
    """Map one transition to at most one record; ``None`` when not routed."""
    kind = transition.entity_kind
    state = transition.to_state
    if kind == EntityKind.BOT:
        # A cancelled stop may hand back a bot that was already Unknown.
        if state != "unknown" or transition.attributes.get("cancelled"):
            return None
        return _alert(
            transition,
            record_id=record_id,
            severity=Severity.CRITICAL,
            details=BotUnhealthyDetails(
                bot_id=transition.entity_id,
                reason=_text(transition, "reason", default="unknown"),
            ),
        )

    if kind == EntityKind.JOB:
        if state == "failed":
            retry_count = int(transition.attributes.get("retry_count") or 0)
            exhausted = bool(transition.attributes.get("exhausted", False))
            return _alert(
                transition,
                record_id=record_id,
                severity=job_failure_severity(
                    retry_count=retry_count,
                    exhausted=exhausted,
                    critical_after_retries=settings.job_failure_critical_after_retries,
                ),
                details=JobFailureDetails(
                    job_id=transition.entity_id,
                    error_message=_text(transition, "reason", default="failed"),
                    retry_count=retry_count,
                    exhausted=exhausted,
                ),
            )
        notification_kind = _JOB_NOTIFICATIONS.get(state)
        if notification_kind is None:
            return None
        return _notification(
            transition,
            record_id=record_id,
            kind=notification_kind,
            message=f"job {transition.entity_id} {state}",
        )

    if kind == EntityKind.DEPLOYMENT:
        if state == DeploymentEvent.FAILED:
            return _alert(
                transition,
                record_id=record_id,
                severity=Severity.CRITICAL,
                details=DeploymentFailureDetails(
                    deployment_id=transition.entity_id,
                    environment=_text(transition, "environment", default=""),
                    reason=_text(transition, "reason", default="failed"),
                ),
            )
        notification_kind = _DEPLOYMENT_NOTIFICATIONS.get(state)
        if notification_kind is None:
            return None
        return _notification(
            transition,
            record_id=record_id,
            kind=notification_kind,
            message=f"deployment {transition.entity_id} {state}",
        )

    notification_kind = _BOTBOX_NOTIFICATIONS.get(state)
    if notification_kind is None:
        return None
    return _notification(
        transition,
        record_id=record_id,
        kind=notification_kind,
        message=f"botbox {transition.entity_id} {state.replace('_', ' ')}",
    )


def job_failure_severity(
    *, retry_count: int, exhausted: bool, critical_after_retries: int
) -> Severity:
    """Escalate job failures to critical once retries are spent or many."""
    if exhausted or retry_count >= critical_after_retries:
        return Severity.CRITICAL
    return Severity.WARNING


def _alert(
    transition: Transition,
    *,
    record_id: str,
    severity: Severity,
    details: BotUnhealthyDetails | JobFailureDetails | DeploymentFailureDetails,
) -> Alert:
    return Alert(
        record_id=record_id,
        severity=severity,
        timestamp=transition.occurred_at,
        entity_kind=transition.entity_kind,
        entity_id=transition.entity_id,
        sequence=transition.sequence,
        details=details,
    )


def _notification(
    transition: Transition,
    *,
    record_id: str,
    kind: NotificationKind,
    message: str,
) -> Notification:
    return Notification(
        record_id=record_id,
        kind=kind,
        timestamp=transition.occurred_at,
        entity_kind=transition.entity_kind,
        entity_id=transition.entity_id,
        sequence=transition.sequence,
        message=message,
        attributes=dict(transition.attributes),
    )


def _text(transition: Transition, key: str, *, default: str) -> str:
    value = transition.attributes.get(key)
    return default if value in (None, "") else str(value)


def _transition_context(transition: Transition) -> dict[str, object]:
    return {
        fields.ENTITY_KIND: str(transition.entity_kind),
        fields.ENTITY_ID: transition.entity_id,
        fields.TO_STATE: transition.to_state,
        fields.SEQUENCE: transition.sequence,
    }
