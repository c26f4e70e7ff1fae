"""Built-in Event Router sinks."""

from __future__ import annotations

import logging
from collections.abc import Callable
from threading import Lock

from packages.botbox_shared.logging import fields, get_logger, log_context
from services.action.event_router.domain import (
    Alert,
    AlertKind,
    Notification,
    NotificationKind,
    Severity,
)

_LOGGER = get_logger(__name__)

_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.CRITICAL: logging.CRITICAL,
}


class InMemoryEventSink:
    """Thread-safe sink keeping delivered records in arrival order.

    Redelivered records (same ``record_id``) are dropped, which makes the
    router's at-least-once delivery look exactly-once to readers.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._records: list[Alert | Notification] = []
        self._seen: set[str] = set()

    def deliver(self, record: Alert | Notification) -> None:
        with self._lock:
            if record.record_id in self._seen:
                return
            self._seen.add(record.record_id)
            self._records.append(record)

    @property
    def records(self) -> list[Alert | Notification]:
        with self._lock:
            return list(self._records)

    def alerts(self) -> list[Alert]:
        return [item for item in self.records if isinstance(item, Alert)]

    def notifications(self) -> list[Notification]:
        return [item for item in self.records if isinstance(item, Notification)]

    def of_kind(
        self, kind: AlertKind | NotificationKind
    ) -> list[Alert | Notification]:
        return [item for item in self.records if item.kind == kind]

    def for_entity(self, entity_id: str) -> list[Alert | Notification]:
        return [item for item in self.records if item.entity_id == entity_id]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._seen.clear()


class LoggingEventSink:
    """Sink writing one structured log line per record."""

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _LOGGER

    def deliver(self, record: Alert | Notification) -> None:
        context = {
            fields.RECORD_ID: record.record_id,
            fields.RECORD_KIND: str(record.kind),
            fields.SEVERITY: str(record.severity),
            fields.ENTITY_KIND: str(record.entity_kind),
            fields.ENTITY_ID: record.entity_id,
            fields.SEQUENCE: record.sequence,
        }
        with log_context(context):
            if isinstance(record, Alert):
                self._logger.log(
                    _LEVELS[record.severity], "alert: %s", _describe(record)
                )
            else:
                self._logger.info("notification: %s", record.message)


class CallbackEventSink:
    """Adapt a plain callable to the sink protocol."""

    def __init__(self, callback: Callable[[Alert | Notification], None]) -> None:
        self._callback = callback

    def deliver(self, record: Alert | Notification) -> None:
        self._callback(record)


def _describe(alert: Alert) -> str:
    details = alert.details.model_dump(mode="json", exclude={"kind"})
    summary = " ".join(f"{key}={value}" for key, value in sorted(details.items()))
    return f"{alert.kind} {summary}"
