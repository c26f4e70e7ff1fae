"""Protocols at the Event Router boundary."""

from __future__ import annotations

from typing import Protocol

from services.action.event_router.domain import Alert, Notification, Transition


class EventSink(Protocol):
    """External consumer of alerts and notifications.

    ``deliver`` may be called more than once with the same ``record_id``;
    raising asks the router to retry.
    """

    def deliver(self, record: Alert | Notification) -> None:
        """Consume one record."""


class TransitionPublisher(Protocol):
    """Receiver of committed entity transitions."""

    def publish(self, transition: Transition) -> None:
        """Accept one transition; must not raise into the publishing entity."""
