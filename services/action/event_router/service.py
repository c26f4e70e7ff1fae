"""Authoritative in-process Python API for the Event Router."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from packages.botbox_shared.clock import Clock
from packages.botbox_shared.config import BotBoxSettings
from services.action.event_router.domain import (
    AlertKind,
    NotificationKind,
    Transition,
    UndeliveredRecord,
)
from services.action.event_router.interfaces import EventSink


class Subscription(ABC):
    """Handle returned by ``subscribe``."""

    @property
    @abstractmethod
    def subscription_id(self) -> str:
        """Return the unique subscription id."""

    @abstractmethod
    def unsubscribe(self) -> bool:
        """Stop delivery; return ``False`` when already unsubscribed."""


class EventRouter(ABC):
    """Public API mapping transitions to alerts/notifications for subscribers."""

    @abstractmethod
    def publish(self, transition: Transition) -> None:
        """Map one transition and deliver the resulting record to subscribers."""

    @abstractmethod
    def subscribe(
        self,
        sink: EventSink,
        *,
        kinds: Iterable[AlertKind | NotificationKind] | None = None,
    ) -> Subscription:
        """Register one sink, optionally filtered to the given record kinds."""

    @abstractmethod
    def undelivered(self) -> list[UndeliveredRecord]:
        """Return records that exhausted their delivery attempts."""

    @abstractmethod
    def replay_undelivered(self) -> int:
        """Retry every undelivered record; return how many now succeeded."""


def build_event_router(
    *,
    settings: BotBoxSettings,
    clock: Clock | None = None,
) -> EventRouter:
    """Build the default Event Router from typed settings."""
    from packages.botbox_shared.clock import SystemClock
    from services.action.event_router.config import resolve_event_router_settings
    from services.action.event_router.implementation import DefaultEventRouter

    return DefaultEventRouter(
        settings=resolve_event_router_settings(settings),
        clock=clock or SystemClock(),
    )
