"""Clock and identity provider consumed by every entity constructor."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol

from packages.botbox_shared.ids import MonotonicUlidGenerator


class Clock(Protocol):
    """Source of timestamps and unique identifiers."""

    def now(self) -> datetime:
        """Return the current timezone-aware UTC time."""

    def new_id(self) -> str:
        """Return a new globally unique identifier."""


class SystemClock:
    """Wall-clock time with monotonic ULID identifiers."""

    def __init__(self) -> None:
        self._ids = MonotonicUlidGenerator()

    def now(self) -> datetime:
        return datetime.now(UTC)

    def new_id(self) -> str:
        return self._ids.new()
