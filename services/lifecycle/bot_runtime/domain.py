"""Bot entity and runtime status contracts."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from packages.botbox_shared.clock import Clock


class BotStatus(StrEnum):
    """Operational status of one bot as observed by its runtime handle."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    UNKNOWN = "unknown"


class Bot(BaseModel):
    """Controllable agent definition owned by exactly one BotBox."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    tags: tuple[str, ...] = ()
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _check_timestamps(self) -> Bot:
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not precede created_at")
        return self

    @classmethod
    def new(
        cls,
        *,
        clock: Clock,
        name: str,
        description: str = "",
        tags: tuple[str, ...] = (),
    ) -> Bot:
        """Create a bot with a fresh id and matching timestamps."""
        now = clock.now()
        return cls(
            id=clock.new_id(),
            name=name,
            description=description,
            tags=tags,
            created_at=now,
            updated_at=now,
        )

    def edited(
        self,
        *,
        clock: Clock,
        name: str | None = None,
        description: str | None = None,
        tags: tuple[str, ...] | None = None,
    ) -> Bot:
        """Return a copy with the given fields replaced; ``id`` never changes."""
        return Bot(
            id=self.id,
            name=self.name if name is None else name,
            description=self.description if description is None else description,
            tags=self.tags if tags is None else tags,
            created_at=self.created_at,
            updated_at=max(clock.now(), self.created_at),
        )


class BotRuntimeSnapshot(BaseModel):
    """Consistent view of one handle's multi-field state."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    bot_id: str
    status: BotStatus
    reason: str = ""
    updated_at: datetime
    sequence: int = Field(default=0, ge=0)
