"""Pydantic settings for the local thread bot runtime."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from packages.botbox_shared.config import BotBoxSettings, resolve_component_settings
from resources.adapters.local_runtime.component import RESOURCE_COMPONENT_ID


class LocalRuntimeSettings(BaseModel):
    """Heartbeat cadence and simulated launch latency for in-process bots."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    heartbeat_interval_seconds: float = Field(default=0.05, gt=0)
    launch_delay_seconds: float = Field(default=0.0, ge=0)


def resolve_local_runtime_settings(settings: BotBoxSettings) -> LocalRuntimeSettings:
    """Resolve adapter settings from ``components.adapter.local_runtime``."""
    return resolve_component_settings(
        settings=settings,
        component_id=RESOURCE_COMPONENT_ID,
        model=LocalRuntimeSettings,
    )
