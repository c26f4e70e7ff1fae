"""Pydantic settings for bot start/stop supervision."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from packages.botbox_shared.config import BotBoxSettings, resolve_component_settings
from services.lifecycle.bot_runtime.component import SERVICE_COMPONENT_ID


class BotRuntimeSettings(BaseModel):
    """Bounds applied while waiting for runtime health signals."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    start_timeout_seconds: float = Field(default=30.0, gt=0)
    stop_timeout_seconds: float = Field(default=30.0, gt=0)
    health_poll_interval_seconds: float = Field(default=0.25, gt=0)


def resolve_bot_runtime_settings(settings: BotBoxSettings) -> BotRuntimeSettings:
    """Resolve settings from ``components.service.bot_runtime``."""
    return resolve_component_settings(
        settings=settings,
        component_id=SERVICE_COMPONENT_ID,
        model=BotRuntimeSettings,
    )
