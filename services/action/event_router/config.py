"""Pydantic settings for the Event Router."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from packages.botbox_shared.config import BotBoxSettings, resolve_component_settings
from services.action.event_router.component import SERVICE_COMPONENT_ID


class EventRouterSettings(BaseModel):
    """Delivery and escalation behavior for alert/notification fan-out.

    Delivery runs on the publishing thread while the emitting entity holds
    its lock, so retry delays stall that entity's other mutations for up to
    ``(delivery_attempts - 1) * delivery_retry_delay_seconds`` per failing
    subscriber. The delay is capped at one second.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    delivery_attempts: int = Field(default=3, ge=1)
    delivery_retry_delay_seconds: float = Field(default=0.0, ge=0.0, le=1.0)
    job_failure_critical_after_retries: int = Field(default=3, ge=0)
    max_undelivered: int = Field(default=1000, ge=1)


def resolve_event_router_settings(settings: BotBoxSettings) -> EventRouterSettings:
    """Resolve router settings from ``components.service.event_router``."""
    return resolve_component_settings(
        settings=settings,
        component_id=SERVICE_COMPONENT_ID,
        model=EventRouterSettings,
    )
