"""Pydantic settings for job execution and retry defaults."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from packages.botbox_shared.config import BotBoxSettings, resolve_component_settings
from services.lifecycle.jobs.component import SERVICE_COMPONENT_ID


class JobSettings(BaseModel):
    """Default retry policy and execution bound for scheduled jobs."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(default=3, ge=1)
    backoff_strategy: Literal["none", "fixed", "exponential"] = "none"
    backoff_base_seconds: float = Field(default=0.0, ge=0.0)
    execute_timeout_seconds: float | None = Field(default=None, gt=0)


def resolve_job_settings(settings: BotBoxSettings) -> JobSettings:
    """Resolve settings from ``components.service.jobs``."""
    return resolve_component_settings(
        settings=settings,
        component_id=SERVICE_COMPONENT_ID,
        model=JobSettings,
    )
