"""Pydantic settings for the Deployment Controller."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from packages.botbox_shared.config import BotBoxSettings, resolve_component_settings
from services.lifecycle.deployments.component import SERVICE_COMPONENT_ID


class DeploymentSettings(BaseModel):
    """Deployment defaults and the undeploy cancellation bound."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    default_environment: str = Field(default="default", min_length=1)
    cancel_timeout_seconds: float = Field(default=10.0, gt=0)


def resolve_deployment_settings(settings: BotBoxSettings) -> DeploymentSettings:
    """Resolve settings from ``components.service.deployments``."""
    return resolve_component_settings(
        settings=settings,
        component_id=SERVICE_COMPONENT_ID,
        model=DeploymentSettings,
    )
