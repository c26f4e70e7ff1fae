"""Pydantic settings for BotBox persistence."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from packages.botbox_shared.config import BotBoxSettings, resolve_component_settings
from services.state.botbox.component import SERVICE_COMPONENT_ID


class BotBoxServiceSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    database_url: str = Field(default="sqlite:///botbox.db", min_length=1)


def resolve_botbox_settings(settings: BotBoxSettings) -> BotBoxServiceSettings:
    """Resolve settings from ``components.service.botbox``."""
    return resolve_component_settings(
        settings=settings,
        component_id=SERVICE_COMPONENT_ID,
        model=BotBoxServiceSettings,
    )
