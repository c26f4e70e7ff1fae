"""Deployment record contract."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Deployment(BaseModel):
    """A running instance of one bot.

    The bot is referenced by id only and resolved through its owner; the
    deployment has no status of its own and reports its bot's status.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    bot_id: str = Field(min_length=1)
    environment: str = Field(min_length=1)
    created_at: datetime
    updated_at: datetime
