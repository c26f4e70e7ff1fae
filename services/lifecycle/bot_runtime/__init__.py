"""Bot Runtime Handle package exports."""

from services.lifecycle.bot_runtime.component import SERVICE_COMPONENT_ID
from services.lifecycle.bot_runtime.config import (
    BotRuntimeSettings,
    resolve_bot_runtime_settings,
)
from services.lifecycle.bot_runtime.domain import Bot, BotRuntimeSnapshot, BotStatus
from services.lifecycle.bot_runtime.handle import BotRuntimeHandle
from services.lifecycle.bot_runtime.interfaces import BotRuntime

__all__ = [
    "Bot",
    "BotRuntime",
    "BotRuntimeHandle",
    "BotRuntimeSettings",
    "BotRuntimeSnapshot",
    "BotStatus",
    "SERVICE_COMPONENT_ID",
    "resolve_bot_runtime_settings",
]
