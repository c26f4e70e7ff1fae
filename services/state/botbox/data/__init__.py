"""Data-layer exports for the BotBox aggregate."""

from services.state.botbox.data.repository import (
    InMemoryBotBoxRepository,
    SqlBotBoxRepository,
    SqlJobArchive,
)
from services.state.botbox.data.runtime import BotBoxSqlRuntime

__all__ = [
    "BotBoxSqlRuntime",
    "InMemoryBotBoxRepository",
    "SqlBotBoxRepository",
    "SqlJobArchive",
]
