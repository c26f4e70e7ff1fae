"""Local thread bot runtime resource exports."""

from resources.adapters.local_runtime.component import RESOURCE_COMPONENT_ID
from resources.adapters.local_runtime.config import (
    LocalRuntimeSettings,
    resolve_local_runtime_settings,
)
from resources.adapters.local_runtime.runtime import LocalThreadBotRuntime

__all__ = [
    "LocalRuntimeSettings",
    "LocalThreadBotRuntime",
    "RESOURCE_COMPONENT_ID",
    "resolve_local_runtime_settings",
]
