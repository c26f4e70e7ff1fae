"""Component declaration for the local thread bot runtime."""

from __future__ import annotations

RESOURCE_COMPONENT_ID = "adapter_local_runtime"
