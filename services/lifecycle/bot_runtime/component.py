"""Component declaration for the Bot Runtime Handle."""

from __future__ import annotations

SERVICE_COMPONENT_ID = "service_bot_runtime"
