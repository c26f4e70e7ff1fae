"""Component declaration for the BotBox aggregate."""

from __future__ import annotations

SERVICE_COMPONENT_ID = "service_botbox"
