"""Component declaration for the Event Router."""

from __future__ import annotations

SERVICE_COMPONENT_ID = "service_event_router"
