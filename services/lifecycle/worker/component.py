"""Component declaration for the Worker."""

from __future__ import annotations

SERVICE_COMPONENT_ID = "service_worker"
