"""Component declaration for the Deployment Controller."""

from __future__ import annotations

SERVICE_COMPONENT_ID = "service_deployments"
