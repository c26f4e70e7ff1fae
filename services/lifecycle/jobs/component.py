"""Component declaration for the Job State Machine."""

from __future__ import annotations

SERVICE_COMPONENT_ID = "service_jobs"
