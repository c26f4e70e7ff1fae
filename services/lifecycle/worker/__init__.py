"""Worker package exports."""

from services.lifecycle.worker.component import SERVICE_COMPONENT_ID
from services.lifecycle.worker.implementation import DefaultWorker
from services.lifecycle.worker.service import Worker, build_worker

__all__ = [
    "DefaultWorker",
    "SERVICE_COMPONENT_ID",
    "Worker",
    "build_worker",
]
