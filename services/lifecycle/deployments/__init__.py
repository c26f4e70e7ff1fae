"""Deployment Controller package exports."""

from services.lifecycle.deployments.component import SERVICE_COMPONENT_ID
from services.lifecycle.deployments.config import (
    DeploymentSettings,
    resolve_deployment_settings,
)
from services.lifecycle.deployments.controller import DeploymentController
from services.lifecycle.deployments.domain import Deployment

__all__ = [
    "Deployment",
    "DeploymentController",
    "DeploymentSettings",
    "SERVICE_COMPONENT_ID",
    "resolve_deployment_settings",
]
