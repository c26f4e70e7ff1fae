"""Transition, alert, and notification contracts for the Event Router.

Records are immutable once constructed; sinks may share and read them from
any thread without synchronization.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

AttributeValue = str | int | float | bool | None


def _freeze_attributes(
    value: Mapping[str, AttributeValue],
) -> Mapping[str, AttributeValue]:
    """Copy attributes into a read-only view shared by every subscriber."""
    return MappingProxyType(dict(value))


class EntityKind(StrEnum):
    """Kinds of entities whose transitions are routed."""

    BOT = "bot"
    JOB = "job"
    DEPLOYMENT = "deployment"
    BOTBOX = "botbox"


class Severity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class DeploymentEvent(StrEnum):
    """Deployment lifecycle steps reported as transition ``to_state`` values."""

    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNDEPLOYED = "undeployed"


class BotBoxEvent(StrEnum):
    """Administrative BotBox changes reported as transition ``to_state`` values."""

    CREATED = "created"
    ROLE_CHANGED = "role_changed"
    INVITED = "invited"


class Transition(BaseModel):
    """One committed state change of one entity.

    ``sequence`` increases by one per committed transition of the same entity,
    so subscribers can check per-entity ordering and drop duplicates.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    entity_kind: EntityKind
    entity_id: str = Field(min_length=1)
    from_state: str
    to_state: str
    occurred_at: datetime
    sequence: int = Field(ge=1)
    attributes: Mapping[str, AttributeValue] = Field(
        default_factory=dict, validate_default=True
    )

    @field_validator("attributes")
    @classmethod
    def _freeze(
        cls, value: Mapping[str, AttributeValue]
    ) -> Mapping[str, AttributeValue]:
        return _freeze_attributes(value)

    @field_serializer("attributes")
    def _dump_attributes(
        self, value: Mapping[str, AttributeValue]
    ) -> dict[str, Any]:
        return dict(value)


class AlertKind(StrEnum):
    BOT_UNHEALTHY = "bot_unhealthy"
    JOB_FAILURE = "job_failure"
    DEPLOYMENT_FAILURE = "deployment_failure"


class BotUnhealthyDetails(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal[AlertKind.BOT_UNHEALTHY] = AlertKind.BOT_UNHEALTHY
    bot_id: str
    reason: str


class JobFailureDetails(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal[AlertKind.JOB_FAILURE] = AlertKind.JOB_FAILURE
    job_id: str
    error_message: str
    retry_count: int = Field(ge=0)
    exhausted: bool = False


class DeploymentFailureDetails(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal[AlertKind.DEPLOYMENT_FAILURE] = AlertKind.DEPLOYMENT_FAILURE
    deployment_id: str
    environment: str
    reason: str


AlertDetails = Annotated[
    BotUnhealthyDetails | JobFailureDetails | DeploymentFailureDetails,
    Field(discriminator="kind"),
]


class Alert(BaseModel):
    """Actionable, severity-tagged record raised by one transition."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    record_type: Literal["alert"] = "alert"
    record_id: str = Field(min_length=1)
    severity: Severity
    timestamp: datetime
    entity_kind: EntityKind
    entity_id: str
    sequence: int = Field(ge=1)
    details: AlertDetails

    @property
    def kind(self) -> AlertKind:
        return self.details.kind


class NotificationKind(StrEnum):
    INVITATION = "invitation"
    ROLE_CHANGED = "role_changed"
    DEPLOYMENT_STARTED = "deployment_started"
    DEPLOYMENT_SUCCEEDED = "deployment_succeeded"
    DEPLOYMENT_FAILED = "deployment_failed"
    JOB_STARTED = "job_started"
    JOB_SUCCEEDED = "job_succeeded"
    JOB_FAILED = "job_failed"
    PROJECT_CREATED = "project_created"
    INFO = "info"


class Notification(BaseModel):
    """Informational record raised by one benign transition."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    record_type: Literal["notification"] = "notification"
    record_id: str = Field(min_length=1)
    kind: NotificationKind
    severity: Severity = Severity.INFO
    timestamp: datetime
    entity_kind: EntityKind
    entity_id: str
    sequence: int = Field(ge=1)
    message: str
    attributes: Mapping[str, AttributeValue] = Field(
        default_factory=dict, validate_default=True
    )

    @field_validator("attributes")
    @classmethod
    def _freeze(
        cls, value: Mapping[str, AttributeValue]
    ) -> Mapping[str, AttributeValue]:
        return _freeze_attributes(value)

    @field_serializer("attributes")
    def _dump_attributes(
        self, value: Mapping[str, AttributeValue]
    ) -> dict[str, Any]:
        return dict(value)


EventRecord = Annotated[Alert | Notification, Field(discriminator="record_type")]


class UndeliveredRecord(BaseModel):
    """Record a subscriber kept rejecting after every delivery attempt."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    subscription_id: str
    record: EventRecord
    attempts: int
    error: str
