"""Event Router package exports."""

from services.action.event_router.component import SERVICE_COMPONENT_ID
from services.action.event_router.config import (
    EventRouterSettings,
    resolve_event_router_settings,
)
from services.action.event_router.domain import (
    Alert,
    AlertKind,
    BotBoxEvent,
    BotUnhealthyDetails,
    DeploymentEvent,
    DeploymentFailureDetails,
    EntityKind,
    JobFailureDetails,
    Notification,
    NotificationKind,
    Severity,
    Transition,
    UndeliveredRecord,
)
from services.action.event_router.implementation import (
    DefaultEventRouter,
    job_failure_severity,
    map_transition,
)
from services.action.event_router.interfaces import EventSink, TransitionPublisher
from services.action.event_router.service import (
    EventRouter,
    Subscription,
    build_event_router,
)
from services.action.event_router.sinks import (
    CallbackEventSink,
    InMemoryEventSink,
    LoggingEventSink,
)

__all__ = [
    "Alert",
    "AlertKind",
    "BotBoxEvent",
    "BotUnhealthyDetails",
    "CallbackEventSink",
    "DefaultEventRouter",
    "DeploymentEvent",
    "DeploymentFailureDetails",
    "EntityKind",
    "EventRouter",
    "EventRouterSettings",
    "EventSink",
    "InMemoryEventSink",
    "JobFailureDetails",
    "LoggingEventSink",
    "Notification",
    "NotificationKind",
    "SERVICE_COMPONENT_ID",
    "Severity",
    "Subscription",
    "Transition",
    "TransitionPublisher",
    "UndeliveredRecord",
    "build_event_router",
    "job_failure_severity",
    "map_transition",
    "resolve_event_router_settings",
]
