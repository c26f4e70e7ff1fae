"""Canonical logging field names for cross-component consistency."""

TIMESTAMP = "timestamp"
LEVEL = "level"
LOGGER = "logger"
MESSAGE = "message"
EVENT = "event"

# Entity correlation fields.
BOTBOX_ID = "botbox_id"
BOT_ID = "bot_id"
DEPLOYMENT_ID = "deployment_id"
JOB_ID = "job_id"
ENTITY_KIND = "entity_kind"
ENTITY_ID = "entity_id"
FROM_STATE = "from_state"
TO_STATE = "to_state"
SEQUENCE = "sequence"
PRINCIPAL = "principal"

# Event routing fields.
RECORD_ID = "record_id"
RECORD_KIND = "record_kind"
SEVERITY = "severity"
SUBSCRIPTION = "subscription"
ATTEMPT = "attempt"

# Public API invocation fields.
COMPONENT_ID = "component_id"
API_NAME = "api_name"
PUBLIC_API_INVOCATION_EVENT = "public_api_invocation"
PUBLIC_API_COMPLETION_EVENT = "public_api_completion"
PUBLIC_API_INSTRUMENTATION_FAILURE_EVENT = "public_api_instrumentation_failure"
SUCCESS = "success"
DURATION_MS = "duration_ms"
ERRORS = "errors"
STAGE = "stage"
CONCERN = "concern"

# Common service-level fields.
SERVICE = "service"
ENVIRONMENT = "environment"
