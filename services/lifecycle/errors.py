"""Lifecycle exception hierarchy and lifecycle-local error codes.

Every exception renders to a shared ``ErrorDetail`` through ``to_error()`` so
callers (CLI, persistence, logs) can handle failures uniformly. None of these
errors is fatal to the process.
"""

from __future__ import annotations

from packages.botbox_shared.errors import (
    ErrorDetail,
    codes,
    conflict_error,
    dependency_error,
    internal_error,
    not_found_error,
    policy_error,
    validation_error,
)

INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
ALREADY_DEPLOYED = "ALREADY_DEPLOYED"
DEPLOYMENT_NOT_FOUND = "DEPLOYMENT_NOT_FOUND"
DEPLOYMENT_FAILED = "DEPLOYMENT_FAILED"
DEPLOYMENT_CANCELLED = "DEPLOYMENT_CANCELLED"
OPERATION_TIMEOUT = "OPERATION_TIMEOUT"
BOT_UNHEALTHY = "BOT_UNHEALTHY"
WORK_FAILURE = "WORK_FAILURE"
BOT_NOT_FOUND = "BOT_NOT_FOUND"
BOT_IN_USE = "BOT_IN_USE"
BOT_OWNERSHIP_CONFLICT = "BOT_OWNERSHIP_CONFLICT"
MEMBER_NOT_FOUND = "MEMBER_NOT_FOUND"
INVITATION_NOT_FOUND = "INVITATION_NOT_FOUND"
BOTBOX_NOT_FOUND = "BOTBOX_NOT_FOUND"
ORCHESTRATION_ERROR = "ORCHESTRATION_ERROR"


class LifecycleError(Exception):
    """Base class for bot/job/deployment lifecycle failures."""

    code = codes.INTERNAL_ERROR

    def __init__(self, message: str, **metadata: object) -> None:
        super().__init__(message)
        self.message = message
        self.metadata = {key: str(value) for key, value in metadata.items()}

    def to_error(self) -> ErrorDetail:
        """Render this failure as a shared ``ErrorDetail``."""
        return internal_error(self.message, code=self.code, metadata=self.metadata)


class InvalidStateTransition(LifecycleError):
    """Operation is not valid from the entity's current state."""

    code = INVALID_STATE_TRANSITION

    def __init__(
        self,
        *,
        entity_kind: str,
        entity_id: str,
        current: str,
        operation: str,
        detail: str = "",
    ) -> None:
        message = f"cannot {operation} {entity_kind} {entity_id} from state {current}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(
            message,
            entity_kind=entity_kind,
            entity_id=entity_id,
            current=current,
            operation=operation,
        )
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.current = current
        self.operation = operation

    def to_error(self) -> ErrorDetail:
        return validation_error(self.message, code=self.code, metadata=self.metadata)


class RetryExhausted(InvalidStateTransition):
    """``retry()`` refused because the job spent its attempt budget."""

    code = RETRY_EXHAUSTED

    def __init__(self, *, job_id: str, attempts: int, max_attempts: int) -> None:
        super().__init__(
            entity_kind="job",
            entity_id=job_id,
            current="failed",
            operation="retry",
            detail=f"{attempts} of {max_attempts} attempts used",
        )
        self.attempts = attempts
        self.max_attempts = max_attempts


class AlreadyDeployed(LifecycleError):
    """The bot already has a live deployment."""

    code = ALREADY_DEPLOYED

    def __init__(self, *, bot_id: str, deployment_id: str) -> None:
        super().__init__(
            f"bot {bot_id} is already deployed as {deployment_id}",
            bot_id=bot_id,
            deployment_id=deployment_id,
        )
        self.bot_id = bot_id
        self.deployment_id = deployment_id

    def to_error(self) -> ErrorDetail:
        return conflict_error(self.message, code=self.code, metadata=self.metadata)


class DeploymentNotFound(LifecycleError):
    """The deployment does not exist or was invalidated by undeploy."""

    code = DEPLOYMENT_NOT_FOUND

    def __init__(self, *, deployment_id: str) -> None:
        super().__init__(
            f"deployment {deployment_id} not found", deployment_id=deployment_id
        )
        self.deployment_id = deployment_id

    def to_error(self) -> ErrorDetail:
        return not_found_error(self.message, code=self.code, metadata=self.metadata)


class DeploymentFailed(LifecycleError):
    """The bot could not be started, so no deployment was created."""

    code = DEPLOYMENT_FAILED

    def __init__(self, *, bot_id: str, reason: str) -> None:
        super().__init__(
            f"deployment of bot {bot_id} failed: {reason}", bot_id=bot_id, reason=reason
        )
        self.bot_id = bot_id
        self.reason = reason

    def to_error(self) -> ErrorDetail:
        return dependency_error(self.message, code=self.code, metadata=self.metadata)


class DeploymentCancelled(LifecycleError):
    """The caller cancelled a deploy before its bot came up.

    Cancellation is a normal outcome: no deployment exists, the bot is back
    in ``Stopped`` and no alert is raised.
    """

    code = DEPLOYMENT_CANCELLED

    def __init__(self, *, bot_id: str, reason: str) -> None:
        super().__init__(
            f"deployment of bot {bot_id} cancelled: {reason}",
            bot_id=bot_id,
            reason=reason,
        )
        self.bot_id = bot_id
        self.reason = reason

    def to_error(self) -> ErrorDetail:
        return conflict_error(self.message, code=self.code, metadata=self.metadata)


class OperationTimeout(LifecycleError, TimeoutError):
    """A start/stop/execute operation exceeded its configured bound."""

    code = OPERATION_TIMEOUT

    def __init__(
        self,
        *,
        entity_kind: str,
        entity_id: str,
        operation: str,
        timeout_seconds: float,
    ) -> None:
        super().__init__(
            f"{operation} of {entity_kind} {entity_id} timed out after {timeout_seconds}s",
            entity_kind=entity_kind,
            entity_id=entity_id,
            operation=operation,
            timeout_seconds=timeout_seconds,
        )
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.operation = operation
        self.timeout_seconds = timeout_seconds

    def to_error(self) -> ErrorDetail:
        return dependency_error(
            self.message, code=self.code, retryable=True, metadata=self.metadata
        )


class BotUnhealthy(LifecycleError):
    """The bot runtime failed and the bot entered ``Unknown``."""

    code = BOT_UNHEALTHY

    def __init__(self, *, bot_id: str, reason: str) -> None:
        super().__init__(f"bot {bot_id} unhealthy: {reason}", bot_id=bot_id, reason=reason)
        self.bot_id = bot_id
        self.reason = reason

    def to_error(self) -> ErrorDetail:
        return dependency_error(self.message, code=self.code, metadata=self.metadata)


class WorkFailure(LifecycleError):
    """Raised by a work executor to report why its job failed."""

    code = WORK_FAILURE

    def __init__(self, reason: str) -> None:
        super().__init__(reason, reason=reason)
        self.reason = reason

    def to_error(self) -> ErrorDetail:
        return dependency_error(
            self.message, code=self.code, retryable=True, metadata=self.metadata
        )


class BotNotFound(LifecycleError):
    code = BOT_NOT_FOUND

    def __init__(self, *, bot_id: str) -> None:
        super().__init__(f"bot {bot_id} not found", bot_id=bot_id)
        self.bot_id = bot_id

    def to_error(self) -> ErrorDetail:
        return not_found_error(self.message, code=self.code, metadata=self.metadata)


class BotInUse(LifecycleError):
    """The bot cannot be removed while a deployment references it."""

    code = BOT_IN_USE

    def __init__(self, *, bot_id: str, deployment_id: str) -> None:
        super().__init__(
            f"bot {bot_id} is referenced by deployment {deployment_id}",
            bot_id=bot_id,
            deployment_id=deployment_id,
        )
        self.bot_id = bot_id
        self.deployment_id = deployment_id

    def to_error(self) -> ErrorDetail:
        return conflict_error(self.message, code=self.code, metadata=self.metadata)


class BotOwnershipConflict(LifecycleError):
    """The bot already belongs to another BotBox."""

    code = BOT_OWNERSHIP_CONFLICT

    def __init__(self, *, bot_id: str, owner_id: str) -> None:
        super().__init__(
            f"bot {bot_id} is owned by botbox {owner_id}", bot_id=bot_id, owner_id=owner_id
        )
        self.bot_id = bot_id
        self.owner_id = owner_id

    def to_error(self) -> ErrorDetail:
        return conflict_error(self.message, code=self.code, metadata=self.metadata)


class MemberNotFound(LifecycleError):
    code = MEMBER_NOT_FOUND

    def __init__(self, *, user_id: str) -> None:
        super().__init__(f"member {user_id} not found", user_id=user_id)
        self.user_id = user_id

    def to_error(self) -> ErrorDetail:
        return not_found_error(self.message, code=self.code, metadata=self.metadata)


class InvitationNotFound(LifecycleError):
    code = INVITATION_NOT_FOUND

    def __init__(self, *, invitation_id: str) -> None:
        super().__init__(
            f"pending invitation {invitation_id} not found", invitation_id=invitation_id
        )
        self.invitation_id = invitation_id

    def to_error(self) -> ErrorDetail:
        return not_found_error(self.message, code=self.code, metadata=self.metadata)


class AuthorizationDenied(LifecycleError, PermissionError):
    """The authorization collaborator refused the operation."""

    code = codes.PERMISSION_DENIED

    def __init__(self, *, principal: str, operation: str) -> None:
        super().__init__(
            f"{principal} may not {operation}", principal=principal, operation=operation
        )
        self.principal = principal
        self.operation = operation

    def to_error(self) -> ErrorDetail:
        return policy_error(self.message, code=self.code, metadata=self.metadata)


class OrchestrationError(LifecycleError):
    """Unexpected collaborator failure translated by the Worker."""

    code = ORCHESTRATION_ERROR


class BotBoxNotFound(LifecycleError):
    code = BOTBOX_NOT_FOUND

    def __init__(self, *, botbox_id: str) -> None:
        super().__init__(f"botbox {botbox_id} not found", botbox_id=botbox_id)
        self.botbox_id = botbox_id

    def to_error(self) -> ErrorDetail:
        return not_found_error(self.message, code=self.code, metadata=self.metadata)
