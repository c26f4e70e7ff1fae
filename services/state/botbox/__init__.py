"""BotBox aggregate package exports."""

from services.state.botbox.aggregate import BotBox
from services.state.botbox.component import SERVICE_COMPONENT_ID
from services.state.botbox.config import BotBoxServiceSettings, resolve_botbox_settings
from services.state.botbox.domain import (
    AuditRecord,
    BotBoxRecord,
    Invitation,
    InvitationStatus,
    Member,
    Role,
    Team,
    User,
)
from services.state.botbox.interfaces import (
    AllowAllAuthorizer,
    Authorizer,
    BotBoxRepository,
)

__all__ = [
    "AllowAllAuthorizer",
    "AuditRecord",
    "Authorizer",
    "BotBox",
    "BotBoxRecord",
    "BotBoxRepository",
    "BotBoxServiceSettings",
    "Invitation",
    "InvitationStatus",
    "Member",
    "Role",
    "SERVICE_COMPONENT_ID",
    "Team",
    "User",
    "resolve_botbox_settings",
]
