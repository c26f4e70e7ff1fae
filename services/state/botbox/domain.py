"""Administrative data contracts owned by the BotBox aggregate."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from services.lifecycle.bot_runtime import Bot


class Role(StrEnum):
    ADMIN = "admin"
    DEVELOPER = "developer"
    VIEWER = "viewer"


class InvitationStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class User(BaseModel):
    """A person who can be a member of BotBoxes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: str = ""


class Member(BaseModel):
    """One user's role inside one BotBox."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    user: User
    role: Role
    joined_at: datetime

    @property
    def user_id(self) -> str:
        return self.user.id


class Team(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str = Field(min_length=1)
    member_ids: tuple[str, ...] = ()
    created_at: datetime


class Invitation(BaseModel):
    """Pending or decided invitation to join a BotBox with a role."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    email: str = Field(min_length=3)
    role: Role
    invited_by: str
    status: InvitationStatus = InvitationStatus.PENDING
    created_at: datetime
    decided_at: datetime | None = None


class AuditRecord(BaseModel):
    """Append-only trail entry for one administrative or lifecycle action."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    occurred_at: datetime
    actor: str
    action: str
    entity_kind: str
    entity_id: str
    detail: str = ""


class BotBoxRecord(BaseModel):
    """Persistable state of one BotBox.

    Deployments are runtime state owned by the Worker and are not persisted;
    a loaded BotBox starts with every bot stopped.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    tags: tuple[str, ...] = ()
    created_at: datetime
    updated_at: datetime
    bots: tuple[Bot, ...] = ()
    members: tuple[Member, ...] = ()
    teams: tuple[Team, ...] = ()
    invitations: tuple[Invitation, ...] = ()
    audit: tuple[AuditRecord, ...] = ()
