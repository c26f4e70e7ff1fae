"""Collaborator protocols consumed by the BotBox aggregate."""

from __future__ import annotations

from typing import Protocol

from services.state.botbox.domain import BotBoxRecord, Role


class Authorizer(Protocol):
    """Decide whether a principal may perform one operation."""

    def is_allowed(
        self,
        *,
        principal: str,
        role: Role | None,
        operation: str,
        botbox_id: str,
    ) -> bool:
        """Return ``True`` to allow; ``role`` is ``None`` for non-members."""


class BotBoxRepository(Protocol):
    """Load/save boundary for BotBox aggregates."""

    def save(self, record: BotBoxRecord) -> None:
        """Insert or replace one BotBox."""

    def load(self, botbox_id: str) -> BotBoxRecord | None:
        """Return one BotBox, if present."""

    def list_ids(self) -> list[str]:
        """Return every stored BotBox id."""


class AllowAllAuthorizer:
    """Authorizer that allows every operation."""

    def is_allowed(
        self,
        *,
        principal: str,
        role: Role | None,
        operation: str,
        botbox_id: str,
    ) -> bool:
        del principal, role, operation, botbox_id
        return True
