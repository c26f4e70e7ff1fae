"""Protocols consumed by the Bot Runtime Handle."""

from __future__ import annotations

from typing import Protocol

from packages.botbox_shared.concurrency import CancellationToken


class BotRuntime(Protocol):
    """Process/container/thread backend that actually runs bots.

    ``launch`` and ``terminate`` request a change and may return before it
    takes effect; the handle polls ``is_healthy``/``is_terminated`` under its
    own timeout. Implementations should observe ``cancel_token`` in any
    blocking section.
    """

    def launch(self, bot_id: str, *, cancel_token: CancellationToken) -> None:
        """Begin running ``bot_id``."""

    def is_healthy(self, bot_id: str) -> bool:
        """Return whether ``bot_id`` is up and reporting healthy."""

    def terminate(self, bot_id: str, *, cancel_token: CancellationToken) -> None:
        """Begin shutting ``bot_id`` down."""

    def is_terminated(self, bot_id: str) -> bool:
        """Return whether ``bot_id`` has fully stopped."""
