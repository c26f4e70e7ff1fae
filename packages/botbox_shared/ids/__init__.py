"""Shared ULID identifiers for BotBox entities."""

from packages.botbox_shared.ids.ulid import (
    ULID_LENGTH,
    MonotonicUlidGenerator,
    generate_ulid_str,
    is_ulid,
    ulid_timestamp_ms,
)

__all__ = [
    "ULID_LENGTH",
    "MonotonicUlidGenerator",
    "generate_ulid_str",
    "is_ulid",
    "ulid_timestamp_ms",
]
