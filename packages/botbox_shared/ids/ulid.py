"""ULID generation and inspection helpers.

Identifiers are canonical 26-character Crockford Base32 strings. The first ten
characters carry a 48-bit millisecond timestamp, so lexical order follows
creation order. ``MonotonicUlidGenerator`` additionally guarantees strictly
increasing values for ids minted within the same millisecond.
"""

from __future__ import annotations

import secrets
import time
from threading import Lock

ULID_LENGTH = 26

_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_DECODE = {char: index for index, char in enumerate(_ALPHABET)}
_TIMESTAMP_BITS = 48
_ENTROPY_BITS = 80
_MAX_ENTROPY = (1 << _ENTROPY_BITS) - 1


def _encode(number: int) -> str:
    chars: list[str] = []
    for _ in range(ULID_LENGTH):
        number, remainder = divmod(number, 32)
        chars.append(_ALPHABET[remainder])
    return "".join(reversed(chars))


def _decode(value: str) -> int:
    candidate = value.strip().upper()
    if len(candidate) != ULID_LENGTH:
        raise ValueError("ULID string must be exactly 26 characters")
    number = 0
    for char in candidate:
        if char not in _DECODE:
            raise ValueError(f"Invalid ULID character: {char!r}")
        number = (number << 5) | _DECODE[char]
    if number >> 128:
        raise ValueError("ULID value exceeds 128-bit range")
    return number


def _compose(timestamp_ms: int, entropy: int) -> str:
    if timestamp_ms < 0 or timestamp_ms >= (1 << _TIMESTAMP_BITS):
        raise ValueError("timestamp_ms out of ULID 48-bit range")
    return _encode((timestamp_ms << _ENTROPY_BITS) | entropy)


def generate_ulid_str(*, timestamp_ms: int | None = None) -> str:
    """Return one random ULID string for ``timestamp_ms`` (default: now)."""
    ts_ms = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
    return _compose(ts_ms, secrets.randbits(_ENTROPY_BITS))


def is_ulid(value: object) -> bool:
    """Return whether ``value`` is a canonical ULID string."""
    if not isinstance(value, str):
        return False
    try:
        _decode(value)
    except ValueError:
        return False
    return True


def ulid_timestamp_ms(value: str) -> int:
    """Return the embedded millisecond timestamp of a ULID string."""
    return _decode(value) >> _ENTROPY_BITS


class MonotonicUlidGenerator:
    """Thread-safe ULID source whose output is strictly increasing."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._last_ms = -1
        self._last_entropy = 0

    def new(self) -> str:
        """Mint the next ULID string."""
        now_ms = int(time.time() * 1000)
        with self._lock:
            if now_ms <= self._last_ms:
                # Same (or skewed-back) millisecond: bump entropy, borrowing
                # from the clock when it overflows.
                now_ms = self._last_ms
                entropy = self._last_entropy + 1
                if entropy > _MAX_ENTROPY:
                    now_ms += 1
                    entropy = secrets.randbits(_ENTROPY_BITS - 1)
            else:
                entropy = secrets.randbits(_ENTROPY_BITS - 1)
            self._last_ms = now_ms
            self._last_entropy = entropy
        return _compose(now_ms, entropy)
