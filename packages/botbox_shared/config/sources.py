"""Per-call settings source overrides.

``load_settings`` can be pointed at an explicit environment mapping and YAML
path (tests, CLI ``--config``). The overrides travel through a ``ContextVar``
so concurrent loads never observe each other's values.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Mapping

from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource


@dataclass(frozen=True)
class SourceOverrides:
    """Explicit environment/YAML inputs for one settings load."""

    environ: Mapping[str, str] | None = None
    config_path: Path | None = None

    def env_source(
        self, settings_cls: type[BaseSettings], *, prefix: str
    ) -> PydanticBaseSettingsSource:
        """Build a settings source over the explicit environment mapping."""
        return MappingEnvSource(
            settings_cls, values=parse_prefixed_env(self.environ or {}, prefix=prefix)
        )


_OVERRIDES: ContextVar[SourceOverrides | None] = ContextVar(
    "botbox_settings_overrides", default=None
)


def active_overrides() -> SourceOverrides | None:
    """Return overrides bound by the current ``load_settings`` call, if any."""
    return _OVERRIDES.get()


@contextmanager
def bound_overrides(overrides: SourceOverrides) -> Iterator[None]:
    """Bind overrides for the duration of one settings construction."""
    token = _OVERRIDES.set(overrides)
    try:
        yield
    finally:
        _OVERRIDES.reset(token)


class MappingEnvSource(PydanticBaseSettingsSource):
    """Settings source returning a pre-parsed nested mapping."""

    def __init__(self, settings_cls: type[BaseSettings], *, values: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._values = values

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self._values.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return dict(self._values)


def parse_prefixed_env(environ: Mapping[str, str], *, prefix: str) -> dict[str, Any]:
    """Map ``PREFIX_A__B=v`` entries into ``{"a": {"b": v}}``."""
    output: dict[str, Any] = {}
    for key, raw_value in environ.items():
        if not key.upper().startswith(prefix.upper()):
            continue
        path = [
            segment.strip().lower()
            for segment in key[len(prefix) :].split("__")
            if segment.strip()
        ]
        if not path:
            continue
        cursor = output
        for segment in path[:-1]:
            child = cursor.get(segment)
            if not isinstance(child, dict):
                child = {}
                cursor[segment] = child
            cursor = child
        cursor[path[-1]] = _coerce_scalar(raw_value)
    return output


def _coerce_scalar(raw: str) -> Any:
    """Decode JSON containers; leave scalars for pydantic to coerce."""
    value = raw.strip()
    if value.startswith(("{", "[")):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return raw
    return value
