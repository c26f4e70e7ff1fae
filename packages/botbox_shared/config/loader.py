"""Settings loading with deterministic precedence.

The cascade is always:
1) explicit init/CLI params
2) environment variables (``BOTBOX_`` prefix, ``__`` nesting)
3) YAML file (``~/.config/botbox/botbox.yaml`` unless overridden)
4) model defaults

Example: ``BOTBOX_COMPONENTS__SERVICE__JOBS__MAX_ATTEMPTS=5`` sets
``components.service.jobs.max_attempts``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from .models import BotBoxSettings
from .sources import SourceOverrides, bound_overrides


def load_settings(
    *,
    cli_params: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    config_path: str | Path | None = None,
) -> BotBoxSettings:
    """Build ``BotBoxSettings`` from the standard source cascade.

    ``environ`` replaces ``os.environ`` as the environment source when given.
    """
    overrides = SourceOverrides(
        environ=environ,
        config_path=Path(config_path).expanduser() if config_path is not None else None,
    )
    with bound_overrides(overrides):
        return BotBoxSettings(**dict(cli_params or {}))
