"""BotBox CLI actor implemented with Typer."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import typer
from sqlalchemy.exc import SQLAlchemyError

from packages.botbox_shared.clock import SystemClock
from packages.botbox_shared.concurrency import CancellationToken
from packages.botbox_shared.config import BotBoxSettings, load_settings
from packages.botbox_shared.logging import configure_logging
from resources.adapters.local_runtime import (
    LocalThreadBotRuntime,
    resolve_local_runtime_settings,
)
from services.action.event_router import InMemoryEventSink
from services.lifecycle.errors import LifecycleError, WorkFailure
from services.lifecycle.jobs import WorkExecutor
from services.lifecycle.worker import Worker, build_worker
from services.state.botbox import BotBox, Role, User
from services.state.botbox.data import BotBoxSqlRuntime

SUCCESS_EXIT_CODE = 0
DOMAIN_ERROR_EXIT_CODE = 3
STORAGE_ERROR_EXIT_CODE = 4


class RoleOption(str, Enum):
    """Roles accepted by member commands."""

    ADMIN = "admin"
    DEVELOPER = "developer"
    VIEWER = "viewer"


@dataclass(frozen=True)
class CliConfig:
    """Global CLI options shared by every command."""

    settings: BotBoxSettings
    principal: str
    as_json: bool


def _serialize(value: Any) -> Any:
    """Convert result objects to JSON-serializable structures."""

    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (datetime, date, Path)):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _serialize(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {str(key): _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_serialize(item) for item in value]
    if hasattr(value, "model_dump"):
        return _serialize(value.model_dump(mode="json"))
    return str(value)


def _emit_output(result: Any, as_json: bool) -> None:
    """Render command output in requested format."""

    data = _serialize(result)
    if as_json:
        typer.echo(json.dumps(data, sort_keys=True, separators=(",", ":")))
        return
    rendered = _render_human(data)
    if rendered is not None:
        typer.echo(rendered)
        return
    if data is None:
        typer.echo("ok")
        return
    typer.echo(str(data))


def _emit_error(exc: Exception, as_json: bool) -> None:
    """Render mapped errors to stderr."""

    if as_json:
        payload: dict[str, Any] = {"error": str(exc)}
        if isinstance(exc, LifecycleError):
            payload["code"] = exc.code
        typer.echo(json.dumps(payload, sort_keys=True), err=True)
        return
    typer.echo(f"error: {exc}", err=True)


def _render_human(data: Any) -> str | None:
    """Return human-oriented rendering for recognized result shapes."""
    if isinstance(data, dict):
        if "botbox_id" in data and "jobs" in data:
            return _render_run(data)
        if "members" in data and "bots" in data:
            return _render_botbox(data)
    if isinstance(data, list):
        if _all_have(data, "occurred_at", "action"):
            return _render_audit(data)
        if _all_have(data, "name", "tags"):
            return _render_bots(data)
    if isinstance(data, (dict, list)):
        return json.dumps(data, indent=2, sort_keys=True)
    return None


def _all_have(items: list[Any], *keys: str) -> bool:
    return len(items) > 0 and all(
        isinstance(item, dict) and all(key in item for key in keys) for item in items
    )


def _render_botbox(data: dict[str, Any]) -> str:
    lines = [f"BotBox {data.get('name', '')} ({data.get('id', '')})"]
    lines.append(f"  bots: {len(data.get('bots', []))}")
    lines.append(f"  members: {len(data.get('members', []))}")
    return "\n".join(lines)


def _render_bots(items: list[dict[str, Any]]) -> str:
    lines: list[str] = []
    for item in items:
        line = f"- {item.get('name', '')} ({item.get('id', '')})"
        tags = item.get("tags") or []
        if tags:
            line = f"{line} [{', '.join(str(tag) for tag in tags)}]"
        lines.append(line)
    return "\n".join(lines)


def _render_audit(items: list[dict[str, Any]]) -> str:
    lines: list[str] = []
    for item in items:
        line = (
            f"{item.get('occurred_at', '')} {item.get('actor', '')} "
            f"{item.get('action', '')} {item.get('entity_kind', '')}:"
            f"{item.get('entity_id', '')}"
        )
        detail = str(item.get("detail", "")).strip()
        if detail != "":
            line = f"{line} ({detail})"
        lines.append(line)
    return "\n".join(lines)


def _render_run(data: dict[str, Any]) -> str:
    lines = [f"Deployment {data.get('deployment_id', '')} on bot {data.get('bot_id', '')}"]
    for job in data.get("jobs", []):
        lines.append(f"  job {job.get('job_id', '')}: {job.get('status', '')}")
    lines.append(f"Bot status: {data.get('bot_status', '')}")
    for event in data.get("events", []):
        severity = str(event.get("severity", "")).upper()
        label = event.get("kind") or event.get("details", {}).get("kind", "")
        lines.append(f"  [{severity}] {event.get('record_type', '')} {label}")
    return "\n".join(lines)


def _open_storage(settings: BotBoxSettings) -> BotBoxSqlRuntime:
    return BotBoxSqlRuntime.from_settings(settings)


def _run_command(cfg: CliConfig, invoke: Callable[[BotBoxSqlRuntime], Any]) -> None:
    """Execute one command against storage and map errors to exit codes."""
    storage: BotBoxSqlRuntime | None = None
    try:
        storage = _open_storage(cfg.settings)
        result = invoke(storage)
    except LifecycleError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=DOMAIN_ERROR_EXIT_CODE) from exc
    except SQLAlchemyError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=STORAGE_ERROR_EXIT_CODE) from exc
    finally:
        if storage is not None:
            storage.dispose()

    _emit_output(result, cfg.as_json)
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


def _load_botbox(
    cfg: CliConfig,
    storage: BotBoxSqlRuntime,
    botbox_id: str,
    *,
    worker: Worker | None = None,
) -> BotBox:
    return BotBox.load(
        botbox_id,
        repository=storage.repository,
        worker=worker
        or build_worker(settings=cfg.settings, archive=storage.job_archive),
        clock=SystemClock(),
    )


def _simulated_work(*, seconds: float, fail: bool) -> WorkExecutor:
    def _work(token: CancellationToken) -> None:
        if seconds > 0 and token.wait(seconds):
            return
        if fail:
            raise WorkFailure("simulated failure")

    return _work


def _require_config(ctx: typer.Context) -> CliConfig:
    """Return required CLI config from Typer context."""

    config = ctx.obj
    if not isinstance(config, CliConfig):
        raise RuntimeError("CLI configuration not initialized")
    return config


app = typer.Typer(no_args_is_help=True, help="BotBox command-line interface")
bots_app = typer.Typer(help="Bot commands")
members_app = typer.Typer(help="Member commands")


@app.callback()
def main(
    ctx: typer.Context,
    db_url: str | None = typer.Option(
        None, "--db-url", help="Database URL for BotBox storage"
    ),
    config: Path | None = typer.Option(
        None, "--config", help="YAML settings file", dir_okay=False
    ),
    principal: str = typer.Option("operator", help="Acting user id"),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
    verbose: bool = typer.Option(
        False, "--verbose", help="Emit structured logs to stdout"
    ),
) -> None:
    """Store global options for all commands."""

    cli_params: dict[str, Any] = {}
    if db_url is not None:
        cli_params["components"] = {"service": {"botbox": {"database_url": db_url}}}
    settings = load_settings(cli_params=cli_params, config_path=config)
    if verbose:
        configure_logging(
            level=settings.logging.level,
            json_output=settings.logging.json_output,
            service=settings.logging.service,
            environment=settings.logging.environment,
        )
    ctx.obj = CliConfig(settings=settings, principal=principal, as_json=as_json)


@app.command("init")
def init_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="BotBox name"),
    description: str = typer.Option("", help="BotBox description"),
    tag: list[str] = typer.Option([], "--tag", help="Tag, repeatable"),
    owner_name: str = typer.Option("", help="Display name of the owner"),
    owner_email: str = typer.Option("", help="Email of the owner"),
) -> None:
    """Create a BotBox owned by the acting principal."""
    cfg = _require_config(ctx)

    def _invoke(storage: BotBoxSqlRuntime) -> Any:
        botbox = BotBox.create(
            name=name,
            owner=User(
                id=cfg.principal,
                name=owner_name or cfg.principal,
                email=owner_email,
            ),
            worker=build_worker(settings=cfg.settings, archive=storage.job_archive),
            clock=SystemClock(),
            description=description,
            tags=tuple(tag),
            repository=storage.repository,
        )
        botbox.save()
        return botbox.to_record()

    _run_command(cfg, _invoke)


@bots_app.command("add")
def bots_add_command(
    ctx: typer.Context,
    botbox_id: str = typer.Argument(..., help="BotBox id"),
    name: str = typer.Argument(..., help="Bot name"),
    description: str = typer.Option("", help="Bot description"),
    tag: list[str] = typer.Option([], "--tag", help="Tag, repeatable"),
) -> None:
    """Add a bot to a BotBox."""
    cfg = _require_config(ctx)

    def _invoke(storage: BotBoxSqlRuntime) -> Any:
        botbox = _load_botbox(cfg, storage, botbox_id)
        bot = botbox.add_bot(
            principal=cfg.principal,
            name=name,
            description=description,
            tags=tuple(tag),
        )
        botbox.save()
        return [bot]

    _run_command(cfg, _invoke)


@bots_app.command("list")
def bots_list_command(
    ctx: typer.Context,
    botbox_id: str = typer.Argument(..., help="BotBox id"),
) -> None:
    """List the bots of a BotBox."""
    cfg = _require_config(ctx)
    _run_command(cfg, lambda storage: _load_botbox(cfg, storage, botbox_id).bots())


@members_app.command("invite")
def members_invite_command(
    ctx: typer.Context,
    botbox_id: str = typer.Argument(..., help="BotBox id"),
    email: str = typer.Argument(..., help="Invitee email"),
    role: RoleOption = typer.Option(
        RoleOption.DEVELOPER,
        help="Role granted on acceptance",
        case_sensitive=False,
        show_choices=True,
    ),
) -> None:
    """Invite a user to a BotBox."""
    cfg = _require_config(ctx)

    def _invoke(storage: BotBoxSqlRuntime) -> Any:
        botbox = _load_botbox(cfg, storage, botbox_id)
        invitation = botbox.invite(
            principal=cfg.principal, email=email, role=Role(role.value)
        )
        botbox.save()
        return invitation

    _run_command(cfg, _invoke)


@app.command("audit")
def audit_command(
    ctx: typer.Context,
    botbox_id: str = typer.Argument(..., help="BotBox id"),
) -> None:
    """Print the audit trail of a BotBox."""
    cfg = _require_config(ctx)
    _run_command(
        cfg, lambda storage: _load_botbox(cfg, storage, botbox_id).audit_records()
    )


@app.command("run")
def run_command(
    ctx: typer.Context,
    botbox_id: str = typer.Argument(..., help="BotBox id"),
    bot_id: str = typer.Argument(..., help="Bot id"),
    jobs: int = typer.Option(1, min=0, help="Number of jobs to run"),
    failing_jobs: int = typer.Option(
        0, min=0, help="How many of the jobs report a failure"
    ),
    work_seconds: float = typer.Option(0.0, min=0.0, help="Duration of each job"),
    environment: str | None = typer.Option(None, help="Deployment environment"),
) -> None:
    """Deploy a bot locally, run jobs against it, then undeploy."""
    cfg = _require_config(ctx)

    def _invoke(storage: BotBoxSqlRuntime) -> Any:
        runtime = LocalThreadBotRuntime(
            settings=resolve_local_runtime_settings(cfg.settings)
        )
        try:
            worker = build_worker(
                settings=cfg.settings,
                runtime=runtime,
                archive=storage.job_archive,
            )
            botbox = _load_botbox(cfg, storage, botbox_id, worker=worker)
            sink = InMemoryEventSink()
            subscription = worker.router.subscribe(sink)
            try:
                deployment = botbox.deploy(
                    principal=cfg.principal, bot_id=bot_id, environment=environment
                )
                reports = []
                for index in range(jobs):
                    job = botbox.schedule_job(
                        principal=cfg.principal,
                        deployment_id=deployment.id,
                        work=_simulated_work(
                            seconds=work_seconds, fail=index < failing_jobs
                        ),
                    )
                    result = job.execute()
                    reports.append(
                        {
                            "job_id": job.job_id,
                            "status": job.status(),
                            "outcome": result.outcome,
                            "reason": result.reason,
                        }
                    )
                botbox.undeploy(principal=cfg.principal, deployment_id=deployment.id)
            finally:
                subscription.unsubscribe()
            botbox.save()
            return {
                "botbox_id": botbox.id,
                "bot_id": bot_id,
                "deployment_id": deployment.id,
                "jobs": reports,
                "bot_status": botbox.bot_status(bot_id),
                "events": sink.records,
            }
        finally:
            runtime.shutdown()

    _run_command(cfg, _invoke)


app.add_typer(bots_app, name="bots")
app.add_typer(members_app, name="members")


if __name__ == "__main__":
    app()
