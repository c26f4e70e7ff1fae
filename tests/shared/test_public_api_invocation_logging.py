"""Tests for structured logging context and public API instrumentation."""

from __future__ import annotations

import json
import logging

import pytest

from packages.botbox_shared.logging import (
    CompletionContext,
    InvocationContext,
    get_context,
    log_context,
    public_api_instrumented,
)
from packages.botbox_shared.logging.config import (
    ContextFilter,
    JsonFormatter,
    PlainFormatter,
)
from services.lifecycle.errors import DeploymentNotFound


class _RecordingConcern:
    def __init__(self) -> None:
        self.invocations: list[InvocationContext] = []
        self.completions: list[CompletionContext] = []

    def on_invocation(self, context: InvocationContext) -> None:
        self.invocations.append(context)

    def on_completion(self, context: CompletionContext) -> None:
        self.completions.append(context)


class _BrokenConcern:
    def on_invocation(self, context: InvocationContext) -> None:
        raise RuntimeError("metrics backend down")

    def on_completion(self, context: CompletionContext) -> None:
        raise RuntimeError("metrics backend down")


def _record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("botbox.test", logging.INFO, __file__, 1, message, (), None)


def test_log_context_nests_and_restores() -> None:
    baseline = get_context()
    with log_context({"bot_id": "b1"}):
        with log_context({"job_id": "j1", "skipped": None}):
            assert get_context() == {**baseline, "bot_id": "b1", "job_id": "j1"}
        assert get_context() == {**baseline, "bot_id": "b1"}
    assert get_context() == baseline


def test_json_formatter_includes_context() -> None:
    record = _record()
    with log_context({"deployment_id": "d1"}):
        ContextFilter().filter(record)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "hello"
    assert payload["deployment_id"] == "d1"
    assert payload["level"] == "INFO"


def test_plain_formatter_appends_sorted_context() -> None:
    record = _record()
    with log_context({"job_id": "j1", "bot_id": "b1"}):
        ContextFilter().filter(record)

    line = PlainFormatter().format(record)

    assert "hello " in line
    assert line.index("bot_id=b1") < line.index("job_id=j1")


def test_instrumentation_reports_success_and_references() -> None:
    """Id fields and the principal are captured for each invocation."""
    concern = _RecordingConcern()

    @public_api_instrumented(
        component_id="service_test", id_fields=("deployment_id",), concerns=[concern]
    )
    def undeploy(*, deployment_id: str, principal: str | None = None) -> str:
        return deployment_id

    assert undeploy(deployment_id="d1", principal="alice") == "d1"

    invocation = concern.invocations[0]
    assert invocation.api_name == "undeploy"
    assert invocation.principal == "alice"
    assert invocation.references == {"deployment_id": "d1"}
    assert concern.completions[0].success is True


def test_instrumentation_records_structured_error_codes() -> None:
    concern = _RecordingConcern()

    @public_api_instrumented(component_id="service_test", concerns=[concern])
    def lookup() -> None:
        raise DeploymentNotFound(deployment_id="d9")

    with pytest.raises(DeploymentNotFound):
        lookup()

    completion = concern.completions[0]
    assert completion.success is False
    assert completion.errors == ["DEPLOYMENT_NOT_FOUND: deployment d9 not found"]


def test_failing_concern_never_breaks_the_call(
    caplog: pytest.LogCaptureFixture,
) -> None:
    logger = logging.getLogger("botbox.test.instrumentation")

    @public_api_instrumented(
        component_id="service_test", concerns=[_BrokenConcern()], logger=logger
    )
    def status() -> str:
        return "running"

    with caplog.at_level(logging.INFO, logger="botbox.test.instrumentation"):
        assert status() == "running"

    messages = [record.getMessage() for record in caplog.records]
    assert messages.count("Public API instrumentation concern failed") == 2
    assert "Public API completion" in messages


def test_instrumentation_requires_a_concern() -> None:
    with pytest.raises(ValueError):
        public_api_instrumented(component_id="service_test")
