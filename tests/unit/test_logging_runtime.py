from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from goalplan.engine import logging as runtime_logging
from goalplan.engine.logging import configure_cli_logging, record_metrics, setup_logger


@pytest.fixture(autouse=True)
def isolate_logging(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Reset logging handlers and run in a temporary working directory."""

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv(runtime_logging.JSON_ENV_FLAG, "0")
    root = logging.getLogger()
    root.handlers = []
    root.setLevel(logging.NOTSET)
    yield
    for logger in list(logging.Logger.manager.loggerDict.values()):
        if isinstance(logger, logging.Logger):
            for handler in logger.handlers:
                handler.close()
            logger.handlers = []
            logger.setLevel(logging.NOTSET)
    root.handlers = []
    root.setLevel(logging.NOTSET)


def test_setup_logger_resolves_level_from_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """The helper must honour GOALPLAN_LOG_LEVEL when configuring loggers."""

    monkeypatch.setenv(runtime_logging.LEVEL_ENV_FLAG, "DEBUG")
    logger = setup_logger("goalplan.tests.level")

    assert logger.isEnabledFor(logging.DEBUG)
    console_handlers = [h for h in logger.handlers if getattr(h, "_goalplan_console", False)]
    assert console_handlers, "expected console handler to be attached"
    assert console_handlers[0].formatter._fmt == runtime_logging.CONSOLE_FORMAT


def test_setup_logger_is_idempotent() -> None:
    first = setup_logger("goalplan.tests.same", json_format=True)
    second = setup_logger("goalplan.tests.same", json_format=True)

    assert first is second
    json_handlers = [h for h in second.handlers if getattr(h, "_goalplan_json", False)]
    assert len(json_handlers) == 1


def test_setup_logger_emits_json_payload() -> None:
    """When json_format=True the audit file must contain structured entries."""

    logger = setup_logger("goalplan.tests.json", json_format=True)
    logger.info(
        "plan complete",
        extra={"process_time_ms": 12.5, "iterations": "n/a", "converged": True},
    )
    for handler in logger.handlers:
        handler.flush()

    payloads = [
        json.loads(line)
        for line in runtime_logging.LOG_PATH.read_text(encoding="utf-8").splitlines()
        if line
    ]
    assert payloads, "expected at least one JSON log line"
    record = payloads[0]
    assert record["message"] == "plan complete"
    assert record["source"] == "goalplan.tests.json"
    assert record["process_time_ms"] == pytest.approx(12.5)
    assert record["iterations"] is None
    assert record["converged"] is True


def test_record_metrics_appends_jsonl() -> None:
    """Metrics helper must append JSON lines with tags."""

    record_metrics("plan_iterations", 4, {"method": "2"})
    record_metrics("plan_converged", 1.0)
    lines = [
        json.loads(line)
        for line in runtime_logging.METRICS_PATH.read_text(encoding="utf-8").splitlines()
        if line
    ]
    assert [line["metric"] for line in lines] == ["plan_iterations", "plan_converged"]
    assert lines[0]["value"] == pytest.approx(4.0)
    assert lines[0]["tags"] == {"method": "2"}
    assert lines[1]["tags"] == {}


def test_configure_cli_logging_updates_existing_loggers() -> None:
    """Existing goalplan loggers should gain JSON handlers when requested."""

    first = setup_logger("goalplan.engine.sample")
    assert not any(getattr(h, "_goalplan_json", False) for h in first.handlers)

    configure_cli_logging(json_logs=True)
    assert any(getattr(h, "_goalplan_json", False) for h in first.handlers)

    configure_cli_logging(json_logs=False)
    assert runtime_logging.JSON_ENV_FLAG not in os.environ


def test_setup_logger_falls_back_to_info_for_unknown_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(runtime_logging.LEVEL_ENV_FLAG, "chatty")
    logger = setup_logger("goalplan.tests.unknown_level")

    assert logger.level == logging.INFO
    assert not any(getattr(h, "_goalplan_json", False) for h in logger.handlers)
