"""Logger del motore di pianificazione con audit JSON opzionale e metriche su file.

Ogni modulo ottiene il proprio logger tramite :func:`setup_logger`. Il livello
si legge da ``GOALPLAN_LOG_LEVEL``; l'audit JSON (``goalplan.log``) si attiva
con ``--json-logs`` oppure con ``GOALPLAN_JSON_LOGS``. Le metriche della CLI
finiscono in ``metrics.jsonl`` nella stessa cartella.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from goalplan.engine.infra.paths import DEFAULT_LOG_ROOT

CONSOLE_FORMAT: Final[str] = "[%(levelname)s] %(name)s: %(message)s"
AUDIT_DIR: Final[Path] = DEFAULT_LOG_ROOT
LOG_PATH: Final[Path] = AUDIT_DIR / "goalplan.log"
METRICS_PATH: Final[Path] = AUDIT_DIR / "metrics.jsonl"
JSON_ENV_FLAG: Final[str] = "GOALPLAN_JSON_LOGS"
LEVEL_ENV_FLAG: Final[str] = "GOALPLAN_LOG_LEVEL"
LOGGER_PREFIX: Final[str] = "goalplan"
# Campi ``extra`` numerici emessi dal planner e dal ciclo di convergenza.
NUMERIC_FIELDS: Final[tuple[str, ...]] = ("process_time_ms", "iterations")
_CONSOLE_MARKER: Final[str] = "_goalplan_console"
_JSON_MARKER: Final[str] = "_goalplan_json"


class JsonAuditFormatter(logging.Formatter):
    """Serializza un record in una riga JSON con i campi della pianificazione."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "source": record.name,
            "message": record.getMessage(),
        }
        for field in NUMERIC_FIELDS:
            value = getattr(record, field, None)
            payload[field] = float(value) if isinstance(value, (int, float)) else None
        converged = getattr(record, "converged", None)
        payload["converged"] = None if converged is None else bool(converged)
        return json.dumps(payload, ensure_ascii=False)


def _level_from_env() -> int:
    name = os.environ.get(LEVEL_ENV_FLAG, "INFO").strip().upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def _json_requested(explicit: bool) -> bool:
    flag = os.environ.get(JSON_ENV_FLAG, "")
    return explicit or flag.strip().lower() in {"1", "true", "yes", "on"}


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    return handler


def _json_handler() -> logging.Handler:
    AUDIT_DIR.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(LOG_PATH, encoding="utf-8")
    handler.setFormatter(JsonAuditFormatter())
    return handler


def _ensure_handler(
    logger: logging.Logger,
    marker: str,
    level: int,
    factory: Callable[[], logging.Handler],
) -> None:
    """Aggiorna il livello dell'handler marcato oppure ne crea uno nuovo."""

    for handler in logger.handlers:
        if getattr(handler, marker, False):
            handler.setLevel(level)
            return
    handler = factory()
    handler.setLevel(level)
    setattr(handler, marker, True)
    logger.addHandler(handler)


def setup_logger(name: str, json_format: bool = False) -> logging.Logger:
    """Restituisce il logger ``name`` con console e, se richiesto, audit JSON.

    La chiamata è idempotente: gli handler già presenti vengono riutilizzati.
    """

    level = _level_from_env()
    logger = logging.getLogger(name)
    logger.setLevel(level)
    # La propagazione resta attiva così ``pytest caplog`` intercetta i record.
    logger.propagate = True
    _ensure_handler(logger, _CONSOLE_MARKER, level, _console_handler)
    if _json_requested(json_format):
        _ensure_handler(logger, _JSON_MARKER, level, _json_handler)
    return logger


def record_metrics(metric_name: str, value: float, tags: Mapping[str, str] | None = None) -> None:
    """Accoda un'osservazione a ``metrics.jsonl``."""

    AUDIT_DIR.mkdir(parents=True, exist_ok=True)
    line = json.dumps(
        {
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "metric": metric_name,
            "value": float(value),
            "tags": dict(tags or {}),
        },
        ensure_ascii=False,
    )
    with METRICS_PATH.open("a", encoding="utf-8") as handle:
        handle.write(line + "\n")


def configure_cli_logging(json_logs: bool) -> None:
    """Applica la scelta ``--json-logs`` a tutti i logger goalplan già creati."""

    if json_logs:
        os.environ[JSON_ENV_FLAG] = "1"
    else:
        os.environ.pop(JSON_ENV_FLAG, None)
    names = [
        name
        for name, logger in logging.Logger.manager.loggerDict.items()
        if isinstance(logger, logging.Logger) and name.startswith(LOGGER_PREFIX)
    ]
    for name in [*names, LOGGER_PREFIX]:
        setup_logger(name, json_format=json_logs)


__all__ = ["JsonAuditFormatter", "setup_logger", "record_metrics", "configure_cli_logging"]
