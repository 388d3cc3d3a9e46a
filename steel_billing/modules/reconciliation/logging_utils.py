"""
modules/reconciliation/logging_utils.py

Purpose
-------
Append-only, structured logging for the balance reconciliation pass.

Public API
----------
- get_logger(file_path=None) -> logging.Logger
- log_event(logger, op, phase, message, extra: dict = {})
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from ...constants import LOG_DIR

__all__ = ["get_logger", "log_event"]

# Default log file location (relative to app working directory)
_DEFAULT_LOG_DIR = Path(LOG_DIR)
_DEFAULT_LOG_FILE = _DEFAULT_LOG_DIR / "reconciliation.log"

_LOGGER_NAME = "steel_billing.reconciliation"


def get_logger(file_path: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Return a configured logger that writes JSON-lines to logs/reconciliation.log by default.
    Reuses the same logger (no duplicate handlers) across calls; asking for a
    different file swaps the handlers.

    Args:
        file_path: Optional custom path to the log file.
        level: Logging level (default INFO).
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False  # don't duplicate to root

    log_file = Path(file_path) if file_path else _DEFAULT_LOG_FILE
    if logger.handlers and getattr(logger, "_log_file", None) == log_file:
        return logger
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), mode="a", encoding="utf-8", delay=True)
    except OSError as exc:
        # unwritable location: stderr only, and say so
        sh = logging.StreamHandler()
        sh.setLevel(level)
        sh.setFormatter(_JsonLineFormatter())
        logger.addHandler(sh)
        logger._log_file = log_file  # type: ignore[attr-defined]
        logger.warning("log file %s unavailable (%s); logging to stderr", log_file, exc)
        return logger

    fh.setLevel(level)
    fh.setFormatter(_JsonLineFormatter())
    logger.addHandler(fh)

    # Also mirror to stderr at WARNING+
    sh = logging.StreamHandler()
    sh.setLevel(logging.WARNING)
    sh.setFormatter(_JsonLineFormatter())
    logger.addHandler(sh)

    logger._log_file = log_file  # type: ignore[attr-defined]
    return logger


class _JsonLineFormatter(logging.Formatter):
    """
    Minimal JSON-lines formatter:
      {"ts":"2026-01-16T12:00:01.123Z","level":"INFO","name":"steel_billing.reconciliation","msg":"...","extra":{...}}
    """
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "extra_payload") and isinstance(record.extra_payload, dict):
            payload["extra"] = record.extra_payload
        return json.dumps(payload, ensure_ascii=False, default=str)


def log_event(
    logger: logging.Logger,
    op: str,
    phase: str,
    message: str,
    extra: Dict[str, object] | None = None,
    level: int = logging.INFO,
) -> None:
    """
    Log a structured event line.

    Args:
        logger: Obtained from get_logger().
        op: Operation name, e.g. "reconcile".
        phase: Phase within the operation: "start", "invoice", "customers", "finish".
        message: Human-readable short message.
        extra: Optional additional key/values (invoice ids, balances, counts).
        level: Logging level (default INFO).
    """
    extra_payload = {"op": op, "phase": phase}
    if extra:
        # Merge without overwriting the required keys
        for k, v in extra.items():
            if k not in extra_payload:
                extra_payload[k] = v

    logger.log(level, message, extra={"extra_payload": extra_payload})
