"""Logging setup: plain text for the process, JSON lines for per-appointment events."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
EVENTS_LOGGER = "reminder_ops.events"

# Attributes copied from the record when present; None values are left out.
OPTIONAL_FIELDS = ("error_code", "error_message")


class JsonFormatter(logging.Formatter):
    """One JSON object per event, keyed on the appointment reference."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "workflow_step": getattr(record, "workflow_step", record.name),
            "reference": getattr(record, "reference", None),
            "client_name": mask_client_name(getattr(record, "client_name", "")),
            "status": getattr(record, "status", None),
        }
        for name in OPTIONAL_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value

        message = record.getMessage()
        if message:
            payload["message"] = message
        return json.dumps(payload, ensure_ascii=False)


def mask_client_name(name: str) -> str:
    """Keep the initial of each word: ``"Ana Silva"`` -> ``"A** S****"``."""
    words = []
    for word in name.split():
        words.append("*" if len(word) == 1 else word[0] + "*" * (len(word) - 1))
    return " ".join(words)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=PLAIN_FORMAT)


def get_structured_logger(name: str = EVENTS_LOGGER) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
    return logger


def log_workflow_event(
    logger: logging.Logger,
    *,
    workflow_step: str,
    reference: str,
    status: str,
    client_name: str = "",
    message: str = "",
    error_code: str | None = None,
    error_message: str | None = None,
) -> None:
    """Emit one structured event; anything carrying an error code is a warning.

    Phone numbers are never passed here.
    """
    logger.log(
        logging.WARNING if error_code else logging.INFO,
        message,
        extra={
            "workflow_step": workflow_step,
            "reference": reference,
            "client_name": client_name,
            "status": status,
            "error_code": error_code,
            "error_message": error_message,
        },
    )
