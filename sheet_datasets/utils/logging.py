from __future__ import annotations

import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, MutableMapping

DEFAULT_LOG_LEVEL = os.getenv("SHEET_DATASETS_LOG_LEVEL", "INFO")
DEFAULT_LOG_DIR = Path(os.getenv("SHEET_DATASETS_LOG_DIR", "data/logs"))


def configure_logging(log_level: str | None = None, log_path: Path | None = None) -> None:
    """Configure console output plus a JSON-lines log file for the store."""
    level = getattr(logging, (log_level or DEFAULT_LOG_LEVEL).upper(), logging.INFO)
    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ConsoleFormatter())
    handlers.append(console_handler)

    destination = log_path or DEFAULT_LOG_DIR / "sheet_datasets.log"
    destination.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(destination)
    file_handler.setFormatter(JsonFormatter())
    handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers)


def get_logger(name: str) -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


def format_event(event: str, extra: MutableMapping[str, Any] | None = None) -> str:
    payload: dict[str, Any] = {"event": event}
    if extra:
        payload.update(extra)
    return json.dumps(payload, default=str)


def _unwrap_payload(message: str) -> dict[str, Any] | None:
    try:
        payload = json.loads(message)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "logger": record.name,
            "severity": record.levelname,
        }
        message = record.getMessage()
        payload = _unwrap_payload(message)
        if payload is not None:
            event = payload.pop("event", None)
            if event is not None:
                data["event"] = event
            data.update(payload)
        else:
            data["message"] = message

        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Single-line console output; structured payloads are shown as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = time.strftime("%H:%M:%S", time.localtime(record.created))
        message = record.getMessage()
        details = ""

        payload = _unwrap_payload(message)
        if payload is not None:
            event = payload.pop("event", None)
            message = event or message
            if payload:
                details = " " + " ".join(f"{key}={payload[key]}" for key in sorted(payload))
        output = f"{timestamp} | {record.levelname:<8} | {record.name} | {message}{details}"

        if record.exc_info:
            output += "\n" + self.formatException(record.exc_info)
        return output


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **extra: Any) -> None:
    logger.log(level, format_event(event, extra))


@contextmanager
def log_timing(logger: logging.Logger, event: str, **extra: Any):
    """Log `<event>.start` and `<event>.complete`/`<event>.error` with elapsed milliseconds."""
    start = time.perf_counter()
    logger.info(format_event(event + ".start", extra))
    try:
        yield
    except Exception:
        elapsed = (time.perf_counter() - start) * 1000.0
        logger.exception(format_event(event + ".error", {**extra, "elapsed_ms": elapsed}))
        raise
    else:
        elapsed = (time.perf_counter() - start) * 1000.0
        logger.info(format_event(event + ".complete", {**extra, "elapsed_ms": elapsed}))
