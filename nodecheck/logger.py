from __future__ import annotations
import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from .config import LOGS_DIR

LOGGER_NAME = "nodecheck"

# Never copied into structured log records
_SECRET_KEYS = {"rpc_user", "rpc_password", "rpcuser", "rpcpassword", "token"}


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line. Structured events (see `log_event`) are keyed by
    `event` with their fields flattened alongside; plain log calls carry `msg`.
    Times are UTC ISO-8601.
    """
    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, timezone.utc)
        data: Dict[str, Any] = {"ts": ts.isoformat(timespec="milliseconds"), "level": record.levelname.lower()}
        props = getattr(record, "props", None)
        if isinstance(props, dict) and "event" in props:
            data.update((k, v) for k, v in props.items() if not _is_secret(k))
        else:
            data["msg"] = record.getMessage()
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def _is_secret(key: str) -> bool:
    low = key.lower()
    return low in _SECRET_KEYS or "password" in low


def setup_logging(verbose: bool = False, logs_dir: Optional[Path] = None) -> logging.Logger:
    """
    Sets up the unified logging configuration.
    - Console: human readable on stderr (INFO, or DEBUG when verbose)
    - File: machine readable JSONL (DEBUG, rotating)
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    if logger.hasHandlers():
        logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    target = logs_dir or LOGS_DIR
    try:
        target.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            target / "nodecheck.jsonl",
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=5,
            encoding="utf-8",
        )
    except OSError as e:
        logger.warning(f"⚠️  File logging disabled: {e}")
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)

    return logger


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def log_event(event: str, data: Optional[Dict[str, Any]] = None, level: int = logging.DEBUG) -> None:
    """
    Helper to log structured events. The console only shows them with -v;
    the JSONL file always gets them.
    """
    props = {"event": event}
    if data:
        props.update(data)
    get_logger().log(level, event, extra={"props": props})
