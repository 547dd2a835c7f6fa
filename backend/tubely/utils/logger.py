"""
Logging setup for Tubely.

Production emits one JSON object per line on stdout; development gets plain
text. Request-scoped identifiers (request_id, user_id, video_id) ride along on
every record through add_log_context, and anything passed in ``extra`` ends up
under the ``extra`` key of the JSON line.

Usage:
    from tubely.utils.logger import add_log_context, setup_logging

    setup_logging(log_level="INFO", json_logs=True)

    log = add_log_context(logger, request_id=request_id, video_id=str(video_id))
    log.info("Upload state -> staging")
"""

import json
import logging
import sys
import traceback

from datetime import datetime, timezone
from typing import Any


# Libraries whose INFO chatter drowns out upload state transitions
THIRD_PARTY_LOGGERS: tuple[str, ...] = (
    "motor",
    "pymongo",
    "boto3",
    "botocore",
    "s3transfer",
    "urllib3",
    "httpx",
    "httpcore",
    "asyncio",
    "multipart",
)

# Every attribute a bare LogRecord carries; the rest came from ``extra``
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


def _level(name: str, default: int) -> int:
    level = logging.getLevelNamesMapping().get(name.upper())
    return default if level is None else level


class LogJSONEncoder(json.JSONEncoder):
    """Falls back to ``str`` so a log line is never lost to a TypeError."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, bytes):
            return obj.decode("utf-8", errors="replace")
        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        return str(obj)


class JSONFormatter(logging.Formatter):
    """
    Render a record as a single JSON line.

    Example:
        {"timestamp":"2025-01-15T10:30:45.123456+00:00","level":"ERROR",
         "logger":"tubely.services.upload_service","message":"Metadata commit failed",
         "extra":{"request_id":"9f1c...","video_id":"...","orphaned_key":"landscape/x.mp4"}}
    """

    def __init__(
        self,
        include_extra_fields: bool = True,
        include_source_location: bool = False,
    ) -> None:
        super().__init__()
        self.include_extra_fields = include_extra_fields
        self.include_source_location = include_source_location

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(timespec="microseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_source_location:
            entry["source"] = {
                "filename": record.filename,
                "lineno": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else "Unknown",
                "message": str(exc_value) if exc_value else "",
                "traceback": "".join(traceback.format_exception(*record.exc_info)),
            }

        if record.stack_info:
            entry["stack_info"] = record.stack_info

        if self.include_extra_fields:
            extra = {
                key: value
                for key, value in vars(record).items()
                if key not in _RECORD_ATTRS and not key.startswith("_")
            }
            if extra:
                entry["extra"] = extra

        return json.dumps(entry, cls=LogJSONEncoder, ensure_ascii=False, separators=(",", ":"))


class StandardFormatter(logging.Formatter):
    """``[2025-01-15 10:30:45] INFO     tubely.main: message``"""

    def __init__(self) -> None:
        super().__init__(
            fmt="[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    third_party_level: str = "WARNING",
) -> None:
    """
    Install a single stdout handler on the root logger.

    Uvicorn's loggers are re-pointed at the same formatter so access lines and
    application lines share one format. Unknown level names fall back to INFO.
    """
    level = _level(log_level, logging.INFO)

    formatter: logging.Formatter
    if json_logs:
        formatter = JSONFormatter(include_source_location=level <= logging.DEBUG)
    else:
        formatter = StandardFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name, stream in (
        ("uvicorn", sys.stdout),
        ("uvicorn.access", sys.stdout),
        ("uvicorn.error", sys.stderr),
    ):
        uvicorn_handler = logging.StreamHandler(stream)
        uvicorn_handler.setFormatter(formatter)
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers[:] = [uvicorn_handler]
        uvicorn_logger.setLevel(level)
        uvicorn_logger.propagate = False

    quiet = _level(third_party_level, logging.WARNING)
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)

    logging.getLogger(__name__).info(
        "Logging configured: level=%s json=%s", logging.getLevelName(level), json_logs
    )


class ContextLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter whose context fills in, rather than replaces, a call's ``extra``."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def add_log_context(logger: logging.Logger, **context: Any) -> ContextLoggerAdapter:
    """Bind ``context`` to every record emitted through the returned adapter."""
    return ContextLoggerAdapter(logger, context)
