"""Structured logging configuration with JSON formatting and run IDs."""

import contextvars
import logging
import sys
import traceback
import uuid
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me, the run ID ties every log line of ONE migration run together! The runner
# sets it once per run_migrations() call, and because contextvars are asyncio-safe every
# concurrent per-record fetch in a batch inherits it. When a user says "the backfill got
# stuck yesterday", grep for the run_id and you see that run and nothing else.
# default="" covers log lines outside a run (startup, single UI-triggered fetches).
run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="")


def get_run_id() -> str:
    """Get the current run ID from context.

    Returns:
        Current run ID or empty string if not set
    """
    return run_id_var.get()


# Generates a short ID when None is passed - full UUIDs are unreadable in the console
# format and 12 hex chars are plenty to tell runs apart in one log file.
def set_run_id(run_id: str | None = None) -> str:
    """Set run ID in context.

    Args:
        run_id: Run ID to set. If None, generates a new one

    Returns:
        The run ID that was set
    """
    if run_id is None:
        run_id = uuid.uuid4().hex[:12]
    run_id_var.set(run_id)
    return run_id


class RunIdFilter(logging.Filter):
    """Attach run_id to every log record (never blocks a record)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = get_run_id()
        return True


class CompactExceptionFormatter(logging.Formatter):
    """Console formatter that prints exception chains compactly.

    Hey future me - the default traceback for a failed fetch is 40 lines of httpx and
    asyncio internals with "The above exception was the direct cause..." in between.
    This keeps only OUR frames, root cause first:

    WARNING │ tagkeeper.application.migrations.backfill:212 │ Retryable error ...
    ╰─► httpx.ConnectError: All connection attempts failed
    ╰─► NetworkError: Network error: All connection attempts failed
        File "spotify_client.py", line 98, in _get_json
          raise classify_http_error(e) from e
    """

    def formatException(self, ei: Any) -> str:
        _, exc_value, _ = ei
        if exc_value is None:
            return ""

        chain: list[BaseException] = []
        current: BaseException | None = exc_value
        while current is not None and current not in chain:
            chain.append(current)
            current = current.__cause__ or current.__context__
        chain.reverse()

        lines: list[str] = []
        for exc in chain:
            lines.append(f"╰─► {type(exc).__name__}: {exc}")
            if exc.__traceback__ is None:
                continue
            for frame in traceback.extract_tb(exc.__traceback__):
                if "site-packages" in frame.filename or "tagkeeper" not in frame.filename:
                    continue
                lines.append(
                    f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}'
                )
                if frame.line:
                    lines.append(f"      {frame.line.strip()}")

        return "\n".join(lines)


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined,misc]
    """JSON formatter with the fields our log shipping expects."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno

        run_id = getattr(record, "run_id", "")
        if run_id:
            log_record["run_id"] = run_id

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)


# Call this ONCE from the host app's composition root. It replaces the root logger's
# handlers (important for tests and re-configuration) and quiets httpx/httpcore, which
# otherwise log every single request of a backfill at INFO.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "tagkeeper",
) -> None:
    """Configure structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format for logs (recommended for production)
        app_name: Application name to include in logs
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RunIdFilter())

    if json_format:
        formatter: logging.Formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = CompactExceptionFormatter(
            fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s",
            datefmt="%H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "app_name": app_name,
            "log_level": log_level,
            "json_format": json_format,
        },
    )
