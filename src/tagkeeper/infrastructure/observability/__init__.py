"""Observability infrastructure for structured logging."""

from tagkeeper.infrastructure.observability.error_formatting import format_user_error
from tagkeeper.infrastructure.observability.log_messages import LogMessages, LogTemplate
from tagkeeper.infrastructure.observability.logging import (
    configure_logging,
    get_run_id,
    set_run_id,
)

__all__ = [
    "LogMessages",
    "LogTemplate",
    "configure_logging",
    "format_user_error",
    "get_run_id",
    "set_run_id",
]
