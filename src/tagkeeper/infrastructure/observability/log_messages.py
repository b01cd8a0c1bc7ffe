"""Structured log message templates for consistent, human-readable logging.

Hey future me - This module provides standardized log message templates so the
migration and coordinator logs are ACTUALLY USEFUL when a user sends us their log.
Instead of "Error: paused", we get:

    ⏸️ Migration Paused: addTrackMetadata
    ├─ Consecutive Failures: 10
    ├─ Processed: 120/480
    └─ 💡 Progress is checkpointed - the next run resumes where this one stopped

The templates follow these principles:
1. **Icon First** - Visual marker for quick scanning (🔴 = error, ⚠️ = warning, ✅ = success)
2. **Action/Entity** - What happened
3. **Context** - Counts, names, keys
4. **Hints** - What the reader should do (often: nothing, it self-heals)

Usage:
    from tagkeeper.infrastructure.observability.log_messages import LogMessages

    logger.warning(LogMessages.migration_paused(
        migration="addTrackMetadata", consecutive_failures=10, processed=120, total=480
    ))
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class LogTemplate:
    """A reusable log message template with placeholders.

    The format() method replaces {placeholders} with actual values and adds
    visual formatting (icons, tree structure, hints).
    """

    icon: str
    title: str
    fields: dict[str, str]
    hint: str | None = None

    def format(self, **kwargs: Any) -> str:
        """Format the template with provided values.

        Args:
            **kwargs: Values to fill into template placeholders

        Returns:
            Formatted multi-line log message with icon, title, fields, and optional hint
        """
        lines = [f"{self.icon} {self.title}"]

        field_items = list(self.fields.items())
        for i, (key, value_template) in enumerate(field_items):
            # Last field uses └─ instead of ├─
            prefix = "└─" if i == len(field_items) - 1 and not self.hint else "├─"

            try:
                value = value_template.format(**kwargs)
            except (KeyError, IndexError) as e:
                value = f"<missing: {e}>"

            lines.append(f"{prefix} {key}: {value}")

        if self.hint:
            try:
                hint_text = self.hint.format(**kwargs)
            except (KeyError, IndexError) as e:
                hint_text = f"<missing: {e}>"
            lines.append(f"└─ 💡 {hint_text}")

        return "\n".join(lines)


class LogMessages:
    """Collection of standardized log message templates.

    Template categories:
    - Request coordinator (circuit breaker)
    - Migration lifecycle (start/pause/complete)
    - Persistence (checkpoint write failures)
    """

    # === Request Coordinator ===

    @staticmethod
    def circuit_opened(
        coordinator: str,
        consecutive_errors: int,
        reset_ms: int,
    ) -> str:
        """Format a circuit-breaker-opened message.

        Args:
            coordinator: Coordinator name (e.g. "graphql")
            consecutive_errors: Errors in a row that tripped the breaker
            reset_ms: Cool-down before the next call is attempted
        """
        template = LogTemplate(
            icon="🔴",
            title=f"Circuit Breaker Opened: {coordinator}",
            fields={
                "Consecutive Errors": str(consecutive_errors),
                "Cool-down": f"{reset_ms / 1000:.0f}s",
            },
            hint="Calls fail fast until the cool-down passes. Check API status / network.",
        )
        return template.format()

    # === Migration Lifecycle ===

    @staticmethod
    def migration_started(
        migration: str,
        targets: int,
        resumed: bool = False,
        processed: int = 0,
        failed: int = 0,
    ) -> str:
        """Format a migration start (or resume) message."""
        fields = {"Targets": str(targets)}
        if resumed:
            fields["Already Processed"] = str(processed)
            fields["Previously Failed"] = str(failed)

        template = LogTemplate(
            icon="🔄",
            title=f"{'Resuming' if resumed else 'Starting'} Migration: {migration}",
            fields=fields,
        )
        return template.format()

    @staticmethod
    def migration_paused(
        migration: str,
        consecutive_failures: int,
        processed: int,
        total: int,
    ) -> str:
        """Format a migration paused message."""
        template = LogTemplate(
            icon="⏸️",
            title=f"Migration Paused: {migration}",
            fields={
                "Consecutive Failures": str(consecutive_failures),
                "Processed": f"{processed}/{total}",
            },
            hint="Progress is checkpointed - the next run resumes where this one stopped",
        )
        return template.format()

    @staticmethod
    def migration_completed(
        migration: str,
        processed: int,
        resolved_from_cache: int = 0,
        fetched: int = 0,
        failed: int = 0,
    ) -> str:
        """Format a migration completion message.

        Uses ⚠️ instead of ✅ when records were left behind.
        """
        fields = {
            "Processed": str(processed),
            "From Cache": str(resolved_from_cache),
            "Fetched": str(fetched),
        }
        if failed:
            fields["Failed"] = str(failed)

        template = LogTemplate(
            icon="⚠️" if failed else "✅",
            title=f"Migration Complete: {migration}",
            fields=fields,
            hint="Failed tracks stay unenriched; they are not retried" if failed else None,
        )
        return template.format()

    # === Persistence ===

    @staticmethod
    def checkpoint_failed(key: str, error: str) -> str:
        """Format a checkpoint write failure (non-fatal)."""
        template = LogTemplate(
            icon="⚠️",
            title="Checkpoint Write Failed",
            fields={"Key": key, "Reason": error},
            hint="Migration continues in memory; a crash now would redo the last batches",
        )
        return template.format()
