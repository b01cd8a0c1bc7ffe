"""Persisted migration bookkeeping.

Hey future me - two records live in the store for migrations:

1. MigrationState (permanent): version stamp + one bool flag per migration name.
   Flags only ever go False -> True. A True flag means "done, never run again".
2. MigrationProgress (ephemeral checkpoint): exists ONLY while a long migration
   is running (or was interrupted). Deleted on clean completion. If it's there on
   startup with a matching migration_name, we RESUME instead of starting over.

processed_keys and failed_keys may overlap - don't "fix" that! A key can be
done-and-skipped (terminal failure) and still show up in failed from an older run.
The backfill decides what to retry using both sets, see remaining_keys().
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass
class MigrationState:
    """Version stamp + completion flags, one per migration name."""

    version: str = "0.0.0"
    migrations: dict[str, bool] = field(default_factory=dict)

    def is_complete(self, name: str) -> bool:
        return bool(self.migrations.get(name, False))

    def mark_complete(self, name: str) -> None:
        self.migrations[name] = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigrationState:
        return cls(
            version=str(data.get("version", "0.0.0")),
            migrations={k: bool(v) for k, v in (data.get("migrations") or {}).items()},
        )

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "migrations": dict(self.migrations)}


@dataclass
class MigrationProgress:
    """Checkpoint for a resumable migration.

    Attributes:
        migration_name: Which migration this checkpoint belongs to
        processed_keys: Keys that are done (succeeded OR terminally failed)
        failed_keys: Keys that failed retryably - retried on the next run
        total_count: Number of target keys when the migration started
        started_at: Unix timestamp (ms) of the first run
    """

    migration_name: str
    processed_keys: set[str] = field(default_factory=set)
    failed_keys: set[str] = field(default_factory=set)
    total_count: int = 0
    started_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def mark_succeeded(self, key: str) -> None:
        self.processed_keys.add(key)
        self.failed_keys.discard(key)

    def mark_retryable_failure(self, key: str) -> None:
        # Kept OUT of processed so the next run picks it up again
        self.failed_keys.add(key)

    def mark_terminal_failure(self, key: str) -> None:
        # Done for good - never retried, but never merged either
        self.processed_keys.add(key)
        self.failed_keys.discard(key)

    def remaining_keys(self, targets: Iterable[str]) -> list[str]:
        """Unprocessed targets plus previously failed targets, in target order."""
        return [
            key
            for key in targets
            if key not in self.processed_keys or key in self.failed_keys
        ]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigrationProgress:
        return cls(
            migration_name=data["migrationName"],
            processed_keys=set(data.get("processedKeys") or []),
            failed_keys=set(data.get("failedKeys") or []),
            total_count=int(data.get("totalCount", 0)),
            started_at=int(data.get("startedAt", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        # Sorted for stable output - easier to diff checkpoints when debugging
        return {
            "migrationName": self.migration_name,
            "processedKeys": sorted(self.processed_keys),
            "failedKeys": sorted(self.failed_keys),
            "totalCount": self.total_count,
            "startedAt": self.started_at,
        }


class RecordStatus(str, Enum):
    """Tri-state outcome of one per-record backfill effort."""

    SUCCEEDED = "succeeded"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_TERMINAL = "failed_terminal"


@dataclass
class RecordOutcome:
    """What happened to one record in a batch.

    Per-record errors never escape the batch - they end up in here instead.
    """

    key: str
    status: RecordStatus
    updates: dict[str, Any] = field(default_factory=dict)
    error: BaseException | None = None
    attempts: int = 1

    @property
    def succeeded(self) -> bool:
        return self.status is RecordStatus.SUCCEEDED


@dataclass
class BackfillSummary:
    """Counts for the end-of-run log line."""

    targets: int = 0
    resolved_from_cache: int = 0
    fetched: int = 0
    retryable_failures: int = 0
    terminal_failures: int = 0
    batches: int = 0
