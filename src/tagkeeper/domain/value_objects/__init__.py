"""Domain value objects."""

from .migration_state import (
    BackfillSummary,
    MigrationProgress,
    MigrationState,
    RecordOutcome,
    RecordStatus,
)

__all__ = [
    "BackfillSummary",
    "MigrationProgress",
    "MigrationState",
    "RecordOutcome",
    "RecordStatus",
]
