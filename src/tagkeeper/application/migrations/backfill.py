"""addTrackMetadata: resumable name/artists/BPM backfill.

Hey future me - this is the LONG one. A big library means thousands of API calls,
so the backfill has to survive app restarts, flaky networks and Spotify outages
without starting over and without hammering the API.

Three independent levels of failure absorption:

1. Record level: each record gets up to N attempts with exponential backoff,
   but ONLY for retryable errors (429, network, timeout, circuit open). A 4xx or a
   malformed payload fails the record after one attempt.
2. Batch level: any batch with failures stretches the inter-batch delay (x1.5,
   capped); an all-success batch snaps it back to the base delay.
3. Migration level: after N consecutive batches with zero successes we checkpoint
   and raise MigrationPausedError. The runner leaves the flag unset, so the next
   startup resumes from the checkpoint.

FLOW:
    targets -> load/start checkpoint -> remaining
    -> cache pass (free, no API) -> network pass (batches) -> final save -> clear checkpoint

Per-record errors NEVER escape a batch - they become RecordOutcome values. The one
exception is ConfigurationError (e.g. no access token): that is our setup, not the
record, so it aborts the run instead of finalising every record as failed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from tagkeeper.application.migrations.registry import ADD_TRACK_METADATA
from tagkeeper.config import MigrationSettings
from tagkeeper.domain.entities import TagDataset, TrackRecord, is_local_track
from tagkeeper.domain.exceptions import (
    ConfigurationError,
    MigrationPausedError,
    PersistenceError,
)
from tagkeeper.domain.ports import TrackMetadataFetcher
from tagkeeper.domain.value_objects import (
    BackfillSummary,
    MigrationProgress,
    RecordOutcome,
    RecordStatus,
)
from tagkeeper.infrastructure.error_classification import (
    get_backoff_delay,
    is_retryable_error,
)
from tagkeeper.infrastructure.observability.log_messages import LogMessages
from tagkeeper.infrastructure.persistence import (
    MIGRATION_PROGRESS_KEY,
    TagDataRepository,
    TrackInfoCache,
)

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]
ProgressCallback = Callable[[str, int, int], None]


def find_backfill_targets(dataset: TagDataset) -> list[str]:
    """Remote tracks missing name, artists or BPM (dataset order)."""
    return [
        uri
        for uri, track in dataset.tracks.items()
        if not is_local_track(uri) and track.needs_enrichment
    ]


class TrackMetadataBackfill:
    """Runs the addTrackMetadata migration over a working copy of the dataset.

    Args:
        repository: Where the dataset and checkpoint are persisted
        fetcher: API wrappers (already coordinator-throttled)
        cache: Legacy track info cache for the cache pass
        settings: Batch size, delays, retry caps
        sleep: Injected for tests (zero-delay runs)
    """

    name = ADD_TRACK_METADATA

    def __init__(
        self,
        repository: TagDataRepository,
        fetcher: TrackMetadataFetcher,
        cache: TrackInfoCache,
        settings: MigrationSettings,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._repository = repository
        self._fetcher = fetcher
        self._cache = cache
        self._settings = settings
        self._sleep = sleep

    async def run(
        self,
        dataset: TagDataset,
        on_progress: ProgressCallback | None = None,
    ) -> tuple[TagDataset, BackfillSummary]:
        """Backfill the dataset.

        Returns:
            (updated dataset, summary). The caller's dataset is never mutated.

        Raises:
            MigrationPausedError: Too many consecutive failing batches (checkpointed)
            PersistenceError: Final dataset save failed (checkpoint stays for resume)
            ConfigurationError: Fetcher is not usable (e.g. no access token); nothing
                is finalised and the checkpoint stays for resume
        """
        targets = find_backfill_targets(dataset)
        summary = BackfillSummary(targets=len(targets))

        if not targets:
            logger.info(f"[MIGRATION] {self.name}: no tracks need metadata")
            return dataset, summary

        progress = await self._load_or_start_progress(len(targets))
        remaining = progress.remaining_keys(targets)
        resumed = bool(progress.processed_keys or progress.failed_keys)

        logger.info(
            LogMessages.migration_started(
                migration=self.name,
                targets=len(targets),
                resumed=resumed,
                processed=len(progress.processed_keys),
                failed=len(progress.failed_keys),
            )
        )

        working = dataset.copy()

        needs_fetch = await self._cache_pass(working, remaining, progress, summary)
        logger.info(
            f"[MIGRATION] {self.name}: {summary.resolved_from_cache} resolved from cache, "
            f"{len(needs_fetch)} need fetching"
        )

        await self._network_pass(working, needs_fetch, progress, summary, len(targets), on_progress)

        # Final save MUST succeed - otherwise the caller must not mark us complete
        await self._repository.save_dataset(working)
        try:
            await self._repository.clear_progress()
        except PersistenceError as e:
            # Flag gets set anyway, so a stale checkpoint is never read again
            logger.warning(LogMessages.checkpoint_failed(MIGRATION_PROGRESS_KEY, str(e)))

        if progress.failed_keys:
            logger.warning(
                f"[MIGRATION] {self.name}: {len(progress.failed_keys)} tracks still failing "
                f"after this run, giving up on them"
            )
        logger.info(
            LogMessages.migration_completed(
                migration=self.name,
                processed=len(progress.processed_keys),
                resolved_from_cache=summary.resolved_from_cache,
                fetched=summary.fetched,
                failed=summary.retryable_failures + summary.terminal_failures,
            )
        )
        return working, summary

    async def _load_or_start_progress(self, total: int) -> MigrationProgress:
        progress = await self._repository.load_progress()
        if progress is not None and progress.migration_name == self.name:
            return progress
        if progress is not None:
            logger.info(
                f"[MIGRATION] Ignoring checkpoint of '{progress.migration_name}', "
                f"starting {self.name} fresh"
            )
        return MigrationProgress(migration_name=self.name, total_count=total)

    async def _cache_pass(
        self,
        working: TagDataset,
        remaining: list[str],
        progress: MigrationProgress,
        summary: BackfillSummary,
    ) -> list[str]:
        """Resolve name/artists from the legacy cache. Returns keys that still need the API."""
        await self._cache.load()
        still_needed: list[str] = []

        for key in remaining:
            # Retryable failures from an earlier run already missed the cache
            if key in progress.failed_keys and key not in progress.processed_keys:
                still_needed.append(key)
                continue

            track = working.tracks[key]
            if track.needs_metadata:
                cached = self._cache.get(key)
                if cached is not None:
                    track.apply_updates({"name": cached.name, "artists": cached.artists})

            if track.needs_enrichment:
                still_needed.append(key)
            else:
                progress.mark_succeeded(key)
                summary.resolved_from_cache += 1

        if summary.resolved_from_cache:
            await self._checkpoint(working, progress)
        return still_needed

    async def _network_pass(
        self,
        working: TagDataset,
        keys: list[str],
        progress: MigrationProgress,
        summary: BackfillSummary,
        total: int,
        on_progress: ProgressCallback | None,
    ) -> None:
        settings = self._settings
        delay = settings.base_batch_delay_seconds
        consecutive_failures = 0

        for start in range(0, len(keys), settings.batch_size):
            batch = keys[start : start + settings.batch_size]
            try:
                outcomes = await self._run_batch(working, batch)
            except ConfigurationError:
                # Setup problem, not a record problem: checkpoint and abort unfinalised
                await self._checkpoint(working, progress)
                raise
            summary.batches += 1

            successes = 0
            failures = 0
            for outcome in outcomes:
                if outcome.succeeded:
                    if outcome.updates:
                        working.tracks[outcome.key].apply_updates(outcome.updates)
                    progress.mark_succeeded(outcome.key)
                    summary.fetched += 1
                    successes += 1
                elif outcome.status is RecordStatus.FAILED_RETRYABLE:
                    progress.mark_retryable_failure(outcome.key)
                    summary.retryable_failures += 1
                    failures += 1
                else:
                    # Partial updates are dropped on purpose: terminal means untouched
                    progress.mark_terminal_failure(outcome.key)
                    summary.terminal_failures += 1
                    failures += 1

            if failures:
                delay = min(delay * settings.batch_delay_multiplier, settings.max_batch_delay_seconds)
            else:
                delay = settings.base_batch_delay_seconds

            if successes:
                consecutive_failures = 0
            elif failures:
                consecutive_failures += 1

            if consecutive_failures >= settings.max_consecutive_failures:
                await self._checkpoint(working, progress)
                logger.warning(
                    LogMessages.migration_paused(
                        migration=self.name,
                        consecutive_failures=consecutive_failures,
                        processed=len(progress.processed_keys),
                        total=total,
                    )
                )
                raise MigrationPausedError(self.name, consecutive_failures)

            if on_progress is not None:
                on_progress(self.name, len(progress.processed_keys), total)

            if summary.batches % settings.save_every_n_batches == 0:
                await self._checkpoint(working, progress)

            if start + settings.batch_size < len(keys):
                await self._sleep(delay)

    async def _run_batch(self, working: TagDataset, batch: list[str]) -> list[RecordOutcome]:
        """Process one batch concurrently; every record settles independently."""
        results = await asyncio.gather(
            *(self._process_record(key, working.tracks[key]) for key in batch),
            return_exceptions=True,
        )

        outcomes: list[RecordOutcome] = []
        for key, result in zip(batch, results, strict=True):
            if isinstance(result, RecordOutcome):
                outcomes.append(result)
            elif isinstance(result, ConfigurationError):
                raise result
            elif isinstance(result, Exception):
                # _process_record catches everything else; this is a bug, not an API error
                logger.error(f"[MIGRATION] Unexpected error processing {key}: {result}")
                outcomes.append(
                    RecordOutcome(key=key, status=RecordStatus.FAILED_TERMINAL, error=result)
                )
            else:
                raise result
        return outcomes

    async def _process_record(self, key: str, track: TrackRecord) -> RecordOutcome:
        """Fetch whatever this record is missing, with per-record retries."""
        needs_metadata = track.needs_metadata
        needs_bpm = track.needs_numeric_feature
        max_attempts = self._settings.max_retries_per_record

        updates: dict = {}
        identity_done = not needs_metadata
        bpm_done = not needs_bpm
        last_error: Exception | None = None
        attempts = 0

        while attempts < max_attempts:
            try:
                if not identity_done:
                    identity = await self._fetcher.fetch_identity(key)
                    if identity is not None:
                        updates["name"] = identity.display_name
                        updates["artists"] = identity.artists
                    identity_done = True

                if not bpm_done:
                    bpm = await self._fetcher.fetch_numeric_feature(key)
                    if bpm is not None:
                        updates["bpm"] = bpm
                    bpm_done = True

                return RecordOutcome(
                    key=key,
                    status=RecordStatus.SUCCEEDED,
                    updates=updates,
                    attempts=attempts + 1,
                )
            except ConfigurationError:
                raise
            except Exception as e:
                last_error = e
                attempts += 1

                if not is_retryable_error(e) or attempts >= max_attempts:
                    break

                backoff = get_backoff_delay(
                    attempts,
                    base_delay=self._settings.retry_base_delay_seconds,
                    max_delay=self._settings.retry_max_delay_seconds,
                )
                logger.warning(
                    f"[MIGRATION] Retryable error for {key}, attempt {attempts}/{max_attempts}. "
                    f"Waiting {backoff:.1f}s: {e}"
                )
                await self._sleep(backoff)

        retryable = last_error is not None and is_retryable_error(last_error)
        logger.error(f"[MIGRATION] Failed to fetch data for {key} after {attempts} attempts: {last_error}")
        return RecordOutcome(
            key=key,
            status=RecordStatus.FAILED_RETRYABLE if retryable else RecordStatus.FAILED_TERMINAL,
            updates=updates,
            error=last_error,
            attempts=attempts,
        )

    async def _checkpoint(self, working: TagDataset, progress: MigrationProgress) -> None:
        """Intermediate save of dataset + checkpoint. Failures are logged, not raised."""
        try:
            await self._repository.save_dataset(working)
            await self._repository.save_progress(progress)
        except PersistenceError as e:
            logger.warning(LogMessages.checkpoint_failed(e.key, str(e)))
