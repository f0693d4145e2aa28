"""
Ingestion run ledger.

Records one row per (source, version) ingestion attempt so completed imports
are skipped on re-run. A partial unique index allows at most one ``running``
row per key, and ``begin_run`` performs the skip check and the insert inside
one write transaction, so two concurrent callers cannot both start.
"""

import logging
from typing import Any, Optional

from .errors import RunAlreadyInProgressError, RunStateError
from .models import IngestionRunRecord, RunCheck, RunStats, RunStatus
from .store import GazetteerRepository

logger = logging.getLogger(__name__)


class IngestionRunTracker:
    """Skip/allow gate and lifecycle for ingestion runs."""

    def __init__(self, repository: GazetteerRepository):
        self._repo = repository

    def check_run(self, source: str, source_version: Optional[str], force: bool = False) -> RunCheck:
        """
        Decide whether an ingestion should run.

        Args:
            source: Source name (e.g. "wikidata")
            source_version: Version of the source data
            force: Run even if a completed run exists

        Returns:
            RunCheck; should_skip is True iff a completed run exists and force is False
        """
        last_run = self._repo.get_last_completed_run(source, source_version)
        should_skip = last_run is not None and not force
        if should_skip:
            logger.info(
                f"Skipping {source} {source_version}: completed run {last_run.id} at {last_run.completed_at}"
            )
        return RunCheck(should_skip=should_skip, last_run=last_run)

    def start_run(
        self,
        source: str,
        source_version: Optional[str],
        metadata: Optional[dict[str, Any]] = None,
    ) -> int:
        """
        Insert a ``running`` row.

        Raises:
            RunAlreadyInProgressError: A run for the same key is still running
        """
        with self._repo.transaction():
            run_id = self._repo.insert_running_run(source, source_version, metadata)
        if run_id is None:
            raise RunAlreadyInProgressError(source, source_version or "")
        logger.info(f"Started ingestion run {run_id} for {source} {source_version}")
        return run_id

    def begin_run(
        self,
        source: str,
        source_version: Optional[str],
        force: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ) -> tuple[RunCheck, Optional[int]]:
        """
        Check and start in one transaction.

        Returns:
            Tuple of (check, run_id); run_id is None when the run is skipped

        Raises:
            RunAlreadyInProgressError: A run for the same key is still running
        """
        with self._repo.transaction():
            check = self.check_run(source, source_version, force)
            if check.should_skip:
                return check, None
            run_id = self._repo.insert_running_run(source, source_version, metadata)
        if run_id is None:
            raise RunAlreadyInProgressError(source, source_version or "")
        logger.info(f"Started ingestion run {run_id} for {source} {source_version}")
        return check, run_id

    def complete_run(self, run_id: int, stats: Optional[RunStats] = None) -> None:
        """Mark a running run as completed with its counters."""
        stats = stats or RunStats()
        with self._repo.transaction():
            updated = self._repo.finish_run(run_id, RunStatus.COMPLETED.value, stats)
        if not updated:
            raise RunStateError(f"Run {run_id} is not running; cannot complete it")
        logger.info(
            f"Completed ingestion run {run_id}: {stats.places_created} created, "
            f"{stats.places_updated} updated, {stats.names_added} names"
        )

    def fail_run(self, run_id: int, error_message: str) -> None:
        """Mark a running run as failed. Counters are reset to zero."""
        with self._repo.transaction():
            updated = self._repo.finish_run(run_id, RunStatus.FAILED.value, RunStats(), error_message)
        if not updated:
            raise RunStateError(f"Run {run_id} is not running; cannot fail it")
        logger.warning(f"Ingestion run {run_id} failed: {error_message}")

    def get_run(self, run_id: int) -> Optional[IngestionRunRecord]:
        return self._repo.get_run(run_id)
