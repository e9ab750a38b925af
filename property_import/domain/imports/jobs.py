"""
In-memory tracking for running import jobs.

Every import gets an ``ImportProgress`` entry that the HTTP layer can poll.
Entries live until a scheduled cleanup removes them, shortly after the job
reaches a terminal status.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from property_import.api.schemas.shared import (
    TERMINAL_STATUSES,
    ImportProgress,
    ImportStatus,
)
from property_import.domain.imports.errors import ImportJobNotFoundError

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ImportProgress], None]

UPDATABLE_FIELDS = {
    "processed_rows",
    "successful_rows",
    "failed_rows",
    "status",
    "errors",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_import_id() -> str:
    return f"import_{uuid.uuid4().hex}"


class ImportJobRegistry:
    def __init__(self):
        self._jobs: Dict[str, ImportProgress] = {}
        self._started: Dict[str, float] = {}
        self._timers: Dict[str, threading.Timer] = {}
        self._listeners: List[ProgressListener] = []
        self._lock = threading.Lock()

    def create(self, total_rows: int) -> ImportProgress:
        now = _utcnow()
        job = ImportProgress(
            import_id=generate_import_id(),
            total_rows=total_rows,
            started_at=now,
            last_updated_at=now,
        )
        with self._lock:
            self._jobs[job.import_id] = job
            self._started[job.import_id] = time.monotonic()
            snapshot = job.model_copy(deep=True)
        logger.info("Import job %s created for %d rows", job.import_id, total_rows)
        self._notify(snapshot)
        return snapshot

    def update(self, import_id: str, **changes: Any) -> ImportProgress:
        """
        Apply ``changes`` to a job and recompute its derived fields.

        ``processed_rows`` never moves backwards and a job that reached a
        terminal status ignores later updates.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported progress fields: {', '.join(sorted(unknown))}")

        with self._lock:
            job = self._jobs.get(import_id)
            if job is None:
                raise ImportJobNotFoundError(import_id)

            if job.status in TERMINAL_STATUSES:
                logger.debug("Ignoring update for finished import %s (%s)", import_id, job.status.value)
                return job.model_copy(deep=True)

            if "processed_rows" in changes:
                changes["processed_rows"] = max(job.processed_rows, changes["processed_rows"])
            if "status" in changes:
                changes["status"] = ImportStatus(changes["status"])

            job = job.model_copy(update=changes)
            job.last_updated_at = _utcnow()
            if job.total_rows > 0:
                # Halves round up
                job.progress_percentage = (job.processed_rows * 200 + job.total_rows) // (job.total_rows * 2)

            if job.status == ImportStatus.PROCESSING and job.processed_rows > 0:
                elapsed_ms = (time.monotonic() - self._started[import_id]) * 1000
                remaining = max(job.total_rows - job.processed_rows, 0)
                job.estimated_remaining_ms = int(elapsed_ms / job.processed_rows * remaining)
            elif job.status in TERMINAL_STATUSES:
                job.estimated_remaining_ms = 0

            self._jobs[import_id] = job
            snapshot = job.model_copy(deep=True)

        if snapshot.status in TERMINAL_STATUSES:
            logger.info(
                "Import job %s finished with status %s (%d/%d rows)",
                import_id,
                snapshot.status.value,
                snapshot.processed_rows,
                snapshot.total_rows,
            )
        self._notify(snapshot)
        return snapshot

    def get(self, import_id: str) -> Optional[ImportProgress]:
        with self._lock:
            job = self._jobs.get(import_id)
            return job.model_copy(deep=True) if job is not None else None

    def list_active(self) -> List[ImportProgress]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def cleanup(self, import_id: str) -> bool:
        with self._lock:
            removed = self._jobs.pop(import_id, None)
            self._started.pop(import_id, None)
            timer = self._timers.pop(import_id, None)
        if timer is not None and timer is not threading.current_thread():
            timer.cancel()
        if removed is not None:
            logger.debug("Import job %s removed from registry", import_id)
        return removed is not None

    def schedule_cleanup(self, import_id: str, delay_seconds: float) -> None:
        timer = threading.Timer(delay_seconds, self._cleanup_quietly, args=(import_id,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(import_id, None)
            self._timers[import_id] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def _cleanup_quietly(self, import_id: str) -> None:
        try:
            self.cleanup(import_id)
        except Exception as exc:  # pragma: no cover - timer thread
            logger.warning("Cleanup of import job %s failed: %s", import_id, exc)

    def shutdown(self) -> None:
        """Cancel pending cleanup timers."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def add_listener(self, listener: ProgressListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: ProgressListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, snapshot: ImportProgress) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as exc:
                logger.warning("Progress listener failed for import %s: %s", snapshot.import_id, exc)
