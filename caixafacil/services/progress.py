"""Progress tracking for statement imports.

`ImportProgress` is the per-run state struct the pipeline updates as it moves
through `idle → uploading → processing → success | error`. A thread-safe
registry with TTL-based cleanup lets the API look runs up by id.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from caixafacil.models import ImportProgressSnapshot, ImportStatus

logger = logging.getLogger(__name__)

# TTL for registry entries (15 minutes)
PROGRESS_TTL_SECONDS = 900

# Percentage checkpoints reported by the pipeline
UPLOADING = 10
EXTRACTING = 30
VALIDATED = 50
CATEGORIZING_START = 55
CATEGORIZING_END = 85
SAVING = 90
DONE = 100

_TRANSITIONS: dict[ImportStatus, set[ImportStatus]] = {
    ImportStatus.IDLE: {ImportStatus.UPLOADING},
    ImportStatus.UPLOADING: {ImportStatus.PROCESSING, ImportStatus.ERROR},
    ImportStatus.PROCESSING: {ImportStatus.PROCESSING, ImportStatus.SUCCESS, ImportStatus.ERROR},
    ImportStatus.SUCCESS: {ImportStatus.IDLE},
    ImportStatus.ERROR: {ImportStatus.UPLOADING},
}


class InvalidTransitionError(Exception):
    """Raised on a status change the import sequence does not allow."""

    pass


@dataclass
class ImportProgress:
    """Status of one statement import."""

    import_id: str
    filename: str
    status: ImportStatus = ImportStatus.IDLE
    progress: int = 0
    message: str = ""
    title: str | None = None
    detail: str | None = None
    imported_count: int = 0
    attempt: int = 0
    # User inputs kept for retry; released together with the entry
    request: Any = field(default=None, repr=False)
    updated_at: datetime = field(default_factory=datetime.now)
    _created_at: float = field(default_factory=time.time, repr=False)

    def _move(self, status: ImportStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(f"Cannot go from {self.status.value} to {status.value}")
        self.status = status
        self.updated_at = datetime.now()

    def start(self, message: str = "Enviando arquivo...") -> None:
        """Begin a run (first attempt or retry after an error)."""
        self._move(ImportStatus.UPLOADING)
        self.attempt += 1
        self.progress = UPLOADING
        self.message = message
        self.title = None
        self.detail = None
        self.imported_count = 0
        self._log()

    def advance(self, progress: int, message: str) -> None:
        """Report a processing checkpoint. Progress never moves backwards within a run."""
        self._move(ImportStatus.PROCESSING)
        self.progress = max(self.progress, min(progress, DONE))
        self.message = message
        self._log()

    def succeed(self, imported_count: int) -> None:
        self._move(ImportStatus.SUCCESS)
        self.progress = DONE
        self.imported_count = imported_count
        self.message = f"{imported_count} transações importadas com sucesso!"
        self._log()

    def fail(self, title: str, detail: str) -> None:
        self._move(ImportStatus.ERROR)
        self.title = title
        self.detail = detail
        self.message = f"{title}: {detail}"
        self._log()

    def reset(self) -> None:
        """Return a finished successful run to idle."""
        self._move(ImportStatus.IDLE)
        self.progress = 0
        self.message = ""
        self._log()

    def snapshot(self) -> ImportProgressSnapshot:
        return ImportProgressSnapshot(
            import_id=self.import_id,
            filename=self.filename,
            status=self.status,
            progress=self.progress,
            message=self.message,
            title=self.title,
            detail=self.detail,
            imported_count=self.imported_count,
            attempt=self.attempt,
            updated_at=self.updated_at.isoformat(),
        )

    def _log(self) -> None:
        logger.info(f"[PROGRESS] {self.import_id[:8]}... {self.status.value} {self.progress}% - {self.message}")


# Thread-safe registry of runs by import id
_imports: dict[str, ImportProgress] = {}
_imports_lock = threading.Lock()


def _cleanup_stale_entries() -> None:
    """Remove entries older than TTL."""
    current_time = time.time()

    with _imports_lock:
        stale_keys = [
            key
            for key, entry in _imports.items()
            if current_time - entry._created_at > PROGRESS_TTL_SECONDS
            and entry.status in (ImportStatus.IDLE, ImportStatus.SUCCESS, ImportStatus.ERROR)
        ]
        for key in stale_keys:
            del _imports[key]
            logger.debug(f"Cleaned up stale import entry: {key[:8]}...")


def register_import(import_id: str, filename: str, request: Any = None) -> ImportProgress:
    """Create and track a new idle import, optionally holding the inputs needed to retry it."""
    _cleanup_stale_entries()
    progress = ImportProgress(import_id=import_id, filename=filename, request=request)
    with _imports_lock:
        _imports[import_id] = progress
    return progress


def get_import(import_id: str) -> ImportProgress | None:
    with _imports_lock:
        return _imports.get(import_id)


def clear_import(import_id: str) -> None:
    with _imports_lock:
        if _imports.pop(import_id, None) is not None:
            logger.debug(f"Cleared import {import_id[:8]}...")


def list_active_imports() -> list[ImportProgressSnapshot]:
    """Snapshots of imports currently uploading or processing."""
    with _imports_lock:
        return [
            entry.snapshot()
            for entry in _imports.values()
            if entry.status in (ImportStatus.UPLOADING, ImportStatus.PROCESSING)
        ]
