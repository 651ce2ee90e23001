from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from measure_tracker.core.settings import settings
from measure_tracker.services.measure_import.types import (
    DiffResult,
    ImportMode,
    MappingResult,
    PatientReassignment,
    PatientWithNoMeasures,
    TransformedRow,
    TransformIssue,
)
from measure_tracker.services.measure_import.validator import ValidationResult

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PreviewEntry:
    id: str
    system_id: str
    mode: ImportMode
    diff: DiffResult
    rows: list[TransformedRow]
    validation: ValidationResult
    created_at: datetime
    expires_at: datetime
    file_name: str | None = None
    warnings: list[TransformIssue] = field(default_factory=list)
    reassignments: list[PatientReassignment] = field(default_factory=list)
    target_owner_id: int | None = None
    mapping: MappingResult | None = None
    patients_with_no_measures: list[PatientWithNoMeasures] = field(default_factory=list)
    blocking_issues: list[str] = field(default_factory=list)
    data_start_row: int = 2

    @property
    def can_proceed(self) -> bool:
        return self.validation.valid and not self.blocking_issues

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass
class PreviewStoreStats:
    total_entries: int
    active_entries: int
    expired_entries: int
    oldest_entry: datetime | None
    newest_entry: datetime | None

    def as_dict(self) -> dict[str, object]:
        return {
            "total_entries": self.total_entries,
            "active_entries": self.active_entries,
            "expired_entries": self.expired_entries,
            "oldest_entry": self.oldest_entry.isoformat() if self.oldest_entry else None,
            "newest_entry": self.newest_entry.isoformat() if self.newest_entry else None,
        }


class PreviewStore:
    """In-memory, time-boxed holding area for previewed imports."""

    def __init__(self, ttl: timedelta | None = None, clock: Clock | None = None) -> None:
        self.ttl = ttl if ttl is not None else timedelta(minutes=settings.import_preview_ttl_minutes)
        self._clock = clock or _utcnow
        self._entries: dict[str, PreviewEntry] = {}
        self._lock = threading.Lock()

    def store(
        self,
        *,
        system_id: str,
        mode: ImportMode,
        diff: DiffResult,
        rows: list[TransformedRow],
        validation: ValidationResult,
        warnings: list[TransformIssue] | None = None,
        reassignments: list[PatientReassignment] | None = None,
        target_owner_id: int | None = None,
        file_name: str | None = None,
        mapping: MappingResult | None = None,
        patients_with_no_measures: list[PatientWithNoMeasures] | None = None,
        blocking_issues: list[str] | None = None,
        data_start_row: int = 2,
        ttl: timedelta | None = None,
    ) -> str:
        now = self._clock()
        entry = PreviewEntry(
            id=str(uuid.uuid4()),
            system_id=system_id,
            mode=ImportMode(mode),
            diff=diff,
            rows=rows,
            validation=validation,
            created_at=now,
            expires_at=now + (ttl if ttl is not None else self.ttl),
            file_name=file_name,
            warnings=list(warnings or []),
            reassignments=list(reassignments or []),
            target_owner_id=target_owner_id,
            mapping=mapping,
            patients_with_no_measures=list(patients_with_no_measures or []),
            blocking_issues=list(blocking_issues or []),
            data_start_row=data_start_row,
        )
        with self._lock:
            self._entries[entry.id] = entry
        logger.info(
            "Measure import preview stored",
            extra={"preview_id": entry.id, "system_id": system_id, "mode": entry.mode.value},
        )
        return entry.id

    def get(self, preview_id: str) -> PreviewEntry | None:
        with self._lock:
            entry = self._entries.get(preview_id)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[preview_id]
                return None
            return entry

    def delete(self, preview_id: str) -> bool:
        with self._lock:
            return self._entries.pop(preview_id, None) is not None

    def has_valid(self, preview_id: str) -> bool:
        return self.get(preview_id) is not None

    def active(self) -> list[PreviewEntry]:
        now = self._clock()
        with self._lock:
            return [entry for entry in self._entries.values() if not entry.is_expired(now)]

    def extend(self, preview_id: str, extra: timedelta | None = None) -> bool:
        with self._lock:
            entry = self._entries.get(preview_id)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._entries[preview_id]
                return False
            entry.expires_at = entry.expires_at + (extra if extra is not None else self.ttl)
            return True

    def cleanup_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("Measure import previews expired", extra={"removed": len(expired)})
        return len(expired)

    def stats(self) -> PreviewStoreStats:
        now = self._clock()
        with self._lock:
            entries = list(self._entries.values())
        created = [entry.created_at for entry in entries]
        expired = sum(1 for entry in entries if entry.is_expired(now))
        return PreviewStoreStats(
            total_entries=len(entries),
            active_entries=len(entries) - expired,
            expired_entries=expired,
            oldest_entry=min(created) if created else None,
            newest_entry=max(created) if created else None,
        )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @staticmethod
    def summary(entry: PreviewEntry) -> dict[str, object]:
        return {
            "preview_id": entry.id,
            "system_id": entry.system_id,
            "mode": entry.mode.value,
            "file_name": entry.file_name,
            "summary": entry.diff.summary.model_dump(),
            "total_changes": len(entry.diff.changes),
            "can_proceed": entry.can_proceed,
            "blocking_issues": list(entry.blocking_issues),
            "expires_at": entry.expires_at.isoformat(),
            "created_at": entry.created_at.isoformat(),
        }


preview_store = PreviewStore()
