from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Mapping, Sequence

from sqlalchemy.orm import Session

from measure_tracker.services.measure_import.config_loader import get_default_system_id, load_system_config
from measure_tracker.services.measure_import.diff_calculator import calculate_diff, detect_reassignments
from measure_tracker.services.measure_import.existing_records import load_existing_records
from measure_tracker.services.measure_import.preview_store import PreviewEntry, PreviewStore
from measure_tracker.services.measure_import.transformer import transform_rows
from measure_tracker.services.measure_import.types import ExistingRecord, ImportMode, TransformResult
from measure_tracker.services.measure_import.validator import validate_rows

logger = logging.getLogger(__name__)


def build_preview(
    session: Session,
    headers: Sequence[str],
    rows: Sequence[Mapping[str, Any]],
    *,
    system_id: str | None,
    mode: ImportMode | str,
    target_owner_id: int | None,
    file_name: str | None,
    store: PreviewStore,
    import_date: date | None = None,
    now: datetime | None = None,
    data_start_row: int = 2,
) -> PreviewEntry:
    system_id = system_id or get_default_system_id()
    mode = ImportMode(mode)
    config = load_system_config(system_id)

    transformed = transform_rows(
        headers, rows, config, data_start_row=data_start_row, import_date=import_date
    )
    validation = validate_rows(transformed.rows)
    existing = load_existing_records(session)
    diff = calculate_diff(transformed.rows, mode, existing, now=now)
    reassignments = detect_reassignments(transformed.rows, existing, target_owner_id)
    blocking = find_blocking_issues(transformed, mode, existing)

    preview_id = store.store(
        system_id=system_id,
        mode=mode,
        diff=diff,
        rows=transformed.rows,
        validation=validation,
        warnings=transformed.issues,
        reassignments=reassignments,
        target_owner_id=target_owner_id,
        file_name=file_name,
        mapping=transformed.mapping,
        patients_with_no_measures=transformed.patients_with_no_measures,
        blocking_issues=blocking,
        data_start_row=data_start_row,
    )
    entry = store.get(preview_id)
    if entry is None:
        raise RuntimeError(f"Preview {preview_id} expired before it could be returned")

    logger.info(
        "Measure import preview built",
        extra={
            "preview_id": preview_id,
            "system_id": system_id,
            "rows": len(transformed.rows),
            "validation_errors": len(validation.errors),
            "reassignments": len(reassignments),
            "blocking_issues": len(blocking),
        },
    )
    return entry


def find_blocking_issues(
    transformed: TransformResult,
    mode: ImportMode,
    existing: Sequence[ExistingRecord],
) -> list[str]:
    """Problems with the file as a whole that make executing the preview unsafe."""
    issues: list[str] = []
    missing = transformed.mapping.missing_required
    if missing:
        issues.append(f"Missing required columns: {', '.join(missing)}")

    if mode == ImportMode.replace and existing:
        if not transformed.rows:
            issues.append(
                f"Replace mode would delete all {len(existing)} existing measures "
                "and import none"
            )
        elif transformed.errors:
            # Dropped source rows would lose their stored measures on replace.
            issues.append(
                f"{len(transformed.errors)} row error(s) in replace mode; "
                "fix the file before replacing existing data"
            )
    return issues
