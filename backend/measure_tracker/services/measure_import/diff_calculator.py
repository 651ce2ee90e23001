from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, NamedTuple, Sequence

from measure_tracker.services.measure_import.status import categorize_status, is_blank_status
from measure_tracker.services.measure_import.types import (
    ComplianceCategory,
    DiffAction,
    DiffChange,
    DiffResult,
    DiffSummary,
    ExistingRecord,
    ImportMode,
    MeasureKey,
    PatientKey,
    PatientReassignment,
    TransformedRow,
)

logger = logging.getLogger(__name__)

REPLACE_DELETE_REASON = "Replace All mode - deleting existing record"
REPLACE_INSERT_REASON = "Replace All mode - inserting new record"
NEW_COMBINATION_REASON = "New patient+measure combination"

MODIFYING_ACTIONS = frozenset({DiffAction.insert, DiffAction.update, DiffAction.both, DiffAction.delete})


class MergeInput(NamedTuple):
    old: ComplianceCategory
    new: ComplianceCategory
    new_is_blank: bool


class MergeRule(NamedTuple):
    applies: Callable[[MergeInput], bool]
    action: DiffAction
    reason: str


_C = ComplianceCategory.compliant
_NC = ComplianceCategory.non_compliant
_UNKNOWN = ComplianceCategory.unknown

# Evaluated top to bottom, first match wins. Old-unknown precedes new-unknown.
MERGE_RULES: tuple[MergeRule, ...] = (
    MergeRule(lambda m: m.new_is_blank, DiffAction.skip, "New data is blank - keeping existing"),
    MergeRule(
        lambda m: m.old == _UNKNOWN, DiffAction.update, "Old status unknown, updating with new value"
    ),
    MergeRule(
        lambda m: m.new == _UNKNOWN,
        DiffAction.skip,
        "Cannot determine compliance category - keeping existing",
    ),
    MergeRule(
        lambda m: m.old == _NC and m.new == _C,
        DiffAction.update,
        "Upgrading from non-compliant to compliant",
    ),
    MergeRule(lambda m: m.old == _C and m.new == _C, DiffAction.skip, "Both compliant - keeping existing"),
    MergeRule(
        lambda m: m.old == _NC and m.new == _NC,
        DiffAction.skip,
        "Both non-compliant - keeping existing",
    ),
    MergeRule(
        lambda m: m.old == _C and m.new == _NC,
        DiffAction.both,
        "Downgrade detected - keeping both (old compliant + new non-compliant)",
    ),
)


def resolve_merge_rule(
    old_status: str | None, new_status: str | None
) -> tuple[DiffAction, str]:
    merge_input = MergeInput(
        old=categorize_status(old_status),
        new=categorize_status(new_status),
        new_is_blank=is_blank_status(new_status),
    )
    for rule in MERGE_RULES:
        if rule.applies(merge_input):
            return rule.action, rule.reason
    raise AssertionError(f"No merge rule covers {merge_input}")


def apply_merge_logic(row: TransformedRow, existing: ExistingRecord) -> DiffChange:
    action, reason = resolve_merge_rule(existing.measure_status, row.measure_status)
    return DiffChange(
        action=action,
        member_name=row.member_name,
        member_dob=row.member_dob,
        member_telephone=row.member_telephone,
        member_address=row.member_address,
        request_type=row.request_type,
        quality_measure=row.quality_measure,
        old_status=existing.measure_status,
        new_status=row.measure_status,
        status_date=row.status_date,
        reason=reason,
        existing_patient_id=existing.patient_id,
        existing_measure_id=existing.measure_id,
        source_row_index=row.source_row_index,
    )


def _insert_change(row: TransformedRow, reason: str) -> DiffChange:
    return DiffChange(
        action=DiffAction.insert,
        member_name=row.member_name,
        member_dob=row.member_dob,
        member_telephone=row.member_telephone,
        member_address=row.member_address,
        request_type=row.request_type,
        quality_measure=row.quality_measure,
        old_status=None,
        new_status=row.measure_status,
        status_date=row.status_date,
        reason=reason,
        source_row_index=row.source_row_index,
    )


def calculate_replace_all_diff(
    rows: Sequence[TransformedRow],
    existing_records: Sequence[ExistingRecord],
    summary: DiffSummary,
) -> list[DiffChange]:
    changes: list[DiffChange] = []
    for record in existing_records:
        changes.append(
            DiffChange(
                action=DiffAction.delete,
                member_name=record.member_name,
                member_dob=record.member_dob,
                member_telephone=record.member_telephone,
                member_address=record.member_address,
                request_type=record.request_type or "",
                quality_measure=record.quality_measure or "",
                old_status=record.measure_status,
                new_status=None,
                reason=REPLACE_DELETE_REASON,
                existing_patient_id=record.patient_id,
                existing_measure_id=record.measure_id,
            )
        )
        summary.record(DiffAction.delete)

    for row in rows:
        changes.append(_insert_change(row, REPLACE_INSERT_REASON))
        summary.record(DiffAction.insert)
    return changes


def calculate_merge_diff(
    rows: Sequence[TransformedRow],
    existing_by_key: dict[MeasureKey, ExistingRecord],
    summary: DiffSummary,
) -> list[DiffChange]:
    changes: list[DiffChange] = []
    for row in rows:
        existing = existing_by_key.get(row.key)
        if existing is None:
            change = _insert_change(row, NEW_COMBINATION_REASON)
        else:
            change = apply_merge_logic(row, existing)
        changes.append(change)
        summary.record(change.action)
    return changes


def build_existing_index(
    existing_records: Iterable[ExistingRecord],
) -> tuple[dict[MeasureKey, ExistingRecord], set[PatientKey]]:
    by_key: dict[MeasureKey, ExistingRecord] = {}
    patient_keys: set[PatientKey] = set()
    for record in existing_records:
        by_key[record.key] = record
        patient_keys.add(record.patient_key)
    return by_key, patient_keys


def calculate_diff(
    rows: Sequence[TransformedRow],
    mode: ImportMode,
    existing_records: Sequence[ExistingRecord],
    *,
    now: datetime | None = None,
) -> DiffResult:
    mode = ImportMode(mode)
    existing_by_key, existing_patient_keys = build_existing_index(existing_records)
    summary = DiffSummary()

    if mode == ImportMode.replace:
        changes = calculate_replace_all_diff(rows, existing_records, summary)
    else:
        changes = calculate_merge_diff(rows, existing_by_key, summary)

    import_patient_keys = {row.patient_key for row in rows}
    existing_patients = len(import_patient_keys & existing_patient_keys)

    logger.info(
        "Measure import diff calculated",
        extra={
            "mode": mode.value,
            "inserts": summary.inserts,
            "updates": summary.updates,
            "skips": summary.skips,
            "duplicates": summary.duplicates,
            "deletes": summary.deletes,
        },
    )
    return DiffResult(
        mode=mode,
        summary=summary,
        changes=changes,
        new_patients=len(import_patient_keys) - existing_patients,
        existing_patients=existing_patients,
        generated_at=now or datetime.now(timezone.utc),
    )


def filter_changes_by_action(changes: Iterable[DiffChange], action: DiffAction) -> list[DiffChange]:
    return [change for change in changes if change.action == action]


def get_modifying_changes(changes: Iterable[DiffChange]) -> list[DiffChange]:
    return [change for change in changes if change.action in MODIFYING_ACTIONS]


def get_diff_summary_text(result: DiffResult) -> str:
    summary = result.summary
    return "\n".join(
        [
            f"Import Mode: {result.mode.value.upper()}",
            f"Generated: {result.generated_at.isoformat()}",
            "",
            "Summary:",
            f"  Inserts: {summary.inserts}",
            f"  Updates: {summary.updates}",
            f"  Skips: {summary.skips}",
            f"  Duplicates (BOTH): {summary.duplicates}",
            f"  Deletes: {summary.deletes}",
            "",
            "Patients:",
            f"  New: {result.new_patients}",
            f"  Existing: {result.existing_patients}",
        ]
    )


def detect_reassignments(
    rows: Iterable[TransformedRow],
    existing_records: Iterable[ExistingRecord],
    target_owner_id: int | None,
) -> list[PatientReassignment]:
    import_patients = {row.patient_key for row in rows if row.member_dob}
    if not import_patients:
        return []

    reassignments: list[PatientReassignment] = []
    seen_patient_ids: set[int] = set()
    for record in existing_records:
        if record.patient_id in seen_patient_ids:
            continue
        if record.patient_key not in import_patients:
            continue
        seen_patient_ids.add(record.patient_id)
        # Covers both unchanged owners and unassigned patients staying unassigned.
        if record.owner_id == target_owner_id:
            continue
        reassignments.append(
            PatientReassignment(
                patient_id=record.patient_id,
                member_name=record.member_name,
                member_dob=record.member_dob,
                current_owner_id=record.owner_id,
                current_owner_name=record.owner_name,
                new_owner_id=target_owner_id,
            )
        )
    return reassignments
