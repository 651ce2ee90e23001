from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from measure_tracker.models.patient import Patient
from measure_tracker.models.patient_measure import PatientMeasure
from measure_tracker.services.measure_import.errors import WriteConflictError
from measure_tracker.services.measure_import.preview_store import PreviewEntry
from measure_tracker.services.measure_import.types import DiffAction, DiffChange, ImportMode, MeasureKey

logger = logging.getLogger(__name__)

OutcomeStatus = Literal["success", "conflict", "error"]


@dataclass
class ExecutionStats:
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    both_kept: int = 0
    conflicts: int = 0
    reassigned: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class ChangeOutcome:
    action: DiffAction
    status: OutcomeStatus
    member_name: str
    request_type: str
    quality_measure: str
    source_row_index: int | None = None
    measure_id: int | None = None
    message: str | None = None

    def as_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["action"] = self.action.value
        return data


@dataclass
class ExecutionResult:
    success: bool
    mode: ImportMode
    stats: ExecutionStats
    outcomes: list[ChangeOutcome] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def errors(self) -> list[ChangeOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status != "success"]

    def as_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "mode": self.mode.value,
            "stats": self.stats.as_dict(),
            "outcomes": [outcome.as_dict() for outcome in self.outcomes],
            "errors": [outcome.as_dict() for outcome in self.errors],
            "duration_ms": self.duration_ms,
        }


@dataclass
class _ExecutionContext:
    session: Session
    today: date
    target_owner_id: int | None
    touched_patient_ids: set[int] = field(default_factory=set)
    inserted_keys: set[MeasureKey] = field(default_factory=set)


def execute_import(
    session: Session,
    entry: PreviewEntry,
    *,
    now: datetime | None = None,
) -> ExecutionResult:
    started = time.monotonic()
    ctx = _ExecutionContext(
        session=session,
        today=(now or datetime.now(timezone.utc)).date(),
        target_owner_id=entry.target_owner_id,
    )
    stats = ExecutionStats()
    outcomes: list[ChangeOutcome] = []

    for change in _ordered_changes(entry.mode, entry.diff.changes):
        handler = _handler_for(entry.mode, change.action)
        if handler is None:
            stats.skipped += 1
            continue
        outcome = _run_change(ctx, change, handler)
        outcomes.append(outcome)
        if outcome.status == "success":
            _count_success(stats, change.action)
        elif outcome.status == "conflict":
            stats.conflicts += 1

    stats.reassigned = _apply_reassignments(ctx, entry)
    _sync_duplicate_flags(session, ctx.touched_patient_ids)

    result = ExecutionResult(
        success=all(outcome.status == "success" for outcome in outcomes),
        mode=entry.mode,
        stats=stats,
        outcomes=outcomes,
        duration_ms=int((time.monotonic() - started) * 1000),
    )
    logger.info(
        "Measure import executed",
        extra={"preview_id": entry.id, "mode": entry.mode.value, **stats.as_dict()},
    )
    return result


def _ordered_changes(mode: ImportMode, changes: list[DiffChange]) -> list[DiffChange]:
    if mode != ImportMode.replace:
        return list(changes)
    deletes = [change for change in changes if change.action == DiffAction.delete]
    others = [change for change in changes if change.action != DiffAction.delete]
    return deletes + others


def _handler_for(mode: ImportMode, action: DiffAction):
    if mode == ImportMode.replace:
        return {DiffAction.delete: _delete_measure, DiffAction.insert: _insert_measure}.get(action)
    return {
        DiffAction.insert: _insert_measure,
        DiffAction.update: _update_measure,
        DiffAction.both: _insert_measure,
    }.get(action)


def _count_success(stats: ExecutionStats, action: DiffAction) -> None:
    if action == DiffAction.insert:
        stats.inserted += 1
    elif action == DiffAction.update:
        stats.updated += 1
    elif action == DiffAction.delete:
        stats.deleted += 1
    elif action == DiffAction.both:
        stats.both_kept += 1


def _run_change(ctx: _ExecutionContext, change: DiffChange, handler) -> ChangeOutcome:
    outcome = ChangeOutcome(
        action=change.action,
        status="success",
        member_name=change.member_name,
        request_type=change.request_type,
        quality_measure=change.quality_measure,
        source_row_index=change.source_row_index,
    )
    try:
        with ctx.session.begin_nested():
            outcome.measure_id = handler(ctx, change)
    except WriteConflictError as exc:
        outcome.status, outcome.message = "conflict", str(exc)
    except IntegrityError as exc:
        outcome.status, outcome.message = "conflict", str(exc.orig)
    except (SQLAlchemyError, ValueError) as exc:
        outcome.status, outcome.message = "error", str(exc)

    if outcome.status != "success":
        logger.warning(
            "Measure import change failed",
            extra={
                "action": change.action.value,
                "status": outcome.status,
                "source_row_index": change.source_row_index,
                "detail": outcome.message,
            },
        )
    return outcome


def _status_date(change: DiffChange, today: date) -> date | None:
    if change.status_date:
        return date.fromisoformat(change.status_date)
    if change.new_status:
        return today
    return None


def _find_or_create_patient(ctx: _ExecutionContext, change: DiffChange) -> Patient:
    if not change.member_dob:
        raise ValueError(f"Cannot insert measure for {change.member_name}: DOB is required")
    member_dob = date.fromisoformat(change.member_dob)

    patient = ctx.session.scalar(
        select(Patient).where(
            Patient.member_name == change.member_name,
            Patient.member_dob == member_dob,
        )
    )
    if patient is None:
        patient = Patient(
            member_name=change.member_name,
            member_dob=member_dob,
            member_telephone=change.member_telephone,
            member_address=change.member_address,
            owner_id=ctx.target_owner_id,
        )
        ctx.session.add(patient)
        ctx.session.flush()
    return patient


def _existing_measure_id(session: Session, patient_id: int, change: DiffChange) -> int | None:
    return session.scalar(
        select(PatientMeasure.id).where(
            PatientMeasure.patient_id == patient_id,
            PatientMeasure.request_type == change.request_type,
            PatientMeasure.quality_measure == change.quality_measure,
        )
    )


def _insert_measure(ctx: _ExecutionContext, change: DiffChange) -> int:
    patient = _find_or_create_patient(ctx, change)

    # Rows repeated within one upload are inserted as-is; only foreign rows conflict.
    if change.action == DiffAction.insert and change.key not in ctx.inserted_keys:
        existing_id = _existing_measure_id(ctx.session, patient.id, change)
        if existing_id is not None:
            raise WriteConflictError(
                f"Measure {change.quality_measure} already exists for {change.member_name} "
                f"(measure {existing_id})"
            )

    max_order = ctx.session.scalar(select(func.max(PatientMeasure.row_order)))
    measure = PatientMeasure(
        patient_id=patient.id,
        request_type=change.request_type,
        quality_measure=change.quality_measure,
        measure_status=change.new_status,
        status_date=_status_date(change, ctx.today),
        row_order=(max_order if max_order is not None else -1) + 1,
        is_duplicate=False,
    )
    ctx.session.add(measure)
    ctx.session.flush()

    ctx.inserted_keys.add(change.key)
    ctx.touched_patient_ids.add(patient.id)
    return measure.id


def _update_measure(ctx: _ExecutionContext, change: DiffChange) -> int:
    if change.existing_measure_id is None:
        raise ValueError(f"Cannot update measure for {change.member_name}: no existing measure ID")
    measure = ctx.session.get(PatientMeasure, change.existing_measure_id)
    if measure is None:
        raise WriteConflictError(
            f"Measure {change.existing_measure_id} no longer exists for {change.member_name}"
        )

    measure.measure_status = change.new_status
    measure.status_date = _status_date(change, ctx.today)
    ctx.session.flush()

    ctx.touched_patient_ids.add(measure.patient_id)
    return measure.id


def _delete_measure(ctx: _ExecutionContext, change: DiffChange) -> int:
    if change.existing_measure_id is None:
        raise ValueError(f"Cannot delete measure for {change.member_name}: no existing measure ID")
    measure = ctx.session.get(PatientMeasure, change.existing_measure_id)
    if measure is None:
        raise WriteConflictError(
            f"Measure {change.existing_measure_id} no longer exists for {change.member_name}"
        )

    measure_id, patient_id = measure.id, measure.patient_id
    ctx.session.delete(measure)
    ctx.session.flush()

    ctx.touched_patient_ids.add(patient_id)
    return measure_id


def _apply_reassignments(ctx: _ExecutionContext, entry: PreviewEntry) -> int:
    reassigned = 0
    for reassignment in entry.reassignments:
        patient = ctx.session.get(Patient, reassignment.patient_id)
        # Only move patients whose owner is still the one shown in the preview.
        if patient is None or patient.owner_id != reassignment.current_owner_id:
            continue
        patient.owner_id = reassignment.new_owner_id
        reassigned += 1
    if reassigned:
        ctx.session.flush()
    return reassigned


def _sync_duplicate_flags(session: Session, patient_ids: set[int]) -> None:
    if not patient_ids:
        return
    measures = session.scalars(
        select(PatientMeasure).where(PatientMeasure.patient_id.in_(patient_ids))
    ).all()
    counts = Counter(
        (measure.patient_id, measure.request_type, measure.quality_measure) for measure in measures
    )
    for measure in measures:
        flag = counts[(measure.patient_id, measure.request_type, measure.quality_measure)] > 1
        if measure.is_duplicate != flag:
            measure.is_duplicate = flag
    session.flush()
