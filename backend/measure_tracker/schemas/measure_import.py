from datetime import datetime

from pydantic import BaseModel

from measure_tracker.services.measure_import.executor import ExecutionResult
from measure_tracker.services.measure_import.preview_store import PreviewEntry
from measure_tracker.services.measure_import.types import (
    DiffChange,
    DiffSummary,
    ImportMode,
    MappingResult,
    PatientReassignment,
    PatientWithNoMeasures,
    TransformIssue,
)
from measure_tracker.services.measure_import.validator import ValidationIssue, ValidationStats


class ImportSystemOut(BaseModel):
    id: str
    name: str
    is_default: bool


class ImportSystemList(BaseModel):
    items: list[ImportSystemOut]
    default: str


class ImportValidationOut(BaseModel):
    valid: bool
    stats: ValidationStats
    errors: list[ValidationIssue]
    warnings: list[ValidationIssue]


class ImportPreviewOut(BaseModel):
    preview_id: str
    system_id: str
    mode: ImportMode
    file_name: str | None = None
    can_proceed: bool
    blocking_issues: list[str]
    data_start_row: int
    summary: DiffSummary
    new_patients: int
    existing_patients: int
    total_changes: int
    changes: list[DiffChange]
    mapping: MappingResult | None = None
    validation: ImportValidationOut
    transform_issues: list[TransformIssue]
    patients_with_no_measures: list[PatientWithNoMeasures]
    reassignments: list[PatientReassignment]
    created_at: datetime
    expires_at: datetime

    @classmethod
    def from_entry(cls, entry: PreviewEntry) -> "ImportPreviewOut":
        return cls(
            preview_id=entry.id,
            system_id=entry.system_id,
            mode=entry.mode,
            file_name=entry.file_name,
            can_proceed=entry.can_proceed,
            blocking_issues=entry.blocking_issues,
            data_start_row=entry.data_start_row,
            summary=entry.diff.summary,
            new_patients=entry.diff.new_patients,
            existing_patients=entry.diff.existing_patients,
            total_changes=len(entry.diff.changes),
            changes=entry.diff.changes,
            mapping=entry.mapping,
            validation=ImportValidationOut(
                valid=entry.validation.valid,
                stats=entry.validation.stats,
                errors=entry.validation.errors,
                warnings=entry.validation.warnings,
            ),
            transform_issues=entry.warnings,
            patients_with_no_measures=entry.patients_with_no_measures,
            reassignments=entry.reassignments,
            created_at=entry.created_at,
            expires_at=entry.expires_at,
        )


class ImportExecutionStatsOut(BaseModel):
    inserted: int
    updated: int
    deleted: int
    skipped: int
    both_kept: int
    conflicts: int
    reassigned: int


class ChangeOutcomeOut(BaseModel):
    action: str
    status: str
    member_name: str
    request_type: str
    quality_measure: str
    source_row_index: int | None = None
    measure_id: int | None = None
    message: str | None = None


class ImportExecutionOut(BaseModel):
    success: bool
    mode: ImportMode
    stats: ImportExecutionStatsOut
    outcomes: list[ChangeOutcomeOut]
    errors: list[ChangeOutcomeOut]
    duration_ms: int

    @classmethod
    def from_result(cls, result: ExecutionResult) -> "ImportExecutionOut":
        return cls.model_validate(result.as_dict())
