from __future__ import annotations

import re
from datetime import date
from typing import Iterable, Sequence

from pydantic import BaseModel, Field

from measure_tracker.services.measure_import.types import MeasureKey, Severity, TransformedRow

VALID_REQUEST_TYPES: tuple[str, ...] = ("AWV", "Quality", "Screening", "Chronic DX")

VALID_QUALITY_MEASURES: dict[str, tuple[str, ...]] = {
    "AWV": ("Annual Wellness Visit",),
    "Chronic DX": ("Chronic Diagnosis Code",),
    "Quality": (
        "Diabetic Eye Exam",
        "Diabetes Control",
        "Diabetic Nephropathy",
        "GC/Chlamydia Screening",
        "Hypertension Management",
        "ACE/ARB in DM or CAD",
        "Vaccination",
        "Annual Serum K&Cr",
    ),
    "Screening": (
        "Breast Cancer Screening",
        "Colon Cancer Screening",
        "Cervical Cancer Screening",
    ),
}

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ValidationIssue(BaseModel):
    row_index: int
    field: str
    message: str
    value: str | None = None
    severity: Severity
    member_name: str | None = None


class DuplicateGroup(BaseModel):
    key: MeasureKey
    rows: list[int]
    patient: str
    measure: str


class ValidationStats(BaseModel):
    total_rows: int = 0
    valid_rows: int = 0
    error_rows: int = 0
    warning_rows: int = 0
    duplicate_groups: int = 0


class ValidationResult(BaseModel):
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    duplicates: list[DuplicateGroup] = Field(default_factory=list)
    stats: ValidationStats = Field(default_factory=ValidationStats)


def is_valid_iso_date(value: str) -> bool:
    if not _ISO_DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def validate_row(row: TransformedRow) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    row_index = row.source_row_index
    has_name = bool(row.member_name and row.member_name.strip())
    member_name = row.member_name if has_name else "Unknown"

    def add(field: str, message: str, severity: Severity, value: str | None = None) -> None:
        issues.append(
            ValidationIssue(
                row_index=row_index,
                field=field,
                message=message,
                value=value,
                severity=severity,
                member_name=member_name,
            )
        )

    if not has_name:
        add("memberName", "Member name is required", "error")

    if not row.member_dob:
        add("memberDob", "Date of birth is required", "error")
    elif not is_valid_iso_date(row.member_dob):
        add("memberDob", "Invalid date of birth format", "error", row.member_dob)

    request_type = row.request_type
    if not request_type or not request_type.strip():
        add("requestType", "Request type is required", "error")
    elif request_type not in VALID_REQUEST_TYPES:
        add("requestType", f"Invalid request type: {request_type}", "error", request_type)

    quality_measure = row.quality_measure
    if not quality_measure or not quality_measure.strip():
        add("qualityMeasure", "Quality measure is required", "error")
    elif request_type in VALID_REQUEST_TYPES:
        # Catalog drift between configs is tolerated, so this is only a warning.
        if quality_measure not in VALID_QUALITY_MEASURES.get(request_type, ()):
            add(
                "qualityMeasure",
                f'Invalid quality measure "{quality_measure}" for request type "{request_type}"',
                "warning",
                quality_measure,
            )

    if not row.measure_status:
        add("measureStatus", 'Measure status is empty - will be set to "Not Addressed"', "warning")

    if not row.member_telephone:
        add("memberTelephone", "Phone number is missing", "warning")

    return issues


def find_duplicates(rows: Iterable[TransformedRow]) -> list[DuplicateGroup]:
    groups: dict[MeasureKey, list[int]] = {}
    for row in rows:
        source_rows = groups.setdefault(row.key, [])
        if row.source_row_index not in source_rows:
            source_rows.append(row.source_row_index)

    return [
        DuplicateGroup(
            key=key,
            rows=source_rows,
            patient=key.member_name,
            measure=key.quality_measure or "",
        )
        for key, source_rows in groups.items()
        if len(source_rows) > 1
    ]


def validate_rows(rows: Sequence[TransformedRow]) -> ValidationResult:
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    rows_with_errors: set[int] = set()
    rows_with_warnings: set[int] = set()
    reported_errors: set[tuple[int, str]] = set()
    reported_warnings: set[tuple[int, str]] = set()

    for row in rows:
        for issue in validate_row(row):
            dedup_key = (issue.row_index, issue.field)
            if issue.severity == "error":
                if dedup_key in reported_errors:
                    continue
                reported_errors.add(dedup_key)
                errors.append(issue)
                rows_with_errors.add(issue.row_index)
            else:
                if dedup_key in reported_warnings:
                    continue
                reported_warnings.add(dedup_key)
                warnings.append(issue)
                rows_with_warnings.add(issue.row_index)

    duplicates = find_duplicates(rows)
    for group in duplicates:
        for row_index in group.rows[1:]:
            dedup_key = (row_index, f"duplicate|{group.measure}")
            if dedup_key in reported_warnings:
                continue
            reported_warnings.add(dedup_key)
            warnings.append(
                ValidationIssue(
                    row_index=row_index,
                    field="duplicate",
                    message="Duplicate entry: same patient + measure combination",
                    severity="warning",
                    member_name=group.patient,
                )
            )
            rows_with_warnings.add(row_index)

    return ValidationResult(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        duplicates=duplicates,
        stats=ValidationStats(
            total_rows=len(rows),
            valid_rows=len(rows) - len(rows_with_errors),
            error_rows=len(rows_with_errors),
            warning_rows=len(rows_with_warnings),
            duplicate_groups=len(duplicates),
        ),
    )


def get_validation_summary(result: ValidationResult) -> str:
    stats = result.stats
    lines = [
        f"Validation {'PASSED' if result.valid else 'FAILED'}",
        f"Total rows: {stats.total_rows}",
        f"Valid rows: {stats.valid_rows}",
    ]
    if stats.error_rows:
        lines.append(f"Rows with errors: {stats.error_rows}")
    if stats.warning_rows:
        lines.append(f"Rows with warnings: {stats.warning_rows}")
    if stats.duplicate_groups:
        lines.append(f"Duplicate groups: {stats.duplicate_groups}")
    return "\n".join(lines)
