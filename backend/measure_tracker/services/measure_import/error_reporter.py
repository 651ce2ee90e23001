from __future__ import annotations

from typing import Literal, Sequence

from pydantic import BaseModel, Field

from measure_tracker.services.measure_import.types import TransformedRow
from measure_tracker.services.measure_import.validator import (
    DuplicateGroup,
    ValidationIssue,
    ValidationResult,
)

SAMPLES_PER_FIELD = 5
CONDENSED_ISSUE_LIMIT = 10
CONDENSED_DUPLICATE_LIMIT = 5

_RULE = "=" * 60
_SECTION_RULE = "-" * 60


class ReportSummary(BaseModel):
    status: Literal["success", "warning", "error"]
    message: str
    total_rows: int
    valid_rows: int
    error_count: int
    warning_count: int
    can_proceed: bool


class FieldIssueSummary(BaseModel):
    field: str
    error_count: int = 0
    warning_count: int = 0
    sample_errors: list[ValidationIssue] = Field(default_factory=list)


class RowIssueSummary(BaseModel):
    row_index: int
    patient_name: str
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)


class DuplicateReport(BaseModel):
    total_groups: int
    total_duplicate_rows: int
    groups: list[DuplicateGroup]


class ErrorReport(BaseModel):
    summary: ReportSummary
    errors_by_field: dict[str, FieldIssueSummary]
    errors_by_row: dict[int, RowIssueSummary]
    duplicate_report: DuplicateReport


class CondensedDuplicates(BaseModel):
    count: int
    groups: list[DuplicateGroup]


class CondensedReport(BaseModel):
    summary: ReportSummary
    top_errors: list[ValidationIssue]
    top_warnings: list[ValidationIssue]
    duplicates: CondensedDuplicates


def generate_error_report(
    validation: ValidationResult, rows: Sequence[TransformedRow]
) -> ErrorReport:
    return ErrorReport(
        summary=_build_summary(validation),
        errors_by_field=_group_by_field(validation),
        errors_by_row=_group_by_row(validation, rows),
        duplicate_report=_build_duplicate_report(validation.duplicates),
    )


def _build_summary(validation: ValidationResult) -> ReportSummary:
    stats = validation.stats
    error_count = len(validation.errors)
    warning_count = len(validation.warnings)

    if error_count == 0 and warning_count == 0:
        status = "success"
        message = f"All {stats.total_rows} rows passed validation."
    elif error_count == 0:
        status = "warning"
        message = (
            f"{stats.total_rows} rows validated with {warning_count} warning(s). "
            "Import can proceed."
        )
    else:
        status = "error"
        message = (
            f"Validation failed: {error_count} error(s) in {stats.error_rows} row(s). "
            "Please fix errors before importing."
        )

    return ReportSummary(
        status=status,
        message=message,
        total_rows=stats.total_rows,
        valid_rows=stats.valid_rows,
        error_count=error_count,
        warning_count=warning_count,
        can_proceed=error_count == 0,
    )


def _group_by_field(validation: ValidationResult) -> dict[str, FieldIssueSummary]:
    by_field: dict[str, FieldIssueSummary] = {}
    for issue in [*validation.errors, *validation.warnings]:
        summary = by_field.setdefault(issue.field, FieldIssueSummary(field=issue.field))
        if issue.severity == "error":
            summary.error_count += 1
        else:
            summary.warning_count += 1
        if len(summary.sample_errors) < SAMPLES_PER_FIELD:
            summary.sample_errors.append(issue)
    return by_field


def _group_by_row(
    validation: ValidationResult, rows: Sequence[TransformedRow]
) -> dict[int, RowIssueSummary]:
    names_by_source_row: dict[int, str] = {}
    for row in rows:
        names_by_source_row.setdefault(row.source_row_index, row.member_name)

    by_row: dict[int, RowIssueSummary] = {}
    for issue in [*validation.errors, *validation.warnings]:
        summary = by_row.get(issue.row_index)
        if summary is None:
            summary = RowIssueSummary(
                row_index=issue.row_index,
                patient_name=names_by_source_row.get(issue.row_index) or "Unknown",
            )
            by_row[issue.row_index] = summary
        if issue.severity == "error":
            summary.errors.append(issue)
        else:
            summary.warnings.append(issue)
    return by_row


def _build_duplicate_report(duplicates: Sequence[DuplicateGroup]) -> DuplicateReport:
    # The first row of each group is the original, the rest are duplicates.
    return DuplicateReport(
        total_groups=len(duplicates),
        total_duplicate_rows=sum(len(group.rows) - 1 for group in duplicates),
        groups=list(duplicates),
    )


def format_report_as_text(report: ErrorReport) -> str:
    summary = report.summary
    lines = [
        _RULE,
        "IMPORT VALIDATION REPORT",
        _RULE,
        "",
        f"Status: {summary.status.upper()}",
        summary.message,
        "",
        f"Total Rows: {summary.total_rows}",
        f"Valid Rows: {summary.valid_rows}",
        f"Errors: {summary.error_count}",
        f"Warnings: {summary.warning_count}",
        f"Can Proceed: {'Yes' if summary.can_proceed else 'No'}",
        "",
    ]

    if report.errors_by_field:
        lines.extend([_SECTION_RULE, "ERRORS BY FIELD", _SECTION_RULE])
        for field, field_summary in report.errors_by_field.items():
            lines.append(f"\n{field}:")
            lines.append(
                f"  Errors: {field_summary.error_count}, Warnings: {field_summary.warning_count}"
            )
            for issue in field_summary.sample_errors:
                lines.append(f"  - Row {issue.row_index + 1}: {issue.message}")
        lines.append("")

    duplicates = report.duplicate_report
    if duplicates.total_groups:
        lines.extend([_SECTION_RULE, "DUPLICATE ROWS", _SECTION_RULE])
        lines.append(f"Found {duplicates.total_groups} duplicate group(s)")
        lines.append(f"{duplicates.total_duplicate_rows} row(s) are duplicates")
        for group in duplicates.groups:
            lines.append(f"\n  {group.patient} - {group.measure}")
            lines.append(f"  Rows: {', '.join(str(row + 1) for row in group.rows)}")
        lines.append("")

    lines.append(_RULE)
    return "\n".join(lines)


def get_condensed_report(report: ErrorReport) -> CondensedReport:
    top_errors: list[ValidationIssue] = []
    top_warnings: list[ValidationIssue] = []
    for field_summary in report.errors_by_field.values():
        for issue in field_summary.sample_errors:
            if issue.severity == "error":
                top_errors.append(issue)
            else:
                top_warnings.append(issue)

    return CondensedReport(
        summary=report.summary,
        top_errors=top_errors[:CONDENSED_ISSUE_LIMIT],
        top_warnings=top_warnings[:CONDENSED_ISSUE_LIMIT],
        duplicates=CondensedDuplicates(
            count=report.duplicate_report.total_groups,
            groups=report.duplicate_report.groups[:CONDENSED_DUPLICATE_LIMIT],
        ),
    )
