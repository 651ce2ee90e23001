from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Sequence

from measure_tracker.services.measure_import.column_mapper import (
    get_patient_column_mappings,
    group_measure_columns,
    map_columns,
)
from measure_tracker.services.measure_import.config_loader import SystemConfig
from measure_tracker.services.measure_import.date_parser import parse_date, to_iso_date_string
from measure_tracker.services.measure_import.errors import MalformedRowError
from measure_tracker.services.measure_import.status import normalize_status
from measure_tracker.services.measure_import.types import (
    ColumnMapping,
    MeasureColumnGroup,
    PatientKey,
    PatientWithNoMeasures,
    TransformedRow,
    TransformIssue,
    TransformResult,
    TransformStats,
)

logger = logging.getLogger(__name__)

DEFAULT_NON_COMPLIANT_STATUS = "Not Addressed"

NON_COMPLIANT_VALUES = frozenset({"non compliant", "non-compliant", "noncompliant", "nc", "no"})
COMPLIANT_VALUES = frozenset({"compliant", "c", "yes"})

_PATIENT_FIELDS = {
    "memberName": "member_name",
    "memberDob": "member_dob",
    "memberTelephone": "member_telephone",
    "memberAddress": "member_address",
}

_NON_DIGIT_RE = re.compile(r"\D")


@dataclass
class _PatientData:
    member_name: str = ""
    member_dob: str | None = None
    member_telephone: str | None = None
    member_address: str | None = None
    extra: dict[str, str | None] = field(default_factory=dict)


def transform_rows(
    headers: Sequence[str],
    rows: Iterable[Mapping[str, Any]],
    config: SystemConfig,
    *,
    data_start_row: int = 2,
    import_date: date | None = None,
) -> TransformResult:
    mapping = map_columns(headers, config)
    patient_mappings = get_patient_column_mappings(mapping.mapped_columns)
    measure_groups = group_measure_columns(mapping.mapped_columns)
    import_date_iso = (import_date or date.today()).isoformat()

    output: list[TransformedRow] = []
    issues: list[TransformIssue] = []
    no_measures: list[PatientWithNoMeasures] = []
    input_rows = 0

    for row_index, row in enumerate(rows):
        input_rows += 1
        if not isinstance(row, Mapping):
            raise MalformedRowError(row_index, f"expected a header mapping, got {type(row).__name__}")
        # Mapped source columns are trimmed header names.
        row = {str(key).strip(): value for key, value in row.items() if key is not None}

        patient = _extract_patient_data(row, patient_mappings, row_index, issues)
        if not patient.member_name:
            issues.append(
                TransformIssue(
                    row_index=row_index,
                    column="Patient",
                    message="Missing required patient name",
                    severity="error",
                )
            )
            continue

        generated = 0
        for group in measure_groups.values():
            measure_row = _transform_measure_group(
                row, patient, group, config, row_index, import_date_iso, issues
            )
            if measure_row is not None:
                output.append(measure_row)
                generated += 1

        if generated == 0:
            no_measures.append(
                PatientWithNoMeasures(
                    row_index=row_index,
                    member_name=patient.member_name,
                    member_dob=patient.member_dob,
                )
            )

    stats = TransformStats(
        input_rows=input_rows,
        output_rows=len(output),
        error_count=sum(1 for issue in issues if issue.severity == "error"),
        warning_count=sum(1 for issue in issues if issue.severity == "warning"),
        measures_per_patient=len(measure_groups),
        patients_with_no_measures=len(no_measures),
    )
    logger.info(
        "Measure import rows transformed",
        extra={
            "input_rows": stats.input_rows,
            "output_rows": stats.output_rows,
            "error_count": stats.error_count,
        },
    )
    return TransformResult(
        rows=output,
        issues=issues,
        patients_with_no_measures=no_measures,
        mapping=mapping,
        data_start_row=data_start_row,
        stats=stats,
    )


def _cell(row: Mapping[str, Any], column: str) -> str | None:
    value = row.get(column)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _extract_patient_data(
    row: Mapping[str, Any],
    patient_mappings: list[ColumnMapping],
    row_index: int,
    issues: list[TransformIssue],
) -> _PatientData:
    data = _PatientData()
    for mapping in patient_mappings:
        raw = row.get(mapping.source_column)
        attr = _PATIENT_FIELDS.get(mapping.target_field)

        if attr == "member_dob":
            parsed = parse_date(raw)
            if parsed.date is not None:
                data.member_dob = to_iso_date_string(parsed.date)
            elif parsed.is_invalid:
                issues.append(
                    TransformIssue(
                        row_index=row_index,
                        column=mapping.source_column,
                        message=f"Invalid date format: {raw}",
                        value=str(raw),
                        severity="error",
                    )
                )
        elif attr == "member_telephone":
            data.member_telephone = normalize_phone(raw)
        elif attr is not None:
            setattr(data, attr, _cell(row, mapping.source_column) or ("" if attr == "member_name" else None))
        else:
            data.extra[mapping.target_field] = _cell(row, mapping.source_column)
    return data


def _transform_measure_group(
    row: Mapping[str, Any],
    patient: _PatientData,
    group: MeasureColumnGroup,
    config: SystemConfig,
    row_index: int,
    import_date_iso: str,
    issues: list[TransformIssue],
) -> TransformedRow | None:
    q2_values: list[str] = []
    primary_q2_column: str | None = None
    for column in group.q2_columns:
        value = _cell(row, column)
        if value:
            q2_values.append(value)
            if primary_q2_column is None:
                primary_q2_column = column

    q1_column: str | None = None
    q1_value: str | None = None
    for column in group.q1_columns:
        value = _cell(row, column)
        if value:
            q1_column, q1_value = column, value
            break

    if q1_value is None and not q2_values:
        return None

    measure_status = resolve_measure_status(q2_values, group.quality_measure, config)

    status_date: str | None = None
    if q1_value is not None:
        parsed = parse_date(q1_value)
        status_date = to_iso_date_string(parsed.date)
        if status_date is None:
            issues.append(
                TransformIssue(
                    row_index=row_index,
                    column=q1_column,
                    message=f"Invalid status date: {q1_value}",
                    value=q1_value,
                    severity="warning",
                )
            )
    elif measure_status:
        status_date = import_date_iso

    return TransformedRow(
        member_name=patient.member_name,
        member_dob=patient.member_dob,
        member_telephone=patient.member_telephone,
        member_address=patient.member_address,
        request_type=group.request_type,
        quality_measure=group.quality_measure,
        measure_status=measure_status,
        status_date=status_date,
        source_row_index=row_index,
        source_measure_column=primary_q2_column or (group.q1_columns[0] if group.q1_columns else ""),
    )


def resolve_measure_status(
    q2_values: Sequence[str], quality_measure: str, config: SystemConfig
) -> str | None:
    """Reduce the compliance cells feeding one measure to a single status.

    Any non-compliant cell wins over compliant ones. Cells that are neither
    are passed through verbatim (first one wins).
    """
    normalized = [normalize_status(value) for value in q2_values]
    mapping = config.status_mapping.get(quality_measure)

    if any(value in NON_COMPLIANT_VALUES for value in normalized):
        return mapping.non_compliant if mapping else DEFAULT_NON_COMPLIANT_STATUS
    if any(value in COMPLIANT_VALUES for value in normalized):
        return mapping.compliant if mapping else None
    if q2_values:
        return q2_values[0]
    return None


def normalize_phone(value: Any) -> str | None:
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    digits = _NON_DIGIT_RE.sub("", raw)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return raw


def get_unique_patients(rows: Iterable[TransformedRow]) -> dict[PatientKey, TransformedRow]:
    patients: dict[PatientKey, TransformedRow] = {}
    for row in rows:
        patients.setdefault(row.patient_key, row)
    return patients


def group_by_patient(rows: Iterable[TransformedRow]) -> dict[PatientKey, list[TransformedRow]]:
    grouped: dict[PatientKey, list[TransformedRow]] = {}
    for row in rows:
        grouped.setdefault(row.patient_key, []).append(row)
    return grouped
