from __future__ import annotations

from typing import Iterable

from measure_tracker.services.measure_import.config_loader import SystemConfig
from measure_tracker.services.measure_import.types import (
    COMPLIANCE_STATUS_FIELD,
    STATUS_DATE_FIELD,
    ColumnMapping,
    MappingResult,
    MappingStats,
    MeasureColumnGroup,
    MeasureField,
    MeasureInfo,
    MeasureSlot,
)

REQUIRED_PATIENT_COLUMNS: tuple[str, ...] = ("Patient", "DOB")

_SUFFIX_FIELDS: tuple[tuple[str, MeasureField], ...] = (
    (" Q1", STATUS_DATE_FIELD),
    (" Q2", COMPLIANCE_STATUS_FIELD),
)


def map_columns(headers: Iterable[str], config: SystemConfig) -> MappingResult:
    mapped: list[ColumnMapping] = []
    skipped: list[str] = []
    unmapped: list[str] = []
    found_patient_columns: set[str] = set()
    total = 0

    for header in headers:
        trimmed = (header or "").strip()
        if not trimmed:
            continue
        total += 1

        patient_field = config.patient_columns.get(trimmed)
        if patient_field:
            mapped.append(
                ColumnMapping(source_column=trimmed, target_field=patient_field, column_type="patient")
            )
            found_patient_columns.add(trimmed)
            continue

        if trimmed in config.skip_columns:
            skipped.append(trimmed)
            continue

        measure = _find_measure_mapping(trimmed, config)
        if measure is not None:
            field, info = measure
            mapped.append(
                ColumnMapping(
                    source_column=trimmed,
                    target_field=field,
                    column_type="measure",
                    measure_info=info,
                )
            )
            continue

        unmapped.append(trimmed)

    missing = [column for column in REQUIRED_PATIENT_COLUMNS if column not in found_patient_columns]

    return MappingResult(
        mapped_columns=mapped,
        skipped_columns=skipped,
        unmapped_columns=unmapped,
        missing_required=missing,
        stats=MappingStats(
            total=total,
            mapped=len(mapped),
            skipped=len(skipped),
            unmapped=len(unmapped),
        ),
    )


def _find_measure_mapping(
    header: str, config: SystemConfig
) -> tuple[MeasureField, MeasureInfo] | None:
    for suffix, field in _SUFFIX_FIELDS:
        if not header.endswith(suffix):
            continue
        measure = config.measure_columns.get(header[: -len(suffix)])
        if measure is not None:
            return field, MeasureInfo(
                request_type=measure.request_type,
                quality_measure=measure.quality_measure,
            )

    measure = config.measure_columns.get(header)
    if measure is not None:
        return COMPLIANCE_STATUS_FIELD, MeasureInfo(
            request_type=measure.request_type,
            quality_measure=measure.quality_measure,
        )
    return None


def get_patient_column_mappings(mappings: Iterable[ColumnMapping]) -> list[ColumnMapping]:
    return [mapping for mapping in mappings if mapping.column_type == "patient"]


def get_measure_column_mappings(mappings: Iterable[ColumnMapping]) -> list[ColumnMapping]:
    return [mapping for mapping in mappings if mapping.column_type == "measure"]


def group_measure_columns(
    mappings: Iterable[ColumnMapping],
) -> dict[MeasureSlot, MeasureColumnGroup]:
    grouped: dict[MeasureSlot, MeasureColumnGroup] = {}
    for mapping in get_measure_column_mappings(mappings):
        if mapping.measure_info is None:
            continue
        slot = mapping.measure_info.slot
        group = grouped.get(slot)
        if group is None:
            group = MeasureColumnGroup(
                request_type=slot.request_type,
                quality_measure=slot.quality_measure,
            )
            grouped[slot] = group
        if mapping.target_field == STATUS_DATE_FIELD:
            group.q1_columns.append(mapping.source_column)
        elif mapping.target_field == COMPLIANCE_STATUS_FIELD:
            group.q2_columns.append(mapping.source_column)
    return grouped
