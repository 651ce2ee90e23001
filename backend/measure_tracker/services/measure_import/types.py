from __future__ import annotations

import enum
from datetime import datetime
from typing import Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field

STATUS_DATE_FIELD = "statusDate"
COMPLIANCE_STATUS_FIELD = "complianceStatus"

MeasureField = Literal["statusDate", "complianceStatus"]
Severity = Literal["error", "warning"]


class ImportMode(str, enum.Enum):
    replace = "replace"
    merge = "merge"


class DiffAction(str, enum.Enum):
    insert = "INSERT"
    update = "UPDATE"
    skip = "SKIP"
    both = "BOTH"
    delete = "DELETE"


class ComplianceCategory(str, enum.Enum):
    compliant = "compliant"
    non_compliant = "non-compliant"
    unknown = "unknown"


class MeasureSlot(NamedTuple):
    request_type: str
    quality_measure: str


class PatientKey(NamedTuple):
    member_name: str
    member_dob: str | None


class MeasureKey(NamedTuple):
    """Identity of one patient measure: exact, case-sensitive, no trimming."""

    member_name: str
    member_dob: str | None
    request_type: str | None
    quality_measure: str | None

    @property
    def patient(self) -> PatientKey:
        return PatientKey(self.member_name, self.member_dob)

    def as_legacy_string(self) -> str:
        return "|".join(
            "null" if part is None else part
            for part in (self.member_name, self.member_dob, self.request_type, self.quality_measure)
        )


class MeasureInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    request_type: str
    quality_measure: str

    @property
    def slot(self) -> MeasureSlot:
        return MeasureSlot(self.request_type, self.quality_measure)


class ColumnMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_column: str
    target_field: str
    column_type: Literal["patient", "measure"]
    measure_info: MeasureInfo | None = None


class MappingStats(BaseModel):
    total: int = 0
    mapped: int = 0
    skipped: int = 0
    unmapped: int = 0


class MappingResult(BaseModel):
    mapped_columns: list[ColumnMapping] = Field(default_factory=list)
    skipped_columns: list[str] = Field(default_factory=list)
    unmapped_columns: list[str] = Field(default_factory=list)
    missing_required: list[str] = Field(default_factory=list)
    stats: MappingStats = Field(default_factory=MappingStats)


class MeasureColumnGroup(BaseModel):
    request_type: str
    quality_measure: str
    q1_columns: list[str] = Field(default_factory=list)
    q2_columns: list[str] = Field(default_factory=list)


class TransformedRow(BaseModel):
    member_name: str
    member_dob: str | None = None
    member_telephone: str | None = None
    member_address: str | None = None
    request_type: str
    quality_measure: str
    measure_status: str | None = None
    status_date: str | None = None
    source_row_index: int
    source_measure_column: str = ""

    @property
    def key(self) -> MeasureKey:
        return MeasureKey(self.member_name, self.member_dob, self.request_type, self.quality_measure)

    @property
    def patient_key(self) -> PatientKey:
        return PatientKey(self.member_name, self.member_dob)


class TransformIssue(BaseModel):
    row_index: int
    column: str | None = None
    message: str
    value: str | None = None
    severity: Severity = "error"


class PatientWithNoMeasures(BaseModel):
    row_index: int
    member_name: str
    member_dob: str | None = None


class TransformStats(BaseModel):
    input_rows: int = 0
    output_rows: int = 0
    error_count: int = 0
    warning_count: int = 0
    measures_per_patient: int = 0
    patients_with_no_measures: int = 0


class TransformResult(BaseModel):
    rows: list[TransformedRow] = Field(default_factory=list)
    issues: list[TransformIssue] = Field(default_factory=list)
    patients_with_no_measures: list[PatientWithNoMeasures] = Field(default_factory=list)
    mapping: MappingResult
    data_start_row: int = 2
    stats: TransformStats = Field(default_factory=TransformStats)

    @property
    def errors(self) -> list[TransformIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[TransformIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]


class ExistingRecord(BaseModel):
    patient_id: int
    measure_id: int
    member_name: str
    member_dob: str
    member_telephone: str | None = None
    member_address: str | None = None
    request_type: str | None = None
    quality_measure: str | None = None
    measure_status: str | None = None
    owner_id: int | None = None
    owner_name: str | None = None

    @property
    def key(self) -> MeasureKey:
        return MeasureKey(self.member_name, self.member_dob, self.request_type, self.quality_measure)

    @property
    def patient_key(self) -> PatientKey:
        return PatientKey(self.member_name, self.member_dob)


class DiffChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: DiffAction
    member_name: str
    member_dob: str | None = None
    member_telephone: str | None = None
    member_address: str | None = None
    request_type: str
    quality_measure: str
    old_status: str | None = None
    new_status: str | None = None
    status_date: str | None = None
    reason: str
    existing_patient_id: int | None = None
    existing_measure_id: int | None = None
    source_row_index: int | None = None

    @property
    def key(self) -> MeasureKey:
        return MeasureKey(self.member_name, self.member_dob, self.request_type, self.quality_measure)


class DiffSummary(BaseModel):
    inserts: int = 0
    updates: int = 0
    skips: int = 0
    duplicates: int = 0
    deletes: int = 0

    def record(self, action: DiffAction) -> None:
        if action == DiffAction.insert:
            self.inserts += 1
        elif action == DiffAction.update:
            self.updates += 1
        elif action == DiffAction.skip:
            self.skips += 1
        elif action == DiffAction.both:
            self.duplicates += 1
        elif action == DiffAction.delete:
            self.deletes += 1

    @property
    def total(self) -> int:
        return self.inserts + self.updates + self.skips + self.duplicates + self.deletes


class DiffResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: ImportMode
    summary: DiffSummary
    changes: list[DiffChange]
    new_patients: int = 0
    existing_patients: int = 0
    generated_at: datetime


class PatientReassignment(BaseModel):
    patient_id: int
    member_name: str
    member_dob: str
    current_owner_id: int | None = None
    current_owner_name: str | None = None
    new_owner_id: int | None = None
