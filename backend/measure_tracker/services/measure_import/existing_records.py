from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from measure_tracker.models.patient import Patient
from measure_tracker.models.patient_measure import PatientMeasure
from measure_tracker.models.user import User
from measure_tracker.services.measure_import.types import ExistingRecord


def load_existing_records(
    session: Session,
    owner_id: int | None = None,
    all_owners: bool = True,
) -> list[ExistingRecord]:
    stmt = (
        select(PatientMeasure, Patient, User.display_name)
        .join(Patient, PatientMeasure.patient_id == Patient.id)
        .outerjoin(User, Patient.owner_id == User.id)
        .order_by(Patient.id, PatientMeasure.row_order, PatientMeasure.id)
    )
    if not all_owners:
        if owner_id is None:
            stmt = stmt.where(Patient.owner_id.is_(None))
        else:
            stmt = stmt.where(Patient.owner_id == owner_id)

    records: list[ExistingRecord] = []
    for measure, patient, owner_name in session.execute(stmt).all():
        records.append(
            ExistingRecord(
                patient_id=patient.id,
                measure_id=measure.id,
                member_name=patient.member_name,
                member_dob=patient.member_dob.isoformat(),
                member_telephone=patient.member_telephone,
                member_address=patient.member_address,
                request_type=measure.request_type,
                quality_measure=measure.quality_measure,
                measure_status=measure.measure_status,
                owner_id=patient.owner_id,
                owner_name=owner_name,
            )
        )
    return records
