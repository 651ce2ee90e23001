from measure_tracker.models.base import Base
from measure_tracker.models.user import User
from measure_tracker.models.patient import Patient
from measure_tracker.models.patient_measure import PatientMeasure

__all__ = [
    "Base",
    "User",
    "Patient",
    "PatientMeasure",
]
