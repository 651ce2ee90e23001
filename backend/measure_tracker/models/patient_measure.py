from __future__ import annotations

from datetime import date

from sqlalchemy import Boolean, Date, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from measure_tracker.models.base import Base, TimestampMixin


class PatientMeasure(Base, TimestampMixin):
    __tablename__ = "patient_measures"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(
        ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    request_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    quality_measure: Mapped[str | None] = mapped_column(String(120), nullable=True)
    measure_status: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    row_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_duplicate: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    patient = relationship("Patient", back_populates="measures")
