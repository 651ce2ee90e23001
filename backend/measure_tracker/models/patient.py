from __future__ import annotations

from datetime import date

from sqlalchemy import Date, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from measure_tracker.models.base import Base, TimestampMixin


class Patient(Base, TimestampMixin):
    __tablename__ = "patients"
    __table_args__ = (
        UniqueConstraint("member_name", "member_dob", name="uq_patients_member_name_dob"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    member_name: Mapped[str] = mapped_column(String(200), nullable=False)
    member_dob: Mapped[date] = mapped_column(Date, nullable=False)
    member_telephone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    member_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)

    owner = relationship("User", back_populates="patients")
    measures = relationship(
        "PatientMeasure",
        back_populates="patient",
        cascade="all, delete-orphan",
        order_by="PatientMeasure.row_order",
    )
