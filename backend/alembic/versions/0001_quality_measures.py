"""quality measure schema

Revision ID: 0001_quality_measures
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_quality_measures"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("display_name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "patients",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("member_name", sa.String(length=200), nullable=False),
        sa.Column("member_dob", sa.Date(), nullable=False),
        sa.Column("member_telephone", sa.String(length=50), nullable=True),
        sa.Column("member_address", sa.Text(), nullable=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("member_name", "member_dob", name="uq_patients_member_name_dob"),
    )
    op.create_index("ix_patients_owner_id", "patients", ["owner_id"])

    op.create_table(
        "patient_measures",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "patient_id",
            sa.Integer(),
            sa.ForeignKey("patients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("request_type", sa.String(length=50), nullable=True),
        sa.Column("quality_measure", sa.String(length=120), nullable=True),
        sa.Column("measure_status", sa.String(length=200), nullable=True),
        sa.Column("status_date", sa.Date(), nullable=True),
        sa.Column("row_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_duplicate", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_patient_measures_patient_id", "patient_measures", ["patient_id"])
    op.create_index(
        "ix_patient_measures_identity",
        "patient_measures",
        ["patient_id", "request_type", "quality_measure"],
    )


def downgrade() -> None:
    op.drop_index("ix_patient_measures_identity", table_name="patient_measures")
    op.drop_index("ix_patient_measures_patient_id", table_name="patient_measures")
    op.drop_table("patient_measures")
    op.drop_index("ix_patients_owner_id", table_name="patients")
    op.drop_table("patients")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
