"""initial clinic schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
from sqlalchemy import inspect
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


ROLE_ENUM = sa.Enum("student", "academic_staff", "doctor", "clinical_staff", "admin", name="role_enum")
APPOINTMENT_STATUS = sa.Enum(
    "pending",
    "under_review",
    "assigned",
    "scheduled",
    "confirmed",
    "waiting",
    "in_progress",
    "completed",
    "cancelled",
    "rejected",
    name="appointment_status",
)
APPOINTMENT_PRIORITY = sa.Enum("normal", "high", "urgent", name="appointment_priority")
RECORD_TYPE = sa.Enum("consultation", "vital_signs", "follow_up", "note", name="medical_record_type")
PRESCRIPTION_STATUS = sa.Enum("active", "completed", "cancelled", name="prescription_status")
MEDICATION_STATUS = sa.Enum("active", "completed", "discontinued", name="medication_status")
HOLIDAY_TYPE = sa.Enum("holiday", "exam_period", "break", "closure", name="holiday_type")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())

    if "users" not in tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("role", ROLE_ENUM, nullable=False, server_default="student"),
            sa.Column("profile", sa.JSON(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("hashed_password", sa.String(length=255), nullable=False),
            *_timestamps(),
            sa.UniqueConstraint("email"),
        )
        op.create_index("ix_users_email", "users", ["email"])

    if "appointments" not in tables:
        op.create_table(
            "appointments",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("patient_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("time", sa.Time(), nullable=False),
            sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="30"),
            sa.Column("type", sa.String(length=50), nullable=False, server_default="consultation"),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("specialization", sa.String(length=120), nullable=True),
            sa.Column("priority", APPOINTMENT_PRIORITY, nullable=False, server_default="normal"),
            sa.Column("status", APPOINTMENT_STATUS, nullable=False, server_default="pending"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("cancellation_reason", sa.Text(), nullable=True),
            sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completion_report", sa.JSON(), nullable=True),
            sa.Column("needs_reassignment", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        )
        op.create_index("ix_appointments_patient_id", "appointments", ["patient_id"])
        op.create_index("ix_appointments_doctor_id", "appointments", ["doctor_id"])
        op.create_index("ix_appointments_date", "appointments", ["date"])
        op.create_index("ix_appointments_status", "appointments", ["status"])

    if "medical_records" not in tables:
        op.create_table(
            "medical_records",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("patient_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column(
                "appointment_id",
                sa.Integer(),
                sa.ForeignKey("appointments.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("type", RECORD_TYPE, nullable=False, server_default="consultation"),
            sa.Column("diagnosis", sa.Text(), nullable=True),
            sa.Column("treatment", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("visit_date", sa.Date(), nullable=False),
            sa.Column("blood_pressure", sa.String(length=20), nullable=True),
            sa.Column("heart_rate", sa.Integer(), nullable=True),
            sa.Column("temperature", sa.Float(), nullable=True),
            sa.Column("respiratory_rate", sa.Integer(), nullable=True),
            sa.Column("oxygen_saturation", sa.Integer(), nullable=True),
            sa.Column("weight", sa.Float(), nullable=True),
            sa.Column("height", sa.Float(), nullable=True),
            sa.Column("bmi", sa.Float(), nullable=True),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_medical_records_patient_id", "medical_records", ["patient_id"])
        op.create_index("ix_medical_records_appointment_id", "medical_records", ["appointment_id"])

    if "prescriptions" not in tables:
        op.create_table(
            "prescriptions",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("patient_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column(
                "appointment_id",
                sa.Integer(),
                sa.ForeignKey("appointments.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("status", PRESCRIPTION_STATUS, nullable=False, server_default="active"),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_prescriptions_patient_id", "prescriptions", ["patient_id"])

    if "medications" not in tables:
        op.create_table(
            "medications",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column(
                "prescription_id",
                sa.Integer(),
                sa.ForeignKey("prescriptions.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("patient_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("dosage", sa.String(length=120), nullable=False),
            sa.Column("frequency", sa.String(length=120), nullable=False),
            sa.Column("instructions", sa.Text(), nullable=False),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("status", MEDICATION_STATUS, nullable=False, server_default="active"),
            *_timestamps(),
        )
        op.create_index("ix_medications_prescription_id", "medications", ["prescription_id"])
        op.create_index("ix_medications_patient_id", "medications", ["patient_id"])

    if "academic_holidays" not in tables:
        op.create_table(
            "academic_holidays",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=False),
            sa.Column("type", HOLIDAY_TYPE, nullable=False, server_default="holiday"),
            sa.Column("affects_staff_type", sa.String(length=50), nullable=False, server_default="all"),
            sa.Column("affected_departments", sa.JSON(), nullable=False),
            sa.Column("blocks_appointments", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
        op.create_index("ix_academic_holidays_start_date", "academic_holidays", ["start_date"])
        op.create_index("ix_academic_holidays_end_date", "academic_holidays", ["end_date"])

    if "staff_schedules" not in tables:
        op.create_table(
            "staff_schedules",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column(
                "user_id",
                sa.Integer(),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("department", sa.String(length=120), nullable=True),
            sa.Column("staff_type", sa.String(length=50), nullable=False),
            sa.Column("working_days", sa.JSON(), nullable=False),
            sa.Column("working_hours_start", sa.Time(), nullable=True),
            sa.Column("working_hours_end", sa.Time(), nullable=True),
            sa.Column("follows_academic_calendar", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.UniqueConstraint("user_id"),
        )

    if "audit_logs" not in tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("actor_email", sa.String(length=320), nullable=True),
            sa.Column("actor_role", sa.String(length=32), nullable=True),
            sa.Column("action", sa.String(length=80), nullable=False),
            sa.Column("entity_type", sa.String(length=50), nullable=False),
            sa.Column("entity_id", sa.String(length=64), nullable=False),
            sa.Column("request_id", sa.String(length=120), nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("before_json", sa.JSON(), nullable=True),
            sa.Column("after_json", sa.JSON(), nullable=True),
        )
        op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("ix_audit_logs_action", "audit_logs", ["action"])

    if "clinic_settings" not in tables:
        op.create_table(
            "clinic_settings",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("settings_data", sa.JSON(), nullable=False),
            sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            *_timestamps(),
        )


def downgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())

    for table in (
        "clinic_settings",
        "audit_logs",
        "staff_schedules",
        "academic_holidays",
        "medications",
        "prescriptions",
        "medical_records",
        "appointments",
        "users",
    ):
        if table in tables:
            op.drop_table(table)

    for enum_type in (
        HOLIDAY_TYPE,
        MEDICATION_STATUS,
        PRESCRIPTION_STATUS,
        RECORD_TYPE,
        APPOINTMENT_PRIORITY,
        APPOINTMENT_STATUS,
        ROLE_ENUM,
    ):
        enum_type.drop(bind, checkfirst=True)
