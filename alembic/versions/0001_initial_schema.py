"""initial schema: users, catalogs, formulas, appointments, audit log

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum("ADMIN", "DOCTOR", "RECEPTIONIST", "CLIENT", name="userrole")
status_type = sa.Enum("DIAGNOSIS", "TREATMENT", "TOOTH", name="statustype")
appointment_status = sa.Enum(
    "SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELED", name="appointmentstatus"
)


def upgrade() -> None:
    # ── Usuarios ─────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=True),
        sa.Column("role", user_role, nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("phone_number", sa.String(30), nullable=True),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("gender", sa.String(20), nullable=True),
        sa.Column("birth_date", sa.Date, nullable=True),
        sa.Column(
            "formula_id", sa.Uuid(), nullable=True,
            comment="Fórmula dental canónica del paciente",
        ),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # ── Catálogos ────────────────────────────────────
    op.create_table(
        "statuses",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("type", status_type, nullable=False),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "complaints",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── Fórmulas ─────────────────────────────────────
    op.create_table(
        "formulas",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("teeth", sa.JSON, nullable=False),
        sa.Column("version_id", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── Citas ────────────────────────────────────────
    op.create_table(
        "appointments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("doctor_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("client_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False, server_default="30"),
        sa.Column("status", appointment_status, nullable=False),
        sa.Column("complaint_id", sa.Uuid(), sa.ForeignKey("complaints.id"), nullable=True),
        sa.Column("custom_complaint", sa.Text, nullable=True),
        sa.Column("anamnesis", sa.Text, nullable=True),
        sa.Column("diagnosis_id", sa.Uuid(), sa.ForeignKey("statuses.id"), nullable=True),
        sa.Column("treatment_id", sa.Uuid(), sa.ForeignKey("statuses.id"), nullable=True),
        sa.Column("comment", sa.String(2000), nullable=True),
        sa.Column("teeth_numbers", sa.JSON, nullable=True),
        sa.Column("formula", sa.JSON, nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "idx_appointment_doctor_date", "appointments", ["doctor_id", "scheduled_at"]
    )
    op.create_index(
        "idx_appointment_client", "appointments", ["client_id", "scheduled_at"]
    )
    op.create_index("idx_appointment_status", "appointments", ["status"])

    # ── Auditoría ────────────────────────────────────
    op.create_table(
        "audit_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("entity", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("old_data", sa.JSON, nullable=True),
        sa.Column("new_data", sa.JSON, nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_audit_log_user_id", "audit_log", ["user_id"])
    op.create_index("ix_audit_log_entity", "audit_log", ["entity"])
    op.create_index("ix_audit_log_action", "audit_log", ["action"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("appointments")
    op.drop_table("formulas")
    op.drop_table("complaints")
    op.drop_table("statuses")
    op.drop_table("users")

    bind = op.get_bind()
    appointment_status.drop(bind, checkfirst=True)
    status_type.drop(bind, checkfirst=True)
    user_role.drop(bind, checkfirst=True)
