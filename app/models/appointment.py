"""
Modelo Appointment: Citas con state machine de estados.

Estados válidos y transiciones:
    scheduled → in_progress → completed
    scheduled → completed
    scheduled → canceled
    in_progress → canceled

completed y canceled son terminales y mutuamente excluyentes.
Los campos médicos solo se llenan al completar la cita y desde
ese momento son historia inmutable de la visita.
`version_id` evita que dos cierres concurrentes de la misma cita se
pisen: el segundo falla con StaleDataError.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class AppointmentStatus(str, enum.Enum):
    """Estados de una cita."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"


# ── Transiciones válidas de la state machine ─────────
VALID_TRANSITIONS: dict[AppointmentStatus, list[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: [
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELED,
    ],
    AppointmentStatus.IN_PROGRESS: [
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELED,
    ],
    # Estados terminales: no tienen transiciones
    AppointmentStatus.COMPLETED: [],
    AppointmentStatus.CANCELED: [],
}

TERMINAL_STATUSES = frozenset(
    s for s, targets in VALID_TRANSITIONS.items() if not targets
)


def is_valid_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    """Verifica si una transición de estado es válida."""
    return new in VALID_TRANSITIONS.get(current, [])


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )

    # ── Datos de la cita ─────────────────────────────
    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus),
        nullable=False,
        default=AppointmentStatus.SCHEDULED,
    )

    # ── Datos médicos (se llenan al completar) ───────
    complaint_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("complaints.id")
    )
    custom_complaint: Mapped[str | None] = mapped_column(Text)
    anamnesis: Mapped[str | None] = mapped_column(Text)
    diagnosis_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("statuses.id")
    )
    treatment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("statuses.id")
    )
    comment: Mapped[str | None] = mapped_column(String(2000))
    teeth_numbers: Mapped[list[int] | None] = mapped_column(
        JSON, comment="Piezas tratadas en la visita"
    )
    formula: Mapped[list[dict] | None] = mapped_column(
        JSON, comment="Delta de odontograma registrado en ESTA visita (no el acumulado)"
    )

    # ── Metadata de cierre ───────────────────────────
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Timestamps ───────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # ── Índices para consultas frecuentes ────────────
    __table_args__ = (
        Index("idx_appointment_doctor_date", "doctor_id", "scheduled_at"),
        Index("idx_appointment_client", "client_id", "scheduled_at"),
        Index("idx_appointment_status", "status"),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<Appointment {self.id} [{self.status.value}] {self.scheduled_at}>"
