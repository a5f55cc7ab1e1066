"""
Schemas para Appointment: citas y cierre de cita con datos médicos.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.appointment import AppointmentStatus
from app.schemas.formula import ToothEntry


# ── CRUD de Citas ────────────────────────────────────

class AppointmentCreate(BaseModel):
    scheduled_at: datetime
    doctor_id: UUID
    client_id: UUID
    duration_minutes: int | None = Field(
        None, ge=5, le=480, description="Por defecto 30 minutos"
    )
    comment: str | None = Field(None, max_length=2000)


class AppointmentUpdate(BaseModel):
    """Solo campos no ligados al ciclo de vida; el estado cambia por sus endpoints."""
    scheduled_at: datetime | None = None
    doctor_id: UUID | None = None
    duration_minutes: int | None = Field(None, ge=5, le=480)
    comment: str | None = Field(None, max_length=2000)


class AppointmentComplete(BaseModel):
    """Datos médicos registrados por el doctor al completar la cita."""
    complaint_id: UUID | None = None
    custom_complaint: str | None = Field(None, max_length=2000)
    anamnesis: str | None = Field(None, max_length=10000)
    diagnosis_id: UUID | None = None
    treatment_id: UUID | None = None
    comment: str | None = Field(None, max_length=2000)
    client_id: UUID = Field(..., description="Paciente dueño de la fórmula a actualizar")
    teeth_numbers: list[int] | None = Field(
        None, description="Piezas tratadas (1-32, sin repetir)"
    )
    formula: list[ToothEntry] | None = Field(
        None, description="Delta: solo piezas/regiones tocadas en la visita"
    )


class AppointmentResponse(BaseModel):
    id: UUID
    scheduled_at: datetime
    doctor_id: UUID
    client_id: UUID
    duration_minutes: int
    status: AppointmentStatus

    complaint_id: UUID | None = None
    custom_complaint: str | None = None
    anamnesis: str | None = None
    diagnosis_id: UUID | None = None
    treatment_id: UUID | None = None
    comment: str | None = None
    teeth_numbers: list[int] | None = None
    formula: list[ToothEntry] | None = None

    completed_at: datetime | None = None
    canceled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Respuesta paginada de listado de citas."""
    items: list[AppointmentResponse]
    total: int
    page: int
    size: int
    pages: int
