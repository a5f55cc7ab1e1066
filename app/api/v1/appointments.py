"""
Endpoints de citas: CRUD, cambio de estado y cierre con datos médicos.
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import require_permission
from app.database import get_db
from app.models.appointment import AppointmentStatus
from app.models.user import User
from app.schemas.appointment import (
    AppointmentComplete,
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentUpdate,
)
from app.services import appointment_service

router = APIRouter()


def _get_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


# ── Consultas ────────────────────────────────────────

@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: AppointmentStatus | None = Query(None, description="Filtrar por estado"),
    user: User = Depends(require_permission("appointment", "read")),
    db: AsyncSession = Depends(get_db),
):
    """Lista citas con paginación, opcionalmente filtradas por estado."""
    return await appointment_service.list_appointments(
        db, page=page, size=size, status=status
    )


@router.get("/doctor/{doctor_id}", response_model=list[AppointmentResponse])
async def list_doctor_appointments(
    doctor_id: UUID,
    date_from: date | None = Query(None, description="Desde fecha (YYYY-MM-DD)"),
    date_to: date | None = Query(None, description="Hasta fecha (YYYY-MM-DD)"),
    user: User = Depends(require_permission("appointment", "read")),
    db: AsyncSession = Depends(get_db),
):
    """Agenda de un doctor en un rango de fechas."""
    return await appointment_service.list_doctor_appointments(
        db, doctor_id, date_from=date_from, date_to=date_to
    )


@router.get("/client/{client_id}", response_model=list[AppointmentResponse])
async def list_client_appointments(
    client_id: UUID,
    user: User = Depends(require_permission("appointment", "read")),
    db: AsyncSession = Depends(get_db),
):
    """Historial de citas de un paciente."""
    return await appointment_service.list_client_appointments(db, client_id)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: UUID,
    user: User = Depends(require_permission("appointment", "read")),
    db: AsyncSession = Depends(get_db),
):
    return await appointment_service.get_appointment(db, appointment_id)


# ── CRUD ─────────────────────────────────────────────

@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    request: Request,
    user: User = Depends(require_permission("appointment", "create")),
    db: AsyncSession = Depends(get_db),
):
    """Agenda una cita. La duración por defecto es de 30 minutos."""
    return await appointment_service.create_appointment(
        db, user=user, data=data, ip_address=_get_client_ip(request)
    )


@router.put("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    request: Request,
    user: User = Depends(require_permission("appointment", "update")),
    db: AsyncSession = Depends(get_db),
):
    """Reprograma o edita una cita que aún no está cerrada."""
    return await appointment_service.update_appointment(
        db, appointment_id, user=user, data=data, ip_address=_get_client_ip(request)
    )


@router.delete("/{appointment_id}", status_code=204)
async def delete_appointment(
    appointment_id: UUID,
    request: Request,
    user: User = Depends(require_permission("appointment", "delete")),
    db: AsyncSession = Depends(get_db),
):
    await appointment_service.delete_appointment(
        db, appointment_id, user=user, ip_address=_get_client_ip(request)
    )


# ── Cambios de estado ────────────────────────────────

@router.post("/{appointment_id}/start", response_model=AppointmentResponse)
async def start_appointment(
    appointment_id: UUID,
    request: Request,
    user: User = Depends(require_permission("appointment", "start")),
    db: AsyncSession = Depends(get_db),
):
    """Marca la cita como en curso (scheduled → in_progress)."""
    return await appointment_service.start_appointment(
        db, appointment_id, user=user, ip_address=_get_client_ip(request)
    )


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: UUID,
    request: Request,
    user: User = Depends(require_permission("appointment", "cancel")),
    db: AsyncSession = Depends(get_db),
):
    return await appointment_service.cancel_appointment(
        db, appointment_id, user=user, ip_address=_get_client_ip(request)
    )


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_appointment(
    appointment_id: UUID,
    data: AppointmentComplete,
    request: Request,
    user: User = Depends(require_permission("appointment", "complete")),
    db: AsyncSession = Depends(get_db),
):
    """
    Completa la cita con los datos médicos de la visita.

    El campo `formula` es un delta: solo las piezas y regiones tocadas.
    Se combina con la fórmula del paciente en la misma transacción.
    """
    return await appointment_service.complete_appointment(
        db, appointment_id, user=user, data=data, ip_address=_get_client_ip(request)
    )
