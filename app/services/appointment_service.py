"""
Servicio de citas: CRUD, state machine y cierre de cita con datos médicos.

Al completar una cita, el delta de odontograma que registró el doctor se
combina con la fórmula canónica del paciente en la misma transacción que
cambia el estado de la cita.
"""

import logging
import math
from datetime import date, datetime, time, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from app.database import flush_changes
from app.models.appointment import (
    VALID_TRANSITIONS,
    Appointment,
    AppointmentStatus,
    is_valid_transition,
)
from app.models.catalog import Complaint, Status
from app.models.user import User
from app.schemas.appointment import (
    AppointmentComplete,
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentUpdate,
)
from app.schemas.formula import dump_teeth, find_invalid_tooth_numbers
from app.services import formula_service
from app.services.audit_service import log_action
from app.services.formula_merge import stamp_provenance
from app.services.user_service import get_client, get_doctor

logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────

async def _get_appointment_row(db: AsyncSession, appointment_id: UUID) -> Appointment:
    result = await db.execute(
        select(Appointment).where(Appointment.id == appointment_id)
    )
    appointment = result.scalar_one_or_none()
    if not appointment:
        raise NotFoundException("Cita")
    return appointment


def _check_transition(appointment: Appointment, new_status: AppointmentStatus) -> None:
    """Valida la transición con la state machine; un estado terminal es un conflicto."""
    if not is_valid_transition(appointment.status, new_status):
        valid = VALID_TRANSITIONS.get(appointment.status, [])
        raise ConflictException(
            f"No se puede cambiar de '{appointment.status.value}' a '{new_status.value}'. "
            f"Transiciones válidas: {', '.join(s.value for s in valid) or 'ninguna'}"
        )


def _validate_tooth_numbers(numbers: list[int], field: str) -> None:
    out_of_range, duplicates = find_invalid_tooth_numbers(numbers)
    if out_of_range:
        raise ValidationException(
            f"{field}: números de pieza fuera de rango (1-32): {out_of_range}"
        )
    if duplicates:
        raise ValidationException(f"{field}: números de pieza repetidos: {duplicates}")


async def _check_catalog_references(db: AsyncSession, data: AppointmentComplete) -> None:
    """
    Verifica que motivo, diagnóstico, tratamiento y cada estado del delta
    existan en los catálogos. Los estados del odontograma viven en JSON
    sin foreign key, así que esta es su única validación.
    """
    status_ids = {
        entry.status_id
        for tooth in data.formula or []
        for entry in tooth.statuses()
    }
    status_ids.update(i for i in (data.diagnosis_id, data.treatment_id) if i)

    if status_ids:
        result = await db.execute(select(Status.id).where(Status.id.in_(status_ids)))
        missing = status_ids - set(result.scalars().all())
        if missing:
            raise NotFoundException(
                "Estado",
                detail=f"Estados no encontrados: {sorted(str(i) for i in missing)}",
            )

    if data.complaint_id and await db.get(Complaint, data.complaint_id) is None:
        raise NotFoundException("Motivo de consulta")


async def _to_response(db: AsyncSession, appointment: Appointment) -> AppointmentResponse:
    await db.refresh(appointment)
    return AppointmentResponse.model_validate(appointment)


# ── CRUD ─────────────────────────────────────────────

async def create_appointment(
    db: AsyncSession,
    user: User,
    data: AppointmentCreate,
    ip_address: str | None = None,
) -> AppointmentResponse:
    """Agenda una cita entre un doctor y un paciente."""
    await get_doctor(db, data.doctor_id)
    await get_client(db, data.client_id)

    appointment = Appointment(
        doctor_id=data.doctor_id,
        client_id=data.client_id,
        scheduled_at=data.scheduled_at,
        duration_minutes=(
            data.duration_minutes
            or get_settings().DEFAULT_APPOINTMENT_DURATION_MINUTES
        ),
        status=AppointmentStatus.SCHEDULED,
        comment=data.comment,
    )
    db.add(appointment)
    await flush_changes(db)

    await log_action(
        db,
        user_id=user.id,
        entity="appointment",
        entity_id=str(appointment.id),
        action="create",
        new_data={
            "doctor_id": data.doctor_id,
            "client_id": data.client_id,
            "scheduled_at": data.scheduled_at,
        },
        ip_address=ip_address,
    )

    return await _to_response(db, appointment)


async def get_appointment(db: AsyncSession, appointment_id: UUID) -> AppointmentResponse:
    appointment = await _get_appointment_row(db, appointment_id)
    return AppointmentResponse.model_validate(appointment)


async def list_appointments(
    db: AsyncSession,
    *,
    page: int = 1,
    size: int = 20,
    status: AppointmentStatus | None = None,
) -> AppointmentListResponse:
    """Lista citas con paginación, más recientes primero."""
    query = select(Appointment)
    if status:
        query = query.where(Appointment.status == status)

    count_query = select(func.count()).select_from(
        query.with_only_columns(Appointment.id).subquery()
    )
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        query.order_by(Appointment.scheduled_at.desc())
        .offset((page - 1) * size)
        .limit(size)
    )
    result = await db.execute(query)

    return AppointmentListResponse(
        items=[AppointmentResponse.model_validate(a) for a in result.scalars().all()],
        total=total,
        page=page,
        size=size,
        pages=math.ceil(total / size) if total > 0 else 0,
    )


async def list_doctor_appointments(
    db: AsyncSession,
    doctor_id: UUID,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[AppointmentResponse]:
    """Agenda de un doctor, opcionalmente acotada por rango de fechas (inclusive)."""
    query = select(Appointment).where(Appointment.doctor_id == doctor_id)
    if date_from:
        start_dt = datetime.combine(date_from, time.min).replace(tzinfo=timezone.utc)
        query = query.where(Appointment.scheduled_at >= start_dt)
    if date_to:
        end_dt = datetime.combine(date_to, time.max).replace(tzinfo=timezone.utc)
        query = query.where(Appointment.scheduled_at <= end_dt)

    result = await db.execute(query.order_by(Appointment.scheduled_at))
    return [AppointmentResponse.model_validate(a) for a in result.scalars().all()]


async def list_client_appointments(
    db: AsyncSession, client_id: UUID
) -> list[AppointmentResponse]:
    """Historial de citas de un paciente, más recientes primero."""
    await get_client(db, client_id)
    result = await db.execute(
        select(Appointment)
        .where(Appointment.client_id == client_id)
        .order_by(Appointment.scheduled_at.desc())
    )
    return [AppointmentResponse.model_validate(a) for a in result.scalars().all()]


async def update_appointment(
    db: AsyncSession,
    appointment_id: UUID,
    user: User,
    data: AppointmentUpdate,
    ip_address: str | None = None,
) -> AppointmentResponse:
    """
    Reprograma o edita una cita. Horario, doctor y duración solo se
    pueden cambiar mientras la cita no esté cerrada; una cita completada
    no admite ningún cambio.
    """
    appointment = await _get_appointment_row(db, appointment_id)
    update_fields = data.model_dump(exclude_unset=True, exclude_none=True)

    if appointment.status == AppointmentStatus.COMPLETED or (
        appointment.is_terminal and set(update_fields) - {"comment"}
    ):
        raise ConflictException(
            f"No se puede editar una cita en estado '{appointment.status.value}'"
        )

    if "doctor_id" in update_fields:
        await get_doctor(db, update_fields["doctor_id"])

    old_data = {field: getattr(appointment, field) for field in update_fields}
    for field, value in update_fields.items():
        setattr(appointment, field, value)

    await flush_changes(db)

    await log_action(
        db,
        user_id=user.id,
        entity="appointment",
        entity_id=str(appointment.id),
        action="update",
        old_data=old_data,
        new_data=update_fields,
        ip_address=ip_address,
    )

    return await _to_response(db, appointment)


async def delete_appointment(
    db: AsyncSession,
    appointment_id: UUID,
    user: User,
    ip_address: str | None = None,
) -> None:
    """Elimina una cita. Las citas completadas son historia clínica y no se borran."""
    appointment = await _get_appointment_row(db, appointment_id)
    if appointment.status == AppointmentStatus.COMPLETED:
        raise ConflictException("No se puede eliminar una cita completada")

    old_data = {
        "status": appointment.status,
        "doctor_id": appointment.doctor_id,
        "client_id": appointment.client_id,
        "scheduled_at": appointment.scheduled_at,
    }
    await db.delete(appointment)
    await flush_changes(db)

    await log_action(
        db,
        user_id=user.id,
        entity="appointment",
        entity_id=str(appointment_id),
        action="delete",
        old_data=old_data,
        ip_address=ip_address,
    )


# ── State machine ────────────────────────────────────

async def _change_status(
    db: AsyncSession,
    appointment_id: UUID,
    user: User,
    new_status: AppointmentStatus,
    ip_address: str | None = None,
) -> AppointmentResponse:
    appointment = await _get_appointment_row(db, appointment_id)
    _check_transition(appointment, new_status)

    old_status = appointment.status.value
    appointment.status = new_status
    if new_status == AppointmentStatus.CANCELED:
        appointment.canceled_at = datetime.now(timezone.utc)

    await flush_changes(db)

    await log_action(
        db,
        user_id=user.id,
        entity="appointment",
        entity_id=str(appointment.id),
        action="status_change",
        old_data={"status": old_status},
        new_data={"status": new_status.value},
        ip_address=ip_address,
    )

    return await _to_response(db, appointment)


async def start_appointment(
    db: AsyncSession,
    appointment_id: UUID,
    user: User,
    ip_address: str | None = None,
) -> AppointmentResponse:
    return await _change_status(
        db, appointment_id, user, AppointmentStatus.IN_PROGRESS, ip_address
    )


async def cancel_appointment(
    db: AsyncSession,
    appointment_id: UUID,
    user: User,
    ip_address: str | None = None,
) -> AppointmentResponse:
    return await _change_status(
        db, appointment_id, user, AppointmentStatus.CANCELED, ip_address
    )


# ── Completar cita ───────────────────────────────────

async def complete_appointment(
    db: AsyncSession,
    appointment_id: UUID,
    user: User,
    data: AppointmentComplete,
    ip_address: str | None = None,
) -> AppointmentResponse:
    """
    Cierra la cita registrando los datos médicos de la visita.

    1. Valida números de pieza (1-32, sin repetir) antes de tocar la DB
    2. Solo citas scheduled / in_progress pueden completarse
    3. Motivo, diagnóstico, tratamiento y estados del delta deben existir
    4. El delta se marca con la cita y un timestamp único de la visita
    5. El delta se combina con la fórmula del paciente (o crea una nueva)
    6. La cita guarda solo el delta, no la fórmula acumulada

    Todo corre en la transacción de la request: si algo falla, ni la
    fórmula ni la cita quedan modificadas. Dos cierres simultáneos de la
    misma cita chocan en `version_id`: el segundo recibe 409.
    """
    if data.teeth_numbers:
        _validate_tooth_numbers(data.teeth_numbers, "teeth_numbers")
    if data.formula:
        _validate_tooth_numbers([t.number for t in data.formula], "formula")

    appointment = await _get_appointment_row(db, appointment_id)
    _check_transition(appointment, AppointmentStatus.COMPLETED)

    if data.client_id != appointment.client_id:
        raise ValidationException("El paciente no corresponde a la cita")

    await _check_catalog_references(db, data)

    completed_at = datetime.now(timezone.utc)
    delta = None
    if data.formula:
        delta = stamp_provenance(data.formula, appointment.id, completed_at)
        patient = await get_client(db, data.client_id)
        await formula_service.apply_delta(db, patient, delta)

    appointment.complaint_id = data.complaint_id
    appointment.custom_complaint = data.custom_complaint
    appointment.anamnesis = data.anamnesis
    appointment.diagnosis_id = data.diagnosis_id
    appointment.treatment_id = data.treatment_id
    appointment.comment = data.comment
    appointment.teeth_numbers = data.teeth_numbers
    appointment.formula = dump_teeth(delta) if delta else None
    appointment.status = AppointmentStatus.COMPLETED
    appointment.completed_at = completed_at

    await flush_changes(db)

    await log_action(
        db,
        user_id=user.id,
        entity="appointment",
        entity_id=str(appointment.id),
        action="complete",
        new_data={
            "client_id": data.client_id,
            "teeth_numbers": data.teeth_numbers,
            "formula_teeth": [t.number for t in delta] if delta else [],
        },
        ip_address=ip_address,
    )
    logger.info(
        "Cita completada: id=%s doctor=%s paciente=%s piezas=%s",
        appointment.id,
        appointment.doctor_id,
        appointment.client_id,
        [t.number for t in delta] if delta else [],
    )

    return await _to_response(db, appointment)
