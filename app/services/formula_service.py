"""
Servicio de fórmulas dentales (odontograma canónico por paciente).
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException, ValidationException
from app.database import flush_changes
from app.models.appointment import Appointment, AppointmentStatus
from app.models.catalog import Status
from app.models.formula import TEETH_COUNT, Formula
from app.models.user import User, UserRole
from app.schemas.formula import (
    SEGMENT_KEY_RE,
    FormulaResponse,
    ToothEntry,
    ToothHistoryEntry,
    ToothRegion,
    ToothStatusEntry,
    ToothStatusUpdate,
    dump_teeth,
    load_teeth,
)
from app.services.audit_service import log_action
from app.services.formula_merge import merge_formula, merge_teeth, replay_formula

logger = logging.getLogger(__name__)


# ── Lectura ──────────────────────────────────────────

async def _get_formula_row(db: AsyncSession, formula_id: UUID) -> Formula:
    result = await db.execute(select(Formula).where(Formula.id == formula_id))
    formula = result.scalar_one_or_none()
    if not formula:
        raise NotFoundException("Fórmula")
    return formula


async def get_formula(db: AsyncSession, formula_id: UUID) -> FormulaResponse:
    formula = await _get_formula_row(db, formula_id)
    return FormulaResponse.model_validate(formula)


async def get_formula_by_user(db: AsyncSession, user_id: UUID) -> FormulaResponse:
    result = await db.execute(select(Formula).where(Formula.user_id == user_id))
    formula = result.scalar_one_or_none()
    if not formula:
        raise NotFoundException("Fórmula")
    return FormulaResponse.model_validate(formula)


async def get_patient_formula(db: AsyncSession, patient: User) -> Formula | None:
    """
    Fórmula referenciada por el paciente, o None si aún no tiene.
    Una referencia a una fórmula inexistente es un error (404).
    """
    if patient.formula_id is None:
        return None
    return await _get_formula_row(db, patient.formula_id)


# ── Escritura ────────────────────────────────────────

async def create_formula(
    db: AsyncSession,
    patient: User,
    teeth: list[ToothEntry],
) -> Formula:
    """Crea la fórmula del paciente y la enlaza desde su ficha."""
    formula = Formula(user_id=patient.id, teeth=dump_teeth(teeth))
    db.add(formula)
    await flush_changes(
        db,
        integrity_conflict=(
            "El paciente ya tiene una fórmula creada por otra operación; "
            "reintente la solicitud"
        ),
    )

    patient.formula_id = formula.id
    await flush_changes(db)

    logger.info("Fórmula creada: id=%s paciente=%s", formula.id, patient.id)
    return formula


async def apply_delta(
    db: AsyncSession,
    patient: User,
    delta: list[ToothEntry],
) -> Formula:
    """
    Aplica el delta de una visita sobre la fórmula del paciente.
    Sin fórmula previa, crea una a partir del odontograma vacío + delta.
    """
    formula = await get_patient_formula(db, patient)
    if formula is None:
        return await create_formula(db, patient, merge_formula(None, delta))

    formula.teeth = dump_teeth(merge_teeth(load_teeth(formula.teeth), delta))
    await flush_changes(db)
    return formula


def _validate_tooth_number(tooth_number: int) -> None:
    if not 1 <= tooth_number <= TEETH_COUNT:
        raise ValidationException(
            f"Número de pieza inválido: {tooth_number}. Rango permitido 1-{TEETH_COUNT}"
        )


def _region_delta(tooth_number: int, part: str, status: ToothStatusEntry) -> ToothEntry:
    if part == ToothRegion.WHOLE.value:
        return ToothEntry(number=tooth_number, whole=status)
    if part == ToothRegion.GUM.value:
        return ToothEntry(number=tooth_number, gum=status)
    if part == ToothRegion.ROOTS.value:
        return ToothEntry(number=tooth_number, roots=[status])
    if SEGMENT_KEY_RE.match(part):
        return ToothEntry(number=tooth_number, segments={part: status})
    raise ValidationException(f"Región de pieza inválida: '{part}'")


async def update_tooth_region(
    db: AsyncSession,
    formula_id: UUID,
    tooth_number: int,
    part: str,
    data: ToothStatusUpdate,
    user: User,
    ip_address: str | None = None,
) -> FormulaResponse:
    """
    Corrección manual de una región (whole, gum, roots o un segmento).
    La corrección debe estar respaldada por una cita del mismo paciente.
    """
    _validate_tooth_number(tooth_number)
    formula = await _get_formula_row(db, formula_id)

    result = await db.execute(
        select(Appointment).where(Appointment.id == data.appointment_id)
    )
    appointment = result.scalar_one_or_none()
    if not appointment:
        raise NotFoundException("Cita")
    if appointment.client_id != formula.user_id:
        raise ValidationException("La cita no pertenece al paciente de la fórmula")

    if await db.get(Status, data.status_id) is None:
        raise NotFoundException("Estado")

    status = ToothStatusEntry(
        status_id=data.status_id,
        appointment_id=data.appointment_id,
        timestamp=datetime.now(timezone.utc),
        note=data.note,
    )
    delta = [_region_delta(tooth_number, part, status)]

    old_teeth = load_teeth(formula.teeth)
    old_tooth = next((t for t in old_teeth if t.number == tooth_number), None)
    formula.teeth = dump_teeth(merge_teeth(old_teeth, delta))
    await flush_changes(db)

    await log_action(
        db,
        user_id=user.id,
        entity="formula",
        entity_id=str(formula.id),
        action="update_tooth",
        old_data=old_tooth.model_dump(mode="json") if old_tooth else None,
        new_data={"tooth": tooth_number, "part": part, **status.model_dump(mode="json")},
        ip_address=ip_address,
    )

    await db.refresh(formula)
    return FormulaResponse.model_validate(formula)


# ── Historial y reconstrucción ───────────────────────

async def _completed_with_formula(db: AsyncSession, user_id: UUID) -> list[Appointment]:
    result = await db.execute(
        select(Appointment)
        .where(
            Appointment.client_id == user_id,
            Appointment.status == AppointmentStatus.COMPLETED,
        )
        .order_by(Appointment.completed_at)
    )
    # La columna JSON guarda "sin delta" como null JSON, no como NULL SQL
    return [a for a in result.scalars().all() if a.formula]


async def get_tooth_history(
    db: AsyncSession, user_id: UUID, tooth_number: int
) -> list[ToothHistoryEntry]:
    """Lo registrado para una pieza en cada visita completada, en orden cronológico."""
    _validate_tooth_number(tooth_number)

    history: list[ToothHistoryEntry] = []
    for appointment in await _completed_with_formula(db, user_id):
        for tooth in load_teeth(appointment.formula):
            if tooth.number == tooth_number:
                history.append(ToothHistoryEntry(
                    appointment_id=appointment.id,
                    doctor_id=appointment.doctor_id,
                    completed_at=appointment.completed_at,
                    tooth=tooth,
                ))
    return history


async def rebuild_formula(
    db: AsyncSession,
    user_id: UUID,
    actor: User,
    ip_address: str | None = None,
) -> FormulaResponse:
    """
    Reconstruye la fórmula del paciente re-aplicando los deltas de sus
    citas completadas. Las correcciones manuales no se conservan.
    """
    result = await db.execute(
        select(User).where(User.id == user_id, User.role == UserRole.CLIENT)
    )
    patient = result.scalar_one_or_none()
    if not patient:
        raise NotFoundException("Paciente")

    appointments = await _completed_with_formula(db, user_id)
    teeth = replay_formula(load_teeth(a.formula) for a in appointments)

    formula = await get_patient_formula(db, patient)
    if formula is None:
        formula = await create_formula(db, patient, teeth)
    else:
        formula.teeth = dump_teeth(teeth)
        await flush_changes(db)

    await log_action(
        db,
        user_id=actor.id,
        entity="formula",
        entity_id=str(formula.id),
        action="rebuild",
        new_data={"appointments_replayed": len(appointments)},
        ip_address=ip_address,
    )
    logger.info(
        "Fórmula reconstruida: paciente=%s citas=%d", user_id, len(appointments)
    )

    await db.refresh(formula)
    return FormulaResponse.model_validate(formula)
