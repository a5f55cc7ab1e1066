"""
Servicio de usuarios: alta de staff y pacientes, consulta y baja.

Al crear un paciente (rol client) se crea también su odontograma vacío
de 32 piezas; al borrarlo se elimina su fórmula.
"""

import logging
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import can_create_role
from app.core.exceptions import ConflictException, ForbiddenException, NotFoundException
from app.core.security import hash_password
from app.database import flush_changes
from app.models.appointment import Appointment
from app.models.formula import Formula
from app.models.user import STAFF_ROLES, User, UserRole
from app.schemas.user import UserCreate, UserResponse
from app.services import formula_service
from app.services.audit_service import log_action
from app.services.formula_merge import new_canonical_teeth

logger = logging.getLogger(__name__)


async def _get_user_row(db: AsyncSession, user_id: UUID) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundException("Usuario")
    return user


async def get_client(db: AsyncSession, client_id: UUID) -> User:
    """Carga un paciente (usuario con rol client)."""
    result = await db.execute(
        select(User).where(User.id == client_id, User.role == UserRole.CLIENT)
    )
    client = result.scalar_one_or_none()
    if not client:
        raise NotFoundException("Paciente")
    return client


async def get_doctor(db: AsyncSession, doctor_id: UUID) -> User:
    result = await db.execute(
        select(User).where(
            User.id == doctor_id,
            User.role == UserRole.DOCTOR,
            User.is_active.is_(True),
        )
    )
    doctor = result.scalar_one_or_none()
    if not doctor:
        raise NotFoundException("Doctor")
    return doctor


async def get_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


# ── Crear usuario ────────────────────────────────────

async def create_user(
    db: AsyncSession,
    creator: User,
    data: UserCreate,
    ip_address: str | None = None,
) -> UserResponse:
    """
    Crea un usuario. Los pacientes nunca guardan credenciales y reciben
    su fórmula dental en el mismo paso.
    """
    if not can_create_role(creator.role, data.role):
        raise ForbiddenException(
            f"El rol '{creator.role.value}' no puede crear usuarios '{data.role.value}'"
        )

    user = User(
        full_name=data.full_name,
        role=data.role,
        phone_number=data.phone_number,
        address=data.address,
        gender=data.gender,
        birth_date=data.birth_date,
    )
    if data.role != UserRole.CLIENT:
        if await get_by_email(db, data.email):
            raise ConflictException("Ya existe un usuario con ese email")
        user.email = data.email
        user.hashed_password = hash_password(data.password)

    db.add(user)
    await flush_changes(db)

    if user.is_client:
        await formula_service.create_formula(db, user, new_canonical_teeth())

    await log_action(
        db,
        user_id=creator.id,
        entity="user",
        entity_id=str(user.id),
        action="create",
        new_data={"role": data.role, "full_name": data.full_name},
        ip_address=ip_address,
    )

    await db.refresh(user)
    logger.info("Usuario creado: id=%s role=%s", user.id, user.role.value)
    return UserResponse.model_validate(user)


# ── Consultas ────────────────────────────────────────

async def get_user(db: AsyncSession, user_id: UUID, viewer: User) -> UserResponse:
    """Detalle de usuario. Recepción solo puede ver fichas de pacientes."""
    user = await _get_user_row(db, user_id)
    if viewer.role == UserRole.RECEPTIONIST and not user.is_client:
        raise ForbiddenException("Recepción solo puede consultar pacientes")
    return UserResponse.model_validate(user)


async def list_users_by_role(
    db: AsyncSession, roles: tuple[UserRole, ...]
) -> list[UserResponse]:
    result = await db.execute(
        select(User)
        .where(User.role.in_(roles))
        .order_by(User.full_name)
    )
    return [UserResponse.model_validate(u) for u in result.scalars().all()]


async def list_clients(db: AsyncSession) -> list[UserResponse]:
    return await list_users_by_role(db, (UserRole.CLIENT,))


async def list_doctors(db: AsyncSession) -> list[UserResponse]:
    return await list_users_by_role(db, (UserRole.DOCTOR,))


async def list_staff(db: AsyncSession) -> list[UserResponse]:
    return await list_users_by_role(db, STAFF_ROLES)


# ── Eliminar usuario ─────────────────────────────────

async def delete_user(
    db: AsyncSession,
    user_id: UUID,
    actor: User,
    ip_address: str | None = None,
) -> None:
    """
    Elimina un usuario. Si es paciente, elimina también su fórmula.
    No se permite borrar usuarios con citas registradas.
    """
    user = await _get_user_row(db, user_id)

    appointments_count = await db.scalar(
        select(func.count(Appointment.id)).where(
            or_(Appointment.client_id == user_id, Appointment.doctor_id == user_id)
        )
    )
    if appointments_count:
        raise ConflictException(
            f"El usuario tiene {appointments_count} cita(s) registradas"
        )

    if user.is_client:
        await db.execute(delete(Formula).where(Formula.user_id == user_id))

    await db.delete(user)
    await flush_changes(db)

    await log_action(
        db,
        user_id=actor.id,
        entity="user",
        entity_id=str(user_id),
        action="delete",
        old_data={"role": user.role, "full_name": user.full_name},
        ip_address=ip_address,
    )
    logger.info("Usuario eliminado: id=%s", user_id)
