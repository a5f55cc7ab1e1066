"""
Endpoints de usuarios: personal de la clínica y pacientes.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import require_permission
from app.database import get_db
from app.models.user import User
from app.schemas.user import UserCreate, UserResponse
from app.services import user_service

router = APIRouter()


def _get_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    data: UserCreate,
    request: Request,
    user: User = Depends(require_permission("user", "create")),
    db: AsyncSession = Depends(get_db),
):
    """
    Crea un usuario. Recepción solo puede crear pacientes.
    Los pacientes se crean con su odontograma vacío de 32 piezas.
    """
    return await user_service.create_user(
        db, creator=user, data=data, ip_address=_get_client_ip(request)
    )


@router.get("/clients", response_model=list[UserResponse])
async def list_clients(
    user: User = Depends(require_permission("user", "read")),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.list_clients(db)


@router.get("/doctors", response_model=list[UserResponse])
async def list_doctors(
    user: User = Depends(require_permission("user", "read")),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.list_doctors(db)


@router.get("/staff", response_model=list[UserResponse])
async def list_staff(
    user: User = Depends(require_permission("user", "read")),
    db: AsyncSession = Depends(get_db),
):
    """Lista admins, doctores y recepción."""
    return await user_service.list_staff(db)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    user: User = Depends(require_permission("user", "read")),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_user(db, user_id, viewer=user)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: UUID,
    request: Request,
    user: User = Depends(require_permission("user", "delete")),
    db: AsyncSession = Depends(get_db),
):
    """Elimina un usuario sin citas registradas (y su fórmula si es paciente)."""
    await user_service.delete_user(
        db, user_id, actor=user, ip_address=_get_client_ip(request)
    )
