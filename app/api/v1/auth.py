"""
Endpoints de autenticación: registro de staff, login, refresh.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.database import get_db
from app.models.user import User
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    SignUpRequest,
    TokenData,
)
from app.schemas.user import UserMe
from app.services import auth_service

router = APIRouter()


def _get_client_ip(request: Request) -> str | None:
    """Obtiene la IP del cliente desde los headers o la conexión."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


@router.post("/signup", response_model=LoginResponse, status_code=201)
async def signup(
    data: SignUpRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Registra un miembro del personal (admin, doctor, recepción).
    No requiere autenticación. Retorna tokens para auto-login.
    """
    return await auth_service.sign_up(db, data, ip_address=_get_client_ip(request))


@router.post("/signin", response_model=LoginResponse)
async def signin(
    data: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Autentica un usuario del staff con email y contraseña."""
    return await auth_service.login(db, data, ip_address=_get_client_ip(request))


@router.post("/refresh", response_model=TokenData)
async def refresh_token(
    data: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    """Renueva el par de tokens usando un refresh token válido."""
    return await auth_service.refresh_tokens(db, data.refresh_token)


@router.get("/me", response_model=UserMe)
async def get_me(user: User = Depends(get_current_user)):
    """Retorna el perfil del usuario autenticado."""
    return user
