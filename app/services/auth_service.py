"""
Servicio de autenticación: registro de staff, login, refresh.
"""

import logging
from uuid import UUID

import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import (
    TokenType,
    access_token_ttl_seconds,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from app.core.exceptions import (
    ConflictException,
    CredentialsException,
    ValidationException,
)
from app.core.security import hash_password, verify_password
from app.database import flush_changes
from app.models.user import STAFF_ROLES, User
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    SignUpRequest,
    TokenData,
    UserLoginData,
)
from app.services.audit_service import log_action
from app.services.user_service import get_by_email

logger = logging.getLogger(__name__)


def _token_pair(user: User) -> TokenData:
    return TokenData(
        access_token=create_access_token(user),
        refresh_token=create_refresh_token(user),
        expires_in=access_token_ttl_seconds(),
    )


def _login_response(user: User) -> LoginResponse:
    return LoginResponse(
        user=UserLoginData(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
        ),
        tokens=_token_pair(user),
    )


async def sign_up(
    db: AsyncSession,
    data: SignUpRequest,
    ip_address: str | None = None,
) -> LoginResponse:
    """
    Registra un miembro del staff y retorna tokens para auto-login.
    Los pacientes no pueden registrarse por aquí.
    """
    if data.role not in STAFF_ROLES:
        raise ValidationException("Solo el personal puede registrarse")

    if await get_by_email(db, data.email):
        raise ConflictException("Ya existe un usuario con ese email")

    user = User(
        email=data.email,
        hashed_password=hash_password(data.password),
        role=data.role,
        full_name=data.full_name,
        phone_number=data.phone_number,
    )
    db.add(user)
    await flush_changes(db)

    await log_action(
        db,
        user_id=user.id,
        entity="user",
        entity_id=str(user.id),
        action="signup",
        new_data={"email": data.email, "role": data.role},
        ip_address=ip_address,
    )

    logger.info("Registro de staff: id=%s role=%s", user.id, user.role.value)
    return _login_response(user)


async def login(
    db: AsyncSession,
    data: LoginRequest,
    ip_address: str | None = None,
) -> LoginResponse:
    """Autentica un usuario del staff con email y contraseña."""
    user = await get_by_email(db, data.email)

    if user is None:
        logger.warning("Login fallido: usuario no encontrado para email=%s", data.email)
        raise CredentialsException("Email o contraseña inválidos")

    if not user.can_authenticate or not user.is_active or user.hashed_password is None:
        logger.warning("Login fallido: usuario %s no puede autenticarse", user.id)
        raise CredentialsException("El usuario no puede iniciar sesión")

    if not verify_password(data.password, user.hashed_password):
        logger.warning("Login fallido: contraseña incorrecta para user=%s", user.id)
        raise CredentialsException("Email o contraseña inválidos")

    await log_action(
        db,
        user_id=user.id,
        entity="user",
        entity_id=str(user.id),
        action="login",
        ip_address=ip_address,
    )

    return _login_response(user)


async def refresh_tokens(db: AsyncSession, refresh_token: str) -> TokenData:
    """Emite un nuevo par de tokens a partir de un refresh token válido."""
    try:
        payload = decode_token(refresh_token)
    except jwt.InvalidTokenError:
        raise CredentialsException("Refresh token inválido o expirado")

    if payload.get("type") != TokenType.REFRESH:
        raise CredentialsException("Tipo de token inválido")

    result = await db.execute(
        select(User).where(
            User.id == UUID(payload["sub"]),
            User.is_active.is_(True),
        )
    )
    user = result.scalar_one_or_none()
    if user is None or not user.can_authenticate:
        raise CredentialsException("Usuario no encontrado o inactivo")

    return _token_pair(user)
