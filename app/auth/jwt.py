"""
Gestión de JWT: access tokens (15 min) + refresh tokens (7 días).
HS256 con secreto compartido por defecto; RS256 si se configuran claves.
"""

from datetime import datetime, timedelta, timezone

import jwt

from app.config import get_settings
from app.models.user import User

settings = get_settings()


class TokenType:
    ACCESS = "access"
    REFRESH = "refresh"


def _encode(user: User, token_type: str, ttl: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role.value,
        "type": token_type,
        "iat": now,
        "nbf": now,
        "exp": now + ttl,
    }
    return jwt.encode(
        payload,
        settings.jwt_signing_key,
        algorithm=settings.JWT_ALGORITHM,
    )


def create_access_token(user: User) -> str:
    """Crea un access token JWT (corta duración)."""
    return _encode(
        user,
        TokenType.ACCESS,
        timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user: User) -> str:
    """Crea un refresh token JWT (larga duración)."""
    return _encode(
        user,
        TokenType.REFRESH,
        timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
    )


def access_token_ttl_seconds() -> int:
    return settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60


def decode_token(token: str) -> dict:
    """
    Decodifica y verifica un token JWT.
    Lanza jwt.InvalidTokenError si el token es inválido o expirado.
    """
    return jwt.decode(
        token,
        settings.jwt_verifying_key,
        algorithms=[settings.JWT_ALGORITHM],
    )
