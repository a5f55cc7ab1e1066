"""
Dependencies de FastAPI para autenticación y control de acceso.
"""

from uuid import UUID

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import TokenType, decode_token
from app.auth.rbac import has_permission
from app.core.exceptions import CredentialsException, ForbiddenException
from app.database import get_db
from app.models.user import User

# ── Security scheme ──────────────────────────────────
security = HTTPBearer()


# ── Token payload tipado ─────────────────────────────
class TokenPayload:
    """Datos extraídos del token JWT decodificado."""

    def __init__(self, payload: dict):
        self.user_id: UUID = UUID(payload["sub"])
        self.role: str = payload.get("role", "")
        self.token_type: str = payload.get("type", TokenType.ACCESS)


# ── Obtener usuario actual ───────────────────────────
async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency que:
    1. Decodifica el JWT del header Authorization
    2. Verifica que sea un access token
    3. Carga el usuario activo de la DB
    """
    try:
        payload = decode_token(credentials.credentials)
    except jwt.InvalidTokenError:
        raise CredentialsException("Token inválido o expirado")

    token_data = TokenPayload(payload)

    if token_data.token_type != TokenType.ACCESS:
        raise CredentialsException("Tipo de token inválido")

    result = await db.execute(
        select(User).where(
            User.id == token_data.user_id,
            User.is_active.is_(True),
        )
    )
    user = result.scalar_one_or_none()

    if user is None or not user.can_authenticate:
        raise CredentialsException("Usuario no encontrado o inactivo")

    return user


# ── Factory de dependency con permisos ───────────────
def require_permission(resource: str, action: str):
    """
    Factory que crea un dependency que verifica el permiso RBAC del usuario.

    Uso:
        @router.post("/{appointment_id}/complete")
        async def complete(user: User = Depends(require_permission("appointment", "complete"))):
            ...
    """

    async def _check_permission(
        user: User = Depends(get_current_user),
    ) -> User:
        if not has_permission(user.role, resource, action):
            raise ForbiddenException(
                f"El rol '{user.role.value}' no puede ejecutar '{action}' sobre '{resource}'"
            )
        return user

    return _check_permission
