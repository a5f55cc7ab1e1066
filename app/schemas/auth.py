"""
Schemas de autenticación: registro de staff, login, tokens.
"""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.models.user import UserRole


# ── Login ────────────────────────────────────────────
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenData(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"


class UserLoginData(BaseModel):
    id: UUID
    email: str
    full_name: str
    role: UserRole


class LoginResponse(BaseModel):
    user: UserLoginData
    tokens: TokenData


# ── Refresh Token ────────────────────────────────────
class RefreshRequest(BaseModel):
    refresh_token: str


# ── Registro de staff ────────────────────────────────
class SignUpRequest(BaseModel):
    """Alta de personal. Los clientes se crean desde /users, nunca aquí."""
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    full_name: str = Field(..., min_length=2, max_length=200)
    role: UserRole
    phone_number: str | None = Field(None, max_length=30)
