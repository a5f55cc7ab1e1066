"""
Schemas para User.
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, model_validator

from app.models.user import UserRole


class UserCreate(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=200)
    role: UserRole = UserRole.CLIENT
    email: EmailStr | None = None
    password: str | None = Field(None, min_length=6, max_length=128)
    phone_number: str | None = Field(None, max_length=30)
    address: str | None = Field(None, max_length=500)
    gender: str | None = Field(None, max_length=20)
    birth_date: date | None = None

    @model_validator(mode="after")
    def staff_needs_credentials(self) -> "UserCreate":
        if self.role != UserRole.CLIENT and (not self.email or not self.password):
            raise ValueError("El personal requiere email y contraseña")
        return self


class UserResponse(BaseModel):
    id: UUID
    email: str | None = None
    full_name: str
    role: UserRole
    phone_number: str | None = None
    address: str | None = None
    gender: str | None = None
    birth_date: date | None = None
    formula_id: UUID | None = None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UserMe(BaseModel):
    """Perfil del usuario autenticado."""
    id: UUID
    email: str | None = None
    full_name: str
    role: UserRole

    model_config = {"from_attributes": True}
