"""
Modelo User: Staff (admin, doctor, recepcionista) y clientes (pacientes).

Los clientes no tienen credenciales: email y password quedan en NULL
y nunca pueden autenticarse. Cada cliente referencia a lo sumo una
fórmula dental (odontograma canónico).
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Enum, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class UserRole(str, enum.Enum):
    """Roles del sistema."""
    ADMIN = "admin"
    DOCTOR = "doctor"
    RECEPTIONIST = "receptionist"
    CLIENT = "client"


# Roles que pueden iniciar sesión
STAFF_ROLES: tuple[UserRole, ...] = (
    UserRole.ADMIN,
    UserRole.DOCTOR,
    UserRole.RECEPTIONIST,
)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )

    # ── Datos de acceso (solo staff) ─────────────────
    email: Mapped[str | None] = mapped_column(
        String(255), unique=True, index=True
    )
    hashed_password: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole), nullable=False, default=UserRole.CLIENT
    )

    # ── Datos personales ─────────────────────────────
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(30))
    address: Mapped[str | None] = mapped_column(Text)
    gender: Mapped[str | None] = mapped_column(String(20))
    birth_date: Mapped[date | None] = mapped_column(Date)

    # ── Odontograma (solo clientes) ──────────────────
    # Referencia sin FK: formulas.user_id ya apunta a users.id
    formula_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, comment="Fórmula dental canónica del paciente"
    )

    # ── Estado ───────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_client(self) -> bool:
        return self.role == UserRole.CLIENT

    @property
    def is_doctor(self) -> bool:
        return self.role == UserRole.DOCTOR

    @property
    def can_authenticate(self) -> bool:
        return self.role in STAFF_ROLES

    def __repr__(self) -> str:
        return f"<User {self.full_name} ({self.role.value})>"
