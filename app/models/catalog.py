"""
Catálogos clínicos: estados (diagnósticos, tratamientos, condiciones
de pieza) y motivos de consulta. Son referenciados por las citas y
por cada región del odontograma.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class StatusType(str, enum.Enum):
    DIAGNOSIS = "diagnosis"
    TREATMENT = "treatment"
    TOOTH = "tooth"


class Status(Base):
    __tablename__ = "statuses"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[StatusType] = mapped_column(Enum(StatusType), nullable=False)
    code: Mapped[str] = mapped_column(
        String(20), nullable=False, comment="Código CIE-10, ej: K02, K04"
    )
    description: Mapped[str | None] = mapped_column(Text)
    color: Mapped[str | None] = mapped_column(
        String(20), comment="Color para el odontograma"
    )
    is_active: Mapped[bool] = mapped_column(default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Status {self.code} {self.title} ({self.type.value})>"


class Complaint(Base):
    __tablename__ = "complaints"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(
        String(50), comment="pain, cosmetic, etc."
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Complaint {self.title}>"
