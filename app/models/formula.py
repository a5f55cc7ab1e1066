"""
Modelo Formula: Odontograma canónico de un paciente (32 piezas).

Los dientes se guardan como documento JSON: cada pieza tiene las
regiones whole, gum, roots y segments, y cada región un estado con
su procedencia (cita que lo registró + timestamp).

`version_id` implementa concurrencia optimista: dos citas que se
completan a la vez para el mismo paciente no pueden pisarse en
silencio; la segunda escritura falla con StaleDataError.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

TEETH_COUNT = 32


class Formula(Base):
    __tablename__ = "formulas"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    teeth: Mapped[list[dict]] = mapped_column(
        JSON, nullable=False, default=list,
        comment="Lista de piezas dentales serializadas (ToothEntry)"
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Timestamps ───────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Formula {self.id} user={self.user_id} v{self.version_id}>"
