"""
Schemas del odontograma (fórmula dental).

ToothEntry es la misma estructura para la fórmula canónica del paciente
y para el delta que registra una cita: el delta solo trae las piezas y
regiones tocadas en la visita.
"""

import re
from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from app.models.formula import TEETH_COUNT

SEGMENT_KEY_RE = re.compile(r"^[a-z][a-z0-9_]{0,15}$")


class ToothSegment(str, Enum):
    """Posiciones de segmento conocidas (el mapa acepta otras claves)."""
    MID = "mid"
    RIGHT_TOP = "rt"
    LEFT_TOP = "lt"
    RIGHT_BOTTOM = "rb"
    LEFT_BOTTOM = "lb"


class ToothRegion(str, Enum):
    """Regiones fijas de una pieza; cualquier otro nombre es un segmento."""
    WHOLE = "whole"
    GUM = "gum"
    ROOTS = "roots"


class ToothStatusEntry(BaseModel):
    """Estado de una región + procedencia (cita y momento que lo fijaron)."""
    status_id: UUID
    appointment_id: UUID | None = None
    timestamp: datetime | None = None
    note: str | None = Field(None, max_length=1000)


class ToothEntry(BaseModel):
    number: int = Field(..., description="Número de pieza 1-32")
    whole: ToothStatusEntry | None = None
    gum: ToothStatusEntry | None = None
    roots: list[ToothStatusEntry] | None = Field(
        None, description="Un estado por raíz. None = no tocado en la visita"
    )
    segments: dict[str, ToothStatusEntry] = Field(default_factory=dict)

    @field_validator("roots", mode="before")
    @classmethod
    def normalize_legacy_roots(cls, v):
        # Formato anterior: un único estado para todas las raíces
        if isinstance(v, (dict, ToothStatusEntry)):
            return [v]
        return v

    @field_validator("segments", mode="before")
    @classmethod
    def none_segments_as_empty(cls, v):
        return {} if v is None else v

    @field_validator("segments")
    @classmethod
    def validate_segment_keys(cls, v: dict[str, ToothStatusEntry]) -> dict[str, ToothStatusEntry]:
        for key in v:
            if not SEGMENT_KEY_RE.match(key):
                raise ValueError(
                    f"Clave de segmento inválida: '{key}'. "
                    f"Conocidas: {', '.join(s.value for s in ToothSegment)}"
                )
        return v

    def statuses(self) -> list[ToothStatusEntry]:
        """Todos los estados presentes en la pieza, en cualquier región."""
        found = [s for s in (self.whole, self.gum) if s is not None]
        found.extend(self.roots or [])
        found.extend(self.segments.values())
        return found


teeth_adapter = TypeAdapter(list[ToothEntry])


def load_teeth(raw: list[dict] | None) -> list[ToothEntry]:
    """Deserializa la columna JSON a piezas tipadas."""
    return teeth_adapter.validate_python(raw or [])


def dump_teeth(teeth: list[ToothEntry]) -> list[dict]:
    """Serializa piezas a JSON plano para la columna de la DB."""
    return teeth_adapter.dump_python(teeth, mode="json")


def find_invalid_tooth_numbers(numbers: list[int]) -> tuple[list[int], list[int]]:
    """Retorna (fuera de rango, duplicados) de una lista de números de pieza."""
    out_of_range = [n for n in numbers if not 1 <= n <= TEETH_COUNT]
    seen: set[int] = set()
    duplicates: list[int] = []
    for n in numbers:
        if n in seen and n not in duplicates:
            duplicates.append(n)
        seen.add(n)
    return out_of_range, duplicates


class FormulaResponse(BaseModel):
    id: UUID
    user_id: UUID
    teeth: list[ToothEntry]
    version_id: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ToothStatusUpdate(BaseModel):
    """Corrección manual de una región de una pieza."""
    status_id: UUID
    appointment_id: UUID = Field(..., description="Cita que respalda la corrección")
    note: str | None = Field(None, max_length=1000)


class ToothHistoryEntry(BaseModel):
    """Lo que una visita completada registró para una pieza."""
    appointment_id: UUID
    doctor_id: UUID
    completed_at: datetime | None = None
    tooth: ToothEntry
