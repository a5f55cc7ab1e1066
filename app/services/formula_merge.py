"""
Motor de merge del odontograma.

Funciones puras (sin DB): combinan el delta registrado en una cita con
la fórmula canónica del paciente. Reglas por región:

- whole / gum: el delta sobrescribe solo si trae valor; ausencia
  significa "no tocado en esta visita", no "borrar".
- roots: si el delta especifica raíces, reemplaza el conjunto completo.
  No hay actualización parcial de raíces.
- segments: merge clave por clave; las claves del delta ganan y las
  que solo existen en la fórmula se conservan.

Ninguna función muta sus argumentos.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from app.models.formula import TEETH_COUNT
from app.schemas.formula import ToothEntry, ToothStatusEntry


def new_canonical_teeth() -> list[ToothEntry]:
    """Odontograma vacío con las 32 piezas."""
    return [ToothEntry(number=n) for n in range(1, TEETH_COUNT + 1)]


def merge_tooth(existing: ToothEntry, delta: ToothEntry) -> ToothEntry:
    """Aplica el delta de una pieza sobre su estado actual."""
    merged = existing.model_copy(deep=True)

    if delta.whole is not None:
        merged.whole = delta.whole.model_copy()
    if delta.gum is not None:
        merged.gum = delta.gum.model_copy()
    if delta.roots is not None:
        merged.roots = [root.model_copy() for root in delta.roots]
    for key, status in delta.segments.items():
        merged.segments[key] = status.model_copy()

    return merged


def merge_teeth(existing: list[ToothEntry] | None, delta: list[ToothEntry]) -> list[ToothEntry]:
    """
    Combina el delta de una visita con la fórmula existente.
    Las piezas que no existen en la fórmula se agregan al final tal cual.
    """
    result = [tooth.model_copy(deep=True) for tooth in existing or []]
    position = {tooth.number: i for i, tooth in enumerate(result)}

    for tooth in delta:
        idx = position.get(tooth.number)
        if idx is None:
            position[tooth.number] = len(result)
            result.append(tooth.model_copy(deep=True))
        else:
            result[idx] = merge_tooth(result[idx], tooth)

    return result


def merge_formula(existing: list[ToothEntry] | None, delta: list[ToothEntry]) -> list[ToothEntry]:
    """Merge sobre la fórmula canónica; sin fórmula previa parte de las 32 piezas vacías."""
    base = existing if existing is not None else new_canonical_teeth()
    return merge_teeth(base, delta)


def _stamp(status: ToothStatusEntry, appointment_id: UUID, stamped_at: datetime) -> ToothStatusEntry:
    return status.model_copy(update={"appointment_id": appointment_id, "timestamp": stamped_at})


def stamp_provenance(
    delta: list[ToothEntry],
    appointment_id: UUID,
    stamped_at: datetime,
) -> list[ToothEntry]:
    """
    Marca cada estado del delta (whole, gum, cada raíz, cada segmento)
    con la cita que lo produjo y un único timestamp compartido, para que
    todos los cambios de una visita queden agrupados.
    """
    stamped: list[ToothEntry] = []
    for tooth in delta:
        stamped.append(ToothEntry(
            number=tooth.number,
            whole=_stamp(tooth.whole, appointment_id, stamped_at) if tooth.whole else None,
            gum=_stamp(tooth.gum, appointment_id, stamped_at) if tooth.gum else None,
            roots=(
                [_stamp(root, appointment_id, stamped_at) for root in tooth.roots]
                if tooth.roots is not None else None
            ),
            segments={
                key: _stamp(status, appointment_id, stamped_at)
                for key, status in tooth.segments.items()
            },
        ))
    return stamped


def replay_formula(deltas: Iterable[list[ToothEntry]]) -> list[ToothEntry]:
    """
    Reconstruye una fórmula canónica aplicando, en orden, los deltas de
    cada visita sobre el odontograma vacío.
    """
    teeth = new_canonical_teeth()
    for delta in deltas:
        teeth = merge_teeth(teeth, delta)
    return teeth
