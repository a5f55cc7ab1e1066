"""
Servicio de Audit Log: registra todas las operaciones sensibles.
INSERT-only, nunca se modifica ni elimina.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.database import flush_changes
from app.models.audit_log import AuditLog


def _sanitize_for_json(data: dict | None) -> dict | None:
    """Convierte tipos no serializables (date, datetime, UUID, Enum) a strings."""
    if data is None:
        return None
    sanitized = {}
    for key, value in data.items():
        if isinstance(value, (date, datetime)):
            sanitized[key] = value.isoformat()
        elif isinstance(value, UUID):
            sanitized[key] = str(value)
        elif isinstance(value, Enum):
            sanitized[key] = value.value
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_for_json(value)
        elif isinstance(value, list):
            sanitized[key] = [
                _sanitize_for_json(item) if isinstance(item, dict)
                else str(item) if isinstance(item, UUID)
                else item
                for item in value
            ]
        else:
            sanitized[key] = value
    return sanitized


async def log_action(
    db: AsyncSession,
    *,
    user_id: UUID | None,
    entity: str,
    entity_id: str,
    action: str,
    old_data: dict | None = None,
    new_data: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLog:
    """Inserta un registro de auditoría inmutable."""
    entry = AuditLog(
        user_id=user_id,
        entity=entity,
        entity_id=str(entity_id),
        action=action,
        old_data=_sanitize_for_json(old_data),
        new_data=_sanitize_for_json(new_data),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(entry)
    await flush_changes(db)
    return entry
