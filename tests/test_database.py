import pytest

from app.core.exceptions import ConflictException, PersistenceException
from app.database import flush_changes
from app.models.user import User, UserRole
from app.services.audit_service import log_action


async def test_storage_failure_maps_to_persistence_error(db_session, admin_user):
    db_session.add(User(email="admin@test.com", role=UserRole.ADMIN, full_name="Duplicado"))

    with pytest.raises(PersistenceException) as exc_info:
        await flush_changes(db_session)

    assert exc_info.value.status_code == 500
    await db_session.rollback()


async def test_integrity_violation_can_be_reported_as_conflict(db_session, admin_user):
    db_session.add(User(email="admin@test.com", role=UserRole.ADMIN, full_name="Duplicado"))

    with pytest.raises(ConflictException) as exc_info:
        await flush_changes(db_session, integrity_conflict="Email ya registrado")

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail == "Email ya registrado"
    await db_session.rollback()


async def test_audit_insert_failure_maps_to_persistence_error(db_session):
    with pytest.raises(PersistenceException):
        await log_action(
            db_session,
            user_id=None,
            entity=None,
            entity_id="sin-entidad",
            action="create",
        )
    await db_session.rollback()
