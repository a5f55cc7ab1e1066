"""
Fixtures compartidas para Pytest.
Configura base de datos de test y clientes HTTP.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from uuid import uuid4

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.auth.jwt import create_access_token
from app.core.security import hash_password
from app.database import Base, get_db
from app.main import app
from app.models.appointment import Appointment
from app.models.catalog import Status, StatusType
from app.models.formula import Formula
from app.models.user import User, UserRole
from app.schemas.formula import dump_teeth
from app.services.formula_merge import new_canonical_teeth

# ── Engine de test (SQLite async) ────────────────────
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)

STAFF_PASSWORD = "TestPass123"


@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Crea y destruye las tablas para cada test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provee una sesión de DB de test."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    """Factory para abrir sesiones adicionales (transacciones concurrentes)."""
    return test_session_factory


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP de test que usa la DB de test."""

    async def _get_test_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_test_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Usuarios ─────────────────────────────────────────

async def _create_staff(db: AsyncSession, role: UserRole, email: str, name: str) -> User:
    user = User(
        id=uuid4(),
        email=email,
        hashed_password=hash_password(STAFF_PASSWORD),
        role=role,
        full_name=name,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _create_staff(db_session, UserRole.ADMIN, "admin@test.com", "Admin Test")


@pytest_asyncio.fixture
async def doctor_user(db_session: AsyncSession) -> User:
    return await _create_staff(db_session, UserRole.DOCTOR, "doctor@test.com", "Dra. Pérez")


@pytest_asyncio.fixture
async def receptionist_user(db_session: AsyncSession) -> User:
    return await _create_staff(
        db_session, UserRole.RECEPTIONIST, "recepcion@test.com", "Recepción Test"
    )


@pytest_asyncio.fixture
async def patient(db_session: AsyncSession) -> User:
    """Paciente con odontograma vacío de 32 piezas."""
    user = User(id=uuid4(), role=UserRole.CLIENT, full_name="Juan Paciente")
    db_session.add(user)
    await db_session.flush()

    formula = Formula(user_id=user.id, teeth=dump_teeth(new_canonical_teeth()))
    db_session.add(formula)
    await db_session.flush()
    user.formula_id = formula.id

    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def patient_without_formula(db_session: AsyncSession) -> User:
    """Paciente dado de alta antes de tener odontograma."""
    user = User(id=uuid4(), role=UserRole.CLIENT, full_name="Ana Sin Fórmula")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


# ── Catálogo ─────────────────────────────────────────

@pytest_asyncio.fixture
async def statuses(db_session: AsyncSession) -> dict[str, Status]:
    """Estados de pieza usados en los odontogramas de test."""
    rows = {
        "healthy": Status(title="Sano", type=StatusType.TOOTH, code="HEALTHY"),
        "caries": Status(title="Caries", type=StatusType.TOOTH, code="CARIES"),
        "filled": Status(title="Obturado", type=StatusType.TOOTH, code="FILLED"),
        "crown": Status(title="Corona", type=StatusType.TOOTH, code="CROWN"),
    }
    db_session.add_all(rows.values())
    await db_session.commit()
    for row in rows.values():
        await db_session.refresh(row)
    return rows


# ── Citas ────────────────────────────────────────────

DEFAULT_SCHEDULED_AT = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


async def _make_appointment(db: AsyncSession, doctor: User, client: User, **kwargs) -> Appointment:
    appointment = Appointment(
        id=uuid4(),
        doctor_id=doctor.id,
        client_id=client.id,
        scheduled_at=kwargs.pop("scheduled_at", DEFAULT_SCHEDULED_AT),
        duration_minutes=30,
        **kwargs,
    )
    db.add(appointment)
    await db.commit()
    await db.refresh(appointment)
    return appointment


@pytest_asyncio.fixture
async def appointment(db_session: AsyncSession, doctor_user: User, patient: User) -> Appointment:
    return await _make_appointment(db_session, doctor_user, patient)


@pytest_asyncio.fixture
async def appointment_factory(db_session: AsyncSession, doctor_user: User):
    """Crea citas extra del doctor de test para un paciente dado."""

    async def _factory(client: User, **kwargs) -> Appointment:
        return await _make_appointment(db_session, doctor_user, client, **kwargs)

    return _factory


# ── Headers de autenticación ─────────────────────────

def _auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict[str, str]:
    return _auth_headers(admin_user)


@pytest_asyncio.fixture
async def doctor_headers(doctor_user: User) -> dict[str, str]:
    return _auth_headers(doctor_user)


@pytest_asyncio.fixture
async def receptionist_headers(receptionist_user: User) -> dict[str, str]:
    return _auth_headers(receptionist_user)
