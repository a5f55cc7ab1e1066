"""
Configuración de base de datos con SQLAlchemy 2.0 async.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm.exc import StaleDataError

from app.config import get_settings
from app.core.exceptions import ConflictException, PersistenceException

logger = logging.getLogger(__name__)

settings = get_settings()

# ── Engine async ─────────────────────────────────────
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
)

# ── Session factory ──────────────────────────────────
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base declarativa ─────────────────────────────────
class Base(DeclarativeBase):
    pass


# ── Dependency: sesión de DB ─────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency de FastAPI que provee una sesión de base de datos.
    Toda la request corre en una sola transacción: commit al final,
    rollback si algo falla.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Flush con errores de dominio ─────────────────────
async def flush_changes(
    session: AsyncSession,
    *,
    integrity_conflict: str | None = None,
) -> None:
    """
    Envía los cambios pendientes a la DB dentro de la transacción actual.

    Un conflicto de versión (escritura concurrente) se reporta como 409.
    Con `integrity_conflict`, una violación de integridad también es un 409
    con ese mensaje: sirve para INSERTs que pueden correr en paralelo con
    otro igual. Cualquier otra falla del almacenamiento es un 500.
    """
    try:
        await session.flush()
    except StaleDataError as exc:
        logger.warning("Conflicto de versión al guardar: %s", exc)
        raise ConflictException(
            "El registro fue modificado por otra operación; reintente la solicitud"
        ) from exc
    except IntegrityError as exc:
        if integrity_conflict is None:
            logger.error("Error de persistencia: %s", exc)
            raise PersistenceException() from exc
        logger.warning("Conflicto de integridad al guardar: %s", exc)
        raise ConflictException(integrity_conflict) from exc
    except SQLAlchemyError as exc:
        logger.error("Error de persistencia: %s", exc)
        raise PersistenceException() from exc
