"""
Punto de entrada de la API de la clínica dental.

Arma la app FastAPI: logging según LOG_LEVEL, CORS, handler de errores
no controlados, routers v1 (auth, usuarios, citas, fórmulas) y el
health check que además verifica la conexión a la base de datos.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.router import api_v1_router
from app.config import get_settings
from app.database import engine, get_db

APP_VERSION = "0.1.0"

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "%s %s iniciando (entorno=%s, api=%s)",
        settings.APP_NAME, APP_VERSION, settings.APP_ENV, settings.API_V1_PREFIX,
    )
    yield
    await engine.dispose()
    logger.info("%s detenida; pool de conexiones cerrado", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    description="Citas, pacientes y odontograma de una clínica dental",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)


# ── Errores no controlados ───────────────────────────
@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """500 genérico; el detalle solo se expone con DEBUG activo."""
    logger.exception("Error no manejado en %s %s", request.method, request.url.path)
    content = {"detail": "Error interno del servidor"}
    if settings.DEBUG:
        content = {"detail": str(exc), "type": type(exc).__name__}
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


# ── Health Check ─────────────────────────────────────
@app.get("/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """Estado de la API y de la conexión a la base de datos."""
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as exc:
        logger.error("Health check: base de datos no disponible: %s", exc)
        database = "unavailable"

    body = {
        "status": "healthy" if database == "ok" else "degraded",
        "database": database,
        "app": settings.APP_NAME,
        "version": APP_VERSION,
        "environment": settings.APP_ENV,
    }
    code = status.HTTP_200_OK if database == "ok" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=body)
