"""
Router principal de la API v1.
Agrupa todos los sub-routers de la versión 1.
"""

from fastapi import APIRouter

from app.api.v1.auth import router as auth_router
from app.api.v1.users import router as users_router
from app.api.v1.appointments import router as appointments_router
from app.api.v1.formulas import router as formulas_router

api_v1_router = APIRouter()

api_v1_router.include_router(
    auth_router,
    prefix="/auth",
    tags=["Autenticación"],
)

api_v1_router.include_router(
    users_router,
    prefix="/users",
    tags=["Usuarios"],
)

api_v1_router.include_router(
    appointments_router,
    prefix="/appointments",
    tags=["Citas"],
)

api_v1_router.include_router(
    formulas_router,
    prefix="/formulas",
    tags=["Odontograma"],
)
