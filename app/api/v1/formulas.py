"""
Endpoints de fórmulas dentales (odontograma canónico por paciente).
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import require_permission
from app.database import get_db
from app.models.user import User
from app.schemas.formula import FormulaResponse, ToothHistoryEntry, ToothStatusUpdate
from app.services import formula_service

router = APIRouter()


def _get_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


@router.get("/user/{user_id}", response_model=FormulaResponse)
async def get_user_formula(
    user_id: UUID,
    user: User = Depends(require_permission("formula", "read")),
    db: AsyncSession = Depends(get_db),
):
    """Fórmula actual de un paciente."""
    return await formula_service.get_formula_by_user(db, user_id)


@router.get(
    "/user/{user_id}/teeth/{tooth_number}/history",
    response_model=list[ToothHistoryEntry],
)
async def get_tooth_history(
    user_id: UUID,
    tooth_number: int,
    user: User = Depends(require_permission("formula", "read")),
    db: AsyncSession = Depends(get_db),
):
    """Evolución de una pieza a lo largo de las citas completadas."""
    return await formula_service.get_tooth_history(db, user_id, tooth_number)


@router.post("/user/{user_id}/rebuild", response_model=FormulaResponse)
async def rebuild_formula(
    user_id: UUID,
    request: Request,
    user: User = Depends(require_permission("formula", "rebuild")),
    db: AsyncSession = Depends(get_db),
):
    """
    Reconstruye la fórmula re-aplicando los deltas de las citas completadas.
    Descarta las correcciones manuales.
    """
    return await formula_service.rebuild_formula(
        db, user_id, actor=user, ip_address=_get_client_ip(request)
    )


@router.get("/{formula_id}", response_model=FormulaResponse)
async def get_formula(
    formula_id: UUID,
    user: User = Depends(require_permission("formula", "read")),
    db: AsyncSession = Depends(get_db),
):
    return await formula_service.get_formula(db, formula_id)


@router.put("/{formula_id}/teeth/{tooth_number}/{part}", response_model=FormulaResponse)
async def update_tooth_region(
    formula_id: UUID,
    tooth_number: int,
    part: str,
    data: ToothStatusUpdate,
    request: Request,
    user: User = Depends(require_permission("formula", "update")),
    db: AsyncSession = Depends(get_db),
):
    """
    Corrige el estado de una región de la pieza: `whole`, `gum`, `roots`
    o una clave de segmento (`mid`, `rt`, `lt`, `rb`, `lb`, ...).
    """
    return await formula_service.update_tooth_region(
        db,
        formula_id,
        tooth_number,
        part,
        data,
        user=user,
        ip_address=_get_client_ip(request),
    )
