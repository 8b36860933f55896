from fastapi import APIRouter, Query, status
from typing import Optional

from app.common.entity_service import Pagination
from app.common.responses import unwrap
from app.dependencies.storeDependencies import session_dependency, store_dependency
from app.modules.inventory.service import StockService
from app.modules.inventory.schemas import (
    InventoryAdjustment, InventoryCountRequest, InventoryCountResult, MovementReason,
    MovementResult, MovementType, StockMovementCreate, StockMovementList
)

stock_router = APIRouter(prefix="/stock", tags=["Stock Management"])


def _responsible(context, fallback: Optional[str]) -> Optional[str]:
    if fallback:
        return fallback
    if context.session is not None:
        return context.session.name or context.session.email
    return None


@stock_router.post("/movements", response_model=MovementResult, status_code=status.HTTP_201_CREATED)
def create_movement(movement: StockMovementCreate, store: store_dependency, context: session_dependency):
    """Create stock movement and update the book quantity."""
    movement.responsible = _responsible(context, movement.responsible)
    return unwrap(StockService(store).create_movement(movement))


@stock_router.get("/movements", response_model=StockMovementList)
def list_movements(
    store: store_dependency,
    book_id: Optional[str] = Query(None),
    movement_type: Optional[MovementType] = Query(None, alias="type"),
    reason: Optional[MovementReason] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """Historial de movimientos de stock."""
    pagination = Pagination(page=page, page_size=page_size)
    return unwrap(StockService(store).list_movements(book_id, movement_type, reason, pagination))


@stock_router.post("/adjustments", response_model=MovementResult)
def adjust_inventory(adjustment: InventoryAdjustment, store: store_dependency, context: session_dependency):
    """Ajustar el stock de un libro a la cantidad contada."""
    return unwrap(StockService(store).adjust_inventory(
        adjustment.book_id,
        adjustment.counted_quantity,
        responsible=_responsible(context, None),
        notes=adjustment.notes,
    ))


@stock_router.post("/inventory-count", response_model=InventoryCountResult)
def run_inventory_count(request: InventoryCountRequest, store: store_dependency, context: session_dependency):
    """Procesar un conteo físico completo."""
    return unwrap(StockService(store).run_inventory_count(
        request.lines,
        responsible=_responsible(context, None),
        notes=request.notes,
    ))
