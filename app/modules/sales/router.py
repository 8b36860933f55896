from fastapi import APIRouter, HTTPException, Query, status
from typing import List, Optional

from app.common.entity_service import Pagination
from app.common.responses import unwrap
from app.dependencies.storeDependencies import local_store_dependency, session_dependency, store_dependency
from app.modules.sales.schemas import (
    PaymentStatus, ProductSaleHistoryEntry, ReconcileResult, SaleCreate, SaleCreated,
    SaleDetail, SaleList, SaleOut, SaleStatusUpdate,
)
from app.modules.sales.service import (
    OperatorRequiredError, SaleFinalizationError, SaleService, SaleValidationError
)

sales_router = APIRouter(prefix="/sales", tags=["Sales"])


@sales_router.post("/", response_model=SaleCreated, status_code=status.HTTP_201_CREATED)
def finalize_sale(
    sale: SaleCreate,
    context: session_dependency,
    store: store_dependency,
    local_store: local_store_dependency,
):
    """
    Finalizar una venta: venta, líneas, baja de stock y receita vinculada.

    Solo la venta y sus líneas son obligatorias; los demás fallos se
    devuelven en `warnings`.
    """
    try:
        return SaleService(store, local_store).finalize_sale(sale, context)
    except OperatorRequiredError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    except SaleValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    except SaleFinalizationError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)


@sales_router.get("/", response_model=SaleList)
def list_sales(
    store: store_dependency,
    local_store: local_store_dependency,
    payment_status: Optional[PaymentStatus] = Query(None),
    customer_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """Listar ventas, las más recientes primero."""
    pagination = Pagination(page=page, page_size=page_size)
    return unwrap(SaleService(store, local_store).list_sales(payment_status, customer_id, pagination))


@sales_router.get("/recent", response_model=List[SaleOut])
def recent_sales(
    store: store_dependency,
    local_store: local_store_dependency,
    limit: int = Query(10, ge=1, le=100),
):
    return unwrap(SaleService(store, local_store).fetch_recent_sales(limit))


@sales_router.post("/reconcile", response_model=ReconcileResult)
def reconcile_sales(store: store_dependency, local_store: local_store_dependency):
    """Crear las receitas faltantes de ventas pagadas."""
    return unwrap(SaleService(store, local_store).reconcile_sales())


@sales_router.get("/book/{book_id}/history", response_model=List[ProductSaleHistoryEntry])
def book_sale_history(book_id: str, store: store_dependency, local_store: local_store_dependency):
    return unwrap(SaleService(store, local_store).fetch_product_sale_history(book_id))


@sales_router.get("/{sale_id}", response_model=SaleDetail)
def get_sale(sale_id: str, store: store_dependency, local_store: local_store_dependency):
    return unwrap(SaleService(store, local_store).fetch_sale_details(sale_id))


@sales_router.patch("/{sale_id}/status", response_model=SaleOut)
def update_sale_status(
    sale_id: str,
    payload: SaleStatusUpdate,
    store: store_dependency,
    local_store: local_store_dependency,
):
    """Cambiar el estado de pago (canceled devuelve stock y cancela la receita)."""
    return unwrap(SaleService(store, local_store).update_payment_status(
        sale_id, payload.payment_status, payload.notes
    ))
