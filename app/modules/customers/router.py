from fastapi import APIRouter, Query, status
from typing import Optional

from app.common.entity_service import Pagination
from app.common.responses import unwrap
from app.dependencies.storeDependencies import store_dependency
from app.modules.customers.schemas import (
    CustomerCreate, CustomerList, CustomerOut, CustomerPurchaseSummary, CustomerStatus,
    CustomerType, CustomerUpdate
)
from app.modules.customers.service import CustomerService

customers_router = APIRouter(prefix="/customers", tags=["Customers"])


@customers_router.get("/", response_model=CustomerList)
def list_customers(
    store: store_dependency,
    customer_type: Optional[CustomerType] = Query(None),
    status_filter: Optional[CustomerStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Nombre, email, CPF o CNPJ"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """Listar clientes con filtros y paginación."""
    service = CustomerService(store)
    pagination = Pagination(page=page, page_size=page_size, order_by="name", descending=False)
    if search:
        return unwrap(service.search_customers(search, pagination))
    filters = {
        "customer_type": customer_type.value if customer_type else None,
        "status": status_filter.value if status_filter else None,
    }
    return unwrap(service.get_all(filters, pagination))


@customers_router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(customer_id: str, store: store_dependency):
    return unwrap(CustomerService(store).get_by_id(customer_id))


@customers_router.get("/{customer_id}/purchases", response_model=CustomerPurchaseSummary)
def get_customer_purchases(customer_id: str, store: store_dependency):
    """Resumen de compras del cliente."""
    return unwrap(CustomerService(store).get_purchase_summary(customer_id))


@customers_router.post("/", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
def create_customer(customer: CustomerCreate, store: store_dependency):
    """Crear nuevo cliente"""
    return unwrap(CustomerService(store).create(customer.model_dump(mode="json")))


@customers_router.patch("/{customer_id}", response_model=CustomerOut)
def update_customer(customer_id: str, customer: CustomerUpdate, store: store_dependency):
    return unwrap(CustomerService(store).update(customer_id, customer.model_dump(mode="json", exclude_unset=True)))


@customers_router.delete("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_customer(customer_id: str, store: store_dependency):
    unwrap(CustomerService(store).delete(customer_id))
