import logging
from decimal import Decimal
from typing import Optional

from app.common.entity_service import EntityService, Pagination
from app.common.responses import ServiceResponse
from app.gateway.base import Condition, SearchTerm

logger = logging.getLogger(__name__)

CUSTOMER_SEARCH_COLUMNS = ("name", "email", "cpf", "cnpj")
RECENT_PURCHASES_LIMIT = 5


class CustomerService(EntityService):
    """Servicio de clientes."""

    table = "customers"
    not_found_label = "Cliente"

    def search_customers(self, term: str, pagination: Optional[Pagination] = None) -> ServiceResponse:
        pagination = pagination or Pagination(order_by="name", descending=False)
        return self.get_all(pagination=pagination, search=SearchTerm(CUSTOMER_SEARCH_COLUMNS, term.strip()))

    def get_purchase_summary(self, customer_id: str) -> ServiceResponse:
        """Total de compras, monto gastado y últimas compras (excluye canceladas)."""
        customer = self.get_by_id(customer_id)
        if not customer.ok:
            return customer

        def _summary():
            sales = self.store.select(
                "sales",
                filters={"customer_id": customer_id},
                conditions=[Condition("payment_status", "ne", "canceled")],
                order_by="created_at",
                descending=True,
            )
            total_spent = sum((Decimal(str(sale["total_amount"])) for sale in sales), Decimal("0"))
            return {
                "customer_id": customer_id,
                "total_purchases": len(sales),
                "total_spent": total_spent,
                "last_purchase_date": sales[0]["created_at"] if sales else None,
                "recent_purchases": sales[:RECENT_PURCHASES_LIMIT],
            }

        return self._run("get_purchase_summary", _summary)
