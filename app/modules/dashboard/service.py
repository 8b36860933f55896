"""
Agregador del dashboard

Cada bloque (ventas, clientes, inventario, actividad reciente) se calcula con
sus propias lecturas; si uno falla se registra y se devuelve su valor por
defecto sin afectar a los demás.
"""
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional

from dateutil.relativedelta import relativedelta

from app.common.entity_service import STORE_UNAVAILABLE_MESSAGE
from app.common.responses import ServiceResponse
from app.common.time_utils import MONTH_NAMES, local_midnight_utc, local_today, store_timezone, utcnow
from app.core.config import settings
from app.gateway.base import Condition, DataStore
from app.modules.books.service import minimum_stock
from app.modules.dashboard.schemas import CustomerSummary, InventorySummary, SalesSummary
from app.modules.sales.schemas import PaymentStatus
from app.modules.sales.service import UNIDENTIFIED_CUSTOMER, sale_link

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 4

# TODO: calcular contra el período anterior cuando exista histórico de clientes e inventario
CUSTOMER_TREND_PLACEHOLDER = 5
INVENTORY_TREND_PLACEHOLDER = -2


def calculate_trend(current: Decimal, previous: Decimal) -> int:
    """Variación porcentual redondeada; 0 si el período anterior no tiene ventas."""
    if not previous:
        return 0
    change = (Decimal(str(current)) - Decimal(str(previous))) / Decimal(str(previous)) * 100
    return int(change.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _plural(amount: int, singular: str) -> str:
    return f"{amount} {singular}{'' if amount == 1 else 's'} atrás"


def format_relative_time(timestamp: datetime, now: Optional[datetime] = None) -> str:
    """Tiempo relativo en portugués ("5 minutos atrás", "03 de março")."""
    now = now or utcnow()
    seconds = (now - timestamp).total_seconds()
    if seconds < 60:
        return "Agora mesmo"
    minutes = int(seconds // 60)
    if minutes < 60:
        return _plural(minutes, "minuto")
    hours = minutes // 60
    if hours < 24:
        return _plural(hours, "hora")
    days = hours // 24
    if days < 30:
        return _plural(days, "dia")
    local = timestamp.replace(tzinfo=timezone.utc).astimezone(store_timezone())
    return f"{local.day:02d} de {MONTH_NAMES[local.month - 1]}"


def format_currency(value: Any) -> str:
    """R$ 1.234,56"""
    formatted = f"{Decimal(str(value or 0)):,.2f}"
    return "R$ " + formatted.replace(",", "_").replace(".", ",").replace("_", ".")


class DashboardService:
    """Resumen del dashboard a partir del almacén de datos."""

    def __init__(self, store: Optional[DataStore]):
        self.store = store

    def _safe(self, name: str, func: Callable[[datetime], Any], default: Any, now: datetime) -> Any:
        try:
            return func(now)
        except Exception as e:
            logger.error(f"Error calculando {name} del dashboard: {e}")
            return default

    def _customer_names(self, customer_ids) -> Dict[str, str]:
        names = {}
        for customer_id in customer_ids:
            if not customer_id or customer_id in names:
                continue
            customer = self.store.get("customers", customer_id)
            names[customer_id] = (customer or {}).get("name") or UNIDENTIFIED_CUSTOMER
        return names

    # ===== bloques =====

    def sales_summary(self, now: datetime) -> Dict[str, Any]:
        today = local_today(now)
        month_start = today.replace(day=1)
        last_month_start = month_start - relativedelta(months=1)

        sales = self.store.select("sales", conditions=[
            Condition("created_at", "gte", local_midnight_utc(last_month_start)),
            Condition("payment_status", "ne", PaymentStatus.CANCELED.value),
        ])

        today_from = local_midnight_utc(today)
        month_from = local_midnight_utc(month_start)
        totals = {"today": Decimal("0"), "month": Decimal("0"), "last_month": Decimal("0")}
        for sale in sales:
            amount = Decimal(str(sale.get("total_amount") or 0))
            created_at = sale["created_at"]
            if created_at >= month_from:
                totals["month"] += amount
                if created_at >= today_from:
                    totals["today"] += amount
            else:
                totals["last_month"] += amount

        return {**totals, "trend": calculate_trend(totals["month"], totals["last_month"])}

    def customer_summary(self, now: datetime) -> Dict[str, Any]:
        total = self.store.count("customers")
        window_start = now - timedelta(days=settings.ACTIVE_CUSTOMER_WINDOW_DAYS)
        recent = self.store.select("sales", conditions=[
            Condition("created_at", "gte", window_start),
            Condition("customer_id", "not_null"),
        ])
        active = len({sale["customer_id"] for sale in recent})
        return {"total": total, "active": active, "trend": CUSTOMER_TREND_PLACEHOLDER}

    def inventory_summary(self, now: datetime) -> Dict[str, Any]:
        books = self.store.select("books")
        return {
            "total_units": sum(book.get("quantity") or 0 for book in books),
            "total_products": len(books),
            "low_stock": sum(1 for book in books if (book.get("quantity") or 0) <= minimum_stock(book)),
            "trend": INVENTORY_TREND_PLACEHOLDER,
        }

    def recent_activities(self, now: datetime) -> List[Dict[str, Any]]:
        """Por ahora solo ventas recientes."""
        sales = self.store.select("sales", order_by="created_at", descending=True, limit=RECENT_ACTIVITY_LIMIT)
        names = self._customer_names(sale.get("customer_id") for sale in sales)
        activities = []
        for sale in sales:
            sale_id = str(sale["id"])
            customer = names.get(sale.get("customer_id"), UNIDENTIFIED_CUSTOMER)
            activities.append({
                "id": sale_id,
                "type": "sale",
                "description": f"Venda de {format_currency(sale.get('total_amount'))} para {customer}",
                "time": format_relative_time(sale["created_at"], now),
                "link": sale_link(sale_id),
                "created_at": sale["created_at"],
            })
        return activities

    def get_summary(self, now: Optional[datetime] = None) -> ServiceResponse:
        if self.store is None:
            return ServiceResponse.failure(STORE_UNAVAILABLE_MESSAGE)

        now = now or utcnow()
        return ServiceResponse.success({
            "sales": self._safe("ventas", self.sales_summary, SalesSummary().model_dump(), now),
            "customers": self._safe("clientes", self.customer_summary, CustomerSummary().model_dump(), now),
            "inventory": self._safe("inventario", self.inventory_summary, InventorySummary().model_dump(), now),
            "recent_activities": self._safe("actividad reciente", self.recent_activities, [], now),
        })
