"""
Servicio de reportes

Cada reporte lee las tablas existentes (ventas, líneas, libros, clientes,
transacciones) y agrega en memoria. Las ventas canceladas no cuentan.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from app.common.entity_service import EntityService
from app.common.responses import ServiceResponse
from app.common.time_utils import local_day_bounds, local_today, to_local_date
from app.core.config import settings
from app.gateway.base import Condition, DataStore
from app.gateway.memory import JsonFileDataStore
from app.modules.books.service import minimum_stock
from app.modules.finance.schemas import TransactionStatus, TransactionType
from app.modules.finance.service import FinancialService
from app.modules.reports.schemas import TimeRange
from app.modules.sales.schemas import PaymentStatus

logger = logging.getLogger(__name__)

UNKNOWN_BOOK = "Livro não encontrado"
UNKNOWN_CUSTOMER = "Cliente não encontrado"
NO_CATEGORY = "Sem categoria"
NO_REGION = "Não informado"

CENT = Decimal("0.01")


def resolve_report_period(
    time_range: TimeRange,
    start: Optional[date] = None,
    end: Optional[date] = None,
    today: Optional[date] = None,
) -> Tuple[date, date]:
    """
    Fechas (inclusive) de un rango predefinido.

    week cubre los últimos 7 días más hoy; month, quarter y year cubren el
    período de calendario completo. custom usa hoy para la fecha que falte.
    """
    today = today or local_today()
    if time_range == TimeRange.TODAY:
        return today, today
    if time_range == TimeRange.YESTERDAY:
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday
    if time_range == TimeRange.WEEK:
        return today - timedelta(days=7), today
    if time_range == TimeRange.MONTH:
        first = today.replace(day=1)
        return first, first + relativedelta(months=1, days=-1)
    if time_range == TimeRange.QUARTER:
        first = date(today.year, (today.month - 1) // 3 * 3 + 1, 1)
        return first, first + relativedelta(months=3, days=-1)
    if time_range == TimeRange.YEAR:
        return date(today.year, 1, 1), date(today.year, 12, 31)

    start, end = start or today, end or today
    if end < start:
        raise ValueError("La fecha final no puede ser anterior a la inicial")
    return start, end


def format_period(start: date, end: date) -> str:
    return f"{start:%d/%m/%Y} - {end:%d/%m/%Y}"


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value or 0))


def percentage(value: Decimal, total: Decimal) -> Decimal:
    if not total:
        return Decimal("0.00")
    return (value / total * 100).quantize(CENT, rounding=ROUND_HALF_UP)


def category_values(values: Dict[str, Decimal], total: Optional[Decimal] = None) -> List[Dict[str, Any]]:
    """Lista {category, value, percentage} ordenada por valor descendente."""
    total = sum(values.values(), Decimal("0")) if total is None else total
    rows = [
        {"category": category, "value": value, "percentage": percentage(value, total)}
        for category, value in values.items()
    ]
    return sorted(rows, key=lambda row: (-row["value"], row["category"]))


def _add(bucket: Dict[str, Decimal], key: str, amount: Decimal) -> None:
    bucket[key] = bucket.get(key, Decimal("0")) + amount


class ReportService(EntityService):
    """Reportes de ventas, inventario, finanzas y clientes."""

    table = "reports"

    def __init__(self, store: Optional[DataStore], local_store: Optional[JsonFileDataStore] = None):
        super().__init__(store)
        self.local_store = local_store

    # ===== lecturas comunes =====

    def _sales_between(self, start: date, end: date) -> List[Dict[str, Any]]:
        lower, upper = local_day_bounds(start, end)
        return self.store.select("sales", conditions=[
            Condition("created_at", "gte", lower),
            Condition("created_at", "lt", upper),
            Condition("payment_status", "ne", PaymentStatus.CANCELED.value),
        ])

    def _items_of(self, sales: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        sale_ids = [sale["id"] for sale in sales]
        if not sale_ids:
            return []
        return self.store.select("sale_items", conditions=[Condition("sale_id", "in", sale_ids)])

    def _books_by_id(self, book_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        books = {}
        for book_id in set(book_ids):
            book = self.store.get("books", book_id)
            if book:
                books[book_id] = book
            else:
                logger.warning(f"Libro {book_id} con ventas no encontrado en el catálogo")
        return books

    # ===== ventas =====

    def get_sales_report(
        self, time_range: TimeRange = TimeRange.MONTH,
        start_date: Optional[date] = None, end_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> ServiceResponse:
        try:
            start, end = resolve_report_period(time_range, start_date, end_date, today)
        except ValueError as e:
            return ServiceResponse.failure(str(e))

        def _report():
            sales = self._sales_between(start, end)
            items = self._items_of(sales)
            books = self._books_by_id(item["book_id"] for item in items)

            total_sales = sum((_decimal(sale.get("total_amount")) for sale in sales), Decimal("0"))
            by_date: Dict[str, Decimal] = {}
            for sale in sales:
                _add(by_date, to_local_date(sale["created_at"]).isoformat(), _decimal(sale.get("total_amount")))

            by_category: Dict[str, Decimal] = {}
            for item in items:
                category = (books.get(item["book_id"]) or {}).get("category") or NO_CATEGORY
                _add(by_category, category, _decimal(item.get("total")))

            sales_count = len(sales)
            return {
                "period": format_period(start, end),
                "period_start": start,
                "period_end": end,
                "total_sales": total_sales,
                "sales_count": sales_count,
                "total_items": sum(item.get("quantity") or 0 for item in items),
                "average_ticket": (total_sales / sales_count).quantize(CENT, rounding=ROUND_HALF_UP)
                if sales_count else Decimal("0.00"),
                "total_customers": len({sale["customer_id"] for sale in sales if sale.get("customer_id")}),
                "sales_by_category": category_values(by_category),
                "sales_by_date": [{"date": key, "value": by_date[key]} for key in sorted(by_date)],
            }

        return self._run("get_sales_report", _report)

    # ===== inventario =====

    def top_selling_items(self, since: date, until: date) -> List[Dict[str, Any]]:
        """Libros con más ingresos en el intervalo, hasta REPORT_TOP_LIMIT."""
        items = self._items_of(self._sales_between(since, until))
        totals: Dict[str, Dict[str, Any]] = {}
        for item in items:
            entry = totals.setdefault(str(item["book_id"]), {"quantity": 0, "revenue": Decimal("0")})
            entry["quantity"] += item.get("quantity") or 0
            entry["revenue"] += _decimal(item.get("total"))

        books = self._books_by_id(totals)
        ranking = [
            {
                "id": book_id,
                "title": (books.get(book_id) or {}).get("title") or UNKNOWN_BOOK,
                "quantity": entry["quantity"],
                "revenue": entry["revenue"],
            }
            for book_id, entry in totals.items()
        ]
        ranking.sort(key=lambda row: (-row["revenue"], -row["quantity"], row["title"]))
        return ranking[:settings.REPORT_TOP_LIMIT]

    def get_inventory_report(self, today: Optional[date] = None) -> ServiceResponse:
        """Foto actual del stock; los más vendidos miran los últimos TOP_SELLING_WINDOW_DAYS días."""
        today = today or local_today()

        def _report():
            books = self.store.select("books")
            total_value = Decimal("0")
            by_category: Dict[str, Decimal] = {}
            for book in books:
                value = (book.get("quantity") or 0) * _decimal(book.get("purchase_price"))
                total_value += value
                _add(by_category, book.get("category") or NO_CATEGORY, value)

            window_start = today - timedelta(days=settings.TOP_SELLING_WINDOW_DAYS)
            return {
                "total_items": sum(book.get("quantity") or 0 for book in books),
                "total_value": total_value,
                "low_stock_items": sum(
                    1 for book in books if (book.get("quantity") or 0) <= minimum_stock(book)
                ),
                "value_by_category": category_values(by_category, total_value),
                "top_selling_items": self.top_selling_items(window_start, today),
            }

        return self._run("get_inventory_report", _report)

    # ===== financiero =====

    def get_financial_report(
        self, time_range: TimeRange = TimeRange.MONTH,
        start_date: Optional[date] = None, end_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> ServiceResponse:
        """Receitas, despesas y lucro; lee las transacciones como el módulo financiero."""
        try:
            start, end = resolve_report_period(time_range, start_date, end_date, today)
        except ValueError as e:
            return ServiceResponse.failure(str(e))

        finance = FinancialService(self.store, self.local_store)

        def _report():
            rows = finance.select_transactions(conditions=[
                Condition("status", "ne", TransactionStatus.CANCELADA.value),
                Condition("data", "gte", start),
                Condition("data", "lte", end),
            ])
            revenue_by_category: Dict[str, Decimal] = {}
            expenses_by_category: Dict[str, Decimal] = {}
            profit_by_month: Dict[str, Decimal] = {}
            for row in rows:
                amount = _decimal(row.get("valor"))
                day = to_local_date(row["data"])
                month = f"{day.year}-{day.month:02d}"
                categoria = row.get("categoria") or NO_CATEGORY
                if row.get("tipo") == TransactionType.RECEITA.value:
                    _add(revenue_by_category, categoria, amount)
                    _add(profit_by_month, month, amount)
                else:
                    _add(expenses_by_category, categoria, amount)
                    _add(profit_by_month, month, -amount)

            revenue = sum(revenue_by_category.values(), Decimal("0"))
            expenses = sum(expenses_by_category.values(), Decimal("0"))
            profit = revenue - expenses
            return {
                "period_start": start,
                "period_end": end,
                "revenue": revenue,
                "expenses": expenses,
                "profit": profit,
                "profit_margin": percentage(profit, revenue),
                "revenue_by_category": category_values(revenue_by_category, revenue),
                "expenses_by_category": category_values(expenses_by_category, expenses),
                "profit_by_month": [
                    {"date": key, "value": profit_by_month[key]} for key in sorted(profit_by_month)
                ],
            }

        return finance._run("get_financial_report", _report)

    # ===== clientes =====

    def get_customer_report(
        self, time_range: TimeRange = TimeRange.MONTH,
        start_date: Optional[date] = None, end_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> ServiceResponse:
        """
        Clientes nuevos y activos del período.

        - nuevos: registrados dentro del período
        - activos: con al menos una venta en el período
        - por región: todos los clientes agrupados por estado
        """
        try:
            start, end = resolve_report_period(time_range, start_date, end_date, today)
        except ValueError as e:
            return ServiceResponse.failure(str(e))

        def _report():
            customers = self.store.select("customers")
            lower, upper = local_day_bounds(start, end)
            new_customers = sum(
                1 for customer in customers
                if customer.get("created_at") and lower <= customer["created_at"] < upper
            )

            regions: Dict[str, Decimal] = {}
            for customer in customers:
                _add(regions, (customer.get("state") or "").strip().upper() or NO_REGION, Decimal("1"))

            purchases: Dict[str, Dict[str, Any]] = {}
            for sale in self._sales_between(start, end):
                if not sale.get("customer_id"):
                    continue
                entry = purchases.setdefault(str(sale["customer_id"]), {"purchases": 0, "total_spent": Decimal("0")})
                entry["purchases"] += 1
                entry["total_spent"] += _decimal(sale.get("total_amount"))

            names = {str(customer["id"]): customer.get("name") for customer in customers}
            top = [
                {"id": customer_id, "name": names.get(customer_id) or UNKNOWN_CUSTOMER, **entry}
                for customer_id, entry in purchases.items()
            ]
            top.sort(key=lambda row: (-row["total_spent"], -row["purchases"], row["name"]))

            return {
                "period_start": start,
                "period_end": end,
                "total_customers": len(customers),
                "new_customers": new_customers,
                "active_customers": len(purchases),
                "top_customers": top[:settings.REPORT_TOP_LIMIT],
                "customers_by_region": category_values(regions, Decimal(len(customers))),
            }

        return self._run("get_customer_report", _report)
