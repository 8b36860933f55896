"""
Reports Router

Reportes de ventas, inventario, financiero y clientes. Todos aceptan
`export=csv` para descargar la tabla principal.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from app.common.responses import unwrap
from app.dependencies.storeDependencies import local_store_dependency, store_dependency
from app.modules.reports.schemas import (
    CustomerReport, FinancialReport, InventoryReport, SalesReport, TimeRange
)
from app.modules.reports.service import ReportService, resolve_report_period
from app.modules.reports.utils import (
    CSV_HEADERS,
    create_csv_response,
    prepare_customer_report_csv,
    prepare_financial_report_csv,
    prepare_inventory_report_csv,
    prepare_sales_report_csv,
)

reports_router = APIRouter(prefix="/reports", tags=["Reports"])

EXPORT_QUERY = Query(None, pattern="^(csv)$", description="Formato de exportación: csv")


def _validate_period(time_range: TimeRange, start_date: Optional[date], end_date: Optional[date]) -> None:
    try:
        resolve_report_period(time_range, start_date, end_date)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@reports_router.get("/sales", response_model=None)
def sales_report(
    store: store_dependency,
    time_range: TimeRange = Query(TimeRange.MONTH),
    start_date: Optional[date] = Query(None, description="Solo con time_range=custom"),
    end_date: Optional[date] = Query(None, description="Solo con time_range=custom"),
    export: Optional[str] = EXPORT_QUERY,
):
    """Total vendido, ítems, ticket medio, por categoría y por día."""
    _validate_period(time_range, start_date, end_date)
    report = unwrap(ReportService(store).get_sales_report(time_range, start_date, end_date))
    if export == "csv":
        return create_csv_response(
            prepare_sales_report_csv(report), "relatorio_vendas.csv", CSV_HEADERS["sales"]
        )
    return SalesReport(**report)


@reports_router.get("/inventory", response_model=None)
def inventory_report(store: store_dependency, export: Optional[str] = EXPORT_QUERY):
    """Valor del stock, stock bajo y libros más vendidos."""
    report = unwrap(ReportService(store).get_inventory_report())
    if export == "csv":
        return create_csv_response(
            prepare_inventory_report_csv(report), "relatorio_estoque.csv", CSV_HEADERS["inventory"]
        )
    return InventoryReport(**report)


@reports_router.get("/financial", response_model=None)
def financial_report(
    store: store_dependency,
    local_store: local_store_dependency,
    time_range: TimeRange = Query(TimeRange.MONTH),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    export: Optional[str] = EXPORT_QUERY,
):
    """Receitas, despesas, lucro y margen del período."""
    _validate_period(time_range, start_date, end_date)
    report = unwrap(
        ReportService(store, local_store).get_financial_report(time_range, start_date, end_date)
    )
    if export == "csv":
        return create_csv_response(
            prepare_financial_report_csv(report), "relatorio_financeiro.csv", CSV_HEADERS["financial"]
        )
    return FinancialReport(**report)


@reports_router.get("/customers", response_model=None)
def customer_report(
    store: store_dependency,
    time_range: TimeRange = Query(TimeRange.MONTH),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    export: Optional[str] = EXPORT_QUERY,
):
    """Clientes nuevos, activos, mejores clientes y distribución por estado."""
    _validate_period(time_range, start_date, end_date)
    report = unwrap(ReportService(store).get_customer_report(time_range, start_date, end_date))
    if export == "csv":
        return create_csv_response(
            prepare_customer_report_csv(report), "relatorio_clientes.csv", CSV_HEADERS["customers"]
        )
    return CustomerReport(**report)
