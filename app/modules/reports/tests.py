"""
Tests del módulo de Reportes

- Rangos de fechas predefinidos y personalizados
- Reporte de ventas sin canceladas, por categoría y por día local
- Inventario valorado a precio de compra y libros más vendidos
- Financiero con lucro por mes y margen
- Clientes nuevos, activos y por estado
- Exportación CSV
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from app.modules.reports.schemas import TimeRange
from app.modules.reports.service import (
    ReportService, category_values, format_period, percentage, resolve_report_period
)
from app.modules.reports.utils import create_csv_response, format_csv_value

TODAY = date(2024, 3, 15)


def _sale(store, sale_id, created_at, total, items, status="paid", customer_id="1"):
    store.insert("sales", {
        "id": sale_id,
        "customer_id": customer_id,
        "user_id": "op-1",
        "total_amount": Decimal(total),
        "payment_method": "pix",
        "payment_status": status,
        "created_at": created_at,
    })
    store.insert("sale_items", [
        {"sale_id": sale_id, "book_id": book_id, "quantity": quantity,
         "unit_price": Decimal(line_total) / quantity, "discount": Decimal("0"), "total": Decimal(line_total)}
        for book_id, quantity, line_total in items
    ])


@pytest.fixture
def report_store(memory_store):
    """Ventas de febrero y marzo de 2024, una cancelada y una sin cliente"""
    _sale(memory_store, "v1", datetime(2024, 3, 10, 15, 0), "110.00", [("1", 2, "90.00"), ("3", 1, "20.00")])
    # 23h del 11/03 en São Paulo
    _sale(memory_store, "v2", datetime(2024, 3, 12, 2, 0), "45.50", [("2", 1, "45.50")],
          status="pending", customer_id="2")
    _sale(memory_store, "v3", datetime(2024, 3, 14, 12, 0), "449.50", [("1", 5, "449.50")], status="canceled")
    _sale(memory_store, "v4", datetime(2024, 2, 20, 12, 0), "89.90", [("1", 1, "89.90")], customer_id=None)
    memory_store.insert("customers", {
        "id": "4",
        "name": "Carla Souza",
        "customer_type": "pf",
        "status": "active",
        "state": None,
        "created_at": datetime(2024, 3, 1, 12, 0),
    })
    return memory_store


@pytest.fixture
def reports(report_store, empty_local_store):
    return ReportService(report_store, empty_local_store)


class TestReportPeriods:
    """Tests de rangos de fechas"""

    @pytest.mark.parametrize("time_range, expected", [
        (TimeRange.TODAY, (date(2024, 3, 15), date(2024, 3, 15))),
        (TimeRange.YESTERDAY, (date(2024, 3, 14), date(2024, 3, 14))),
        (TimeRange.WEEK, (date(2024, 3, 8), date(2024, 3, 15))),
        (TimeRange.MONTH, (date(2024, 3, 1), date(2024, 3, 31))),
        (TimeRange.QUARTER, (date(2024, 1, 1), date(2024, 3, 31))),
        (TimeRange.YEAR, (date(2024, 1, 1), date(2024, 12, 31))),
    ])
    def test_predefined_ranges(self, time_range, expected):
        assert resolve_report_period(time_range, today=TODAY) == expected

    def test_quarter_of_november(self):
        assert resolve_report_period(TimeRange.QUARTER, today=date(2024, 11, 5)) == (
            date(2024, 10, 1), date(2024, 12, 31)
        )

    def test_custom_range_defaults_to_today(self):
        assert resolve_report_period(TimeRange.CUSTOM, start=date(2024, 3, 1), today=TODAY) == (
            date(2024, 3, 1), TODAY
        )

    def test_custom_range_end_before_start(self):
        with pytest.raises(ValueError):
            resolve_report_period(TimeRange.CUSTOM, date(2024, 3, 10), date(2024, 3, 1), TODAY)

    def test_format_period(self):
        assert format_period(date(2024, 3, 1), date(2024, 3, 31)) == "01/03/2024 - 31/03/2024"

    def test_percentages(self):
        assert percentage(Decimal("1"), Decimal("3")) == Decimal("33.33")
        assert percentage(Decimal("5"), Decimal("0")) == Decimal("0.00")
        rows = category_values({"B": Decimal("10"), "A": Decimal("30")})
        assert [row["category"] for row in rows] == ["A", "B"]
        assert rows[0]["percentage"] == Decimal("75.00")


class TestSalesReport:
    """Tests del reporte de ventas"""

    def test_month(self, reports):
        data = reports.get_sales_report(TimeRange.MONTH, today=TODAY).data
        assert data["period"] == "01/03/2024 - 31/03/2024"
        assert data["total_sales"] == Decimal("155.50")
        assert data["sales_count"] == 2
        assert data["total_items"] == 4
        assert data["average_ticket"] == Decimal("77.75")
        assert data["total_customers"] == 2

    def test_by_category(self, reports):
        data = reports.get_sales_report(TimeRange.MONTH, today=TODAY).data
        assert data["sales_by_category"] == [
            {"category": "Fantasia", "value": Decimal("135.50"), "percentage": Decimal("87.14")},
            {"category": "Clássico", "value": Decimal("20.00"), "percentage": Decimal("12.86")},
        ]

    def test_by_local_date(self, reports):
        data = reports.get_sales_report(TimeRange.MONTH, today=TODAY).data
        assert data["sales_by_date"] == [
            {"date": "2024-03-10", "value": Decimal("110.00")},
            {"date": "2024-03-11", "value": Decimal("45.50")},
        ]

    def test_empty_period(self, reports):
        data = reports.get_sales_report(TimeRange.TODAY, today=date(2023, 1, 1)).data
        assert data["total_sales"] == Decimal("0")
        assert data["average_ticket"] == Decimal("0.00")
        assert data["sales_by_category"] == []

    def test_invalid_custom_range(self, reports):
        result = reports.get_sales_report(TimeRange.CUSTOM, date(2024, 3, 10), date(2024, 3, 1))
        assert not result.ok

    def test_without_store(self):
        assert ReportService(None).get_sales_report().error == "Almacén de datos no disponible"


class TestInventoryReport:
    """Tests del reporte de inventario"""

    def test_stock_value(self, reports):
        data = reports.get_inventory_report(today=TODAY).data
        assert data["total_items"] == 80
        assert data["total_value"] == Decimal("2002.50")
        assert data["low_stock_items"] == 0
        assert data["value_by_category"][0] == {
            "category": "Fantasia", "value": Decimal("1372.50"), "percentage": Decimal("68.54"),
        }

    def test_low_stock(self, reports, report_store):
        report_store.update("books", "2", {"quantity": 8})
        assert reports.get_inventory_report(today=TODAY).data["low_stock_items"] == 1

    def test_top_selling_items(self, reports):
        top = reports.get_inventory_report(today=TODAY).data["top_selling_items"]
        assert [(item["id"], item["quantity"], item["revenue"]) for item in top] == [
            ("1", 3, Decimal("179.90")),
            ("2", 1, Decimal("45.50")),
            ("3", 1, Decimal("20.00")),
        ]
        assert top[0]["title"] == "O Senhor dos Anéis"

    def test_deleted_book_keeps_its_sales(self, reports, report_store):
        report_store.delete("books", "3")
        top = reports.get_inventory_report(today=TODAY).data["top_selling_items"]
        assert top[-1]["title"] == "Livro não encontrado"


class TestFinancialReport:
    """Tests del reporte financiero"""

    @pytest.fixture
    def ledger(self, empty_local_store):
        rows = [
            ("receita", "300.00", "Vendas", "confirmada", date(2024, 3, 5)),
            ("receita", "100.00", "Vendas", "confirmada", date(2024, 2, 10)),
            ("despesa", "150.00", "Fornecedores", "pendente", date(2024, 3, 8)),
            ("despesa", "50.00", "Aluguel", "confirmada", date(2024, 2, 1)),
            ("receita", "999.00", "Vendas", "cancelada", date(2024, 3, 9)),
        ]
        empty_local_store.insert("financial_transactions", [
            {"descricao": f"{tipo} {categoria}", "valor": Decimal(valor), "tipo": tipo, "categoria": categoria,
             "status": status, "data": data, "forma_pagamento": "pix"}
            for tipo, valor, categoria, status, data in rows
        ])
        return empty_local_store

    def test_quarter(self, reports, ledger):
        data = reports.get_financial_report(TimeRange.QUARTER, today=TODAY).data
        assert data["revenue"] == Decimal("400.00")
        assert data["expenses"] == Decimal("200.00")
        assert data["profit"] == Decimal("200.00")
        assert data["profit_margin"] == Decimal("50.00")
        assert data["profit_by_month"] == [
            {"date": "2024-02", "value": Decimal("50.00")},
            {"date": "2024-03", "value": Decimal("150.00")},
        ]

    def test_by_category(self, reports, ledger):
        data = reports.get_financial_report(TimeRange.QUARTER, today=TODAY).data
        assert data["revenue_by_category"] == [
            {"category": "Vendas", "value": Decimal("400.00"), "percentage": Decimal("100.00")},
        ]
        assert [row["category"] for row in data["expenses_by_category"]] == ["Fornecedores", "Aluguel"]

    def test_no_revenue_margin(self, reports, ledger):
        data = reports.get_financial_report(TimeRange.TODAY, today=TODAY).data
        assert data["revenue"] == Decimal("0")
        assert data["profit_margin"] == Decimal("0.00")


class TestCustomerReport:
    """Tests del reporte de clientes"""

    def test_year(self, reports):
        data = reports.get_customer_report(TimeRange.YEAR, today=TODAY).data
        assert data["total_customers"] == 4
        assert data["new_customers"] == 1
        # v4 no tiene cliente y v3 está cancelada
        assert data["active_customers"] == 2

    def test_top_customers(self, reports):
        top = reports.get_customer_report(TimeRange.YEAR, today=TODAY).data["top_customers"]
        assert top == [
            {"id": "1", "name": "Maria Silva", "purchases": 1, "total_spent": Decimal("110.00")},
            {"id": "2", "name": "João Pereira", "purchases": 1, "total_spent": Decimal("45.50")},
        ]

    def test_by_region(self, reports):
        regions = reports.get_customer_report(TimeRange.YEAR, today=TODAY).data["customers_by_region"]
        assert [(row["category"], row["percentage"]) for row in regions] == [
            ("SP", Decimal("75.00")), ("Não informado", Decimal("25.00")),
        ]


class TestCsvExport:
    """Tests de exportación CSV"""

    def test_csv_response(self):
        response = create_csv_response(
            [{"date": "2024-03-10", "value": Decimal("110.00"), "extra": "x"}],
            "relatorio.csv",
            {"date": "Data", "value": "Total vendido"},
        )
        assert response.media_type == "text/csv"
        assert response.headers["content-disposition"] == "attachment; filename=relatorio.csv"
        assert response.body.decode().splitlines() == ["Data,Total vendido", "2024-03-10,110.00"]

    def test_empty_csv_keeps_headers(self):
        response = create_csv_response([], "vazio.csv", {"date": "Data"})
        assert response.body.decode().splitlines() == ["Data"]

    def test_format_values(self):
        assert format_csv_value(None) == ""
        assert format_csv_value(True) == "Sim"
        assert format_csv_value(date(2024, 3, 1)) == "2024-03-01"


class TestReportsAPI:
    """Tests de los endpoints de reportes"""

    def test_sales_report(self, client, report_store):
        response = client.get("/reports/sales", params={
            "time_range": "custom", "start_date": "2024-03-01", "end_date": "2024-03-31",
        })
        assert response.status_code == 200
        body = response.json()
        assert body["period"] == "01/03/2024 - 31/03/2024"
        assert body["sales_count"] == 2
        assert Decimal(str(body["total_sales"])) == Decimal("155.50")

    def test_end_before_start(self, client):
        response = client.get("/reports/sales", params={
            "time_range": "custom", "start_date": "2024-03-31", "end_date": "2024-03-01",
        })
        assert response.status_code == 422

    def test_inventory_report(self, client):
        response = client.get("/reports/inventory")
        assert response.status_code == 200
        assert response.json()["total_items"] == 80

    def test_customers_csv(self, client, report_store):
        response = client.get("/reports/customers", params={
            "time_range": "custom", "start_date": "2024-01-01", "end_date": "2024-12-31", "export": "csv",
        })
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.splitlines()
        assert lines[0] == "ID,Cliente,Compras,Total gasto"
        assert lines[1] == "1,Maria Silva,1,110.00"

    def test_financial_report(self, client):
        response = client.get("/reports/financial", params={"time_range": "year"})
        assert response.status_code == 200
        assert "profit_margin" in response.json()

    def test_unknown_export_format(self, client):
        response = client.get("/reports/inventory", params={"export": "pdf"})
        assert response.status_code == 422
