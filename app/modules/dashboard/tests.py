"""
Tests del dashboard

- Ventas del día, del mes y del mes anterior (sin canceladas) con tendencia
- Clientes activos en la ventana de actividad
- Inventario con stock bajo
- Actividad reciente con tiempo relativo en portugués
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from app.modules.dashboard.service import (
    DashboardService, calculate_trend, format_currency, format_relative_time
)

# 12:00 en São Paulo
NOW = datetime(2024, 3, 15, 15, 0)


def _sale(store, sale_id, created_at, total, status="paid", customer_id="1"):
    store.insert("sales", {
        "id": sale_id,
        "customer_id": customer_id,
        "user_id": "op-1",
        "total_amount": Decimal(total),
        "payment_method": "pix",
        "payment_status": status,
        "created_at": created_at,
    })


@pytest.fixture
def dashboard_sales(memory_store):
    _sale(memory_store, "s1", datetime(2024, 3, 15, 14, 0), "100.00")
    _sale(memory_store, "s2", datetime(2024, 3, 5, 18, 0), "50.00", status="pending", customer_id="2")
    _sale(memory_store, "s3", datetime(2024, 2, 10, 12, 0), "120.00")
    _sale(memory_store, "s4", datetime(2024, 3, 15, 10, 0), "999.00", status="canceled", customer_id="3")
    _sale(memory_store, "s5", datetime(2024, 1, 20, 12, 0), "70.00")
    return memory_store


class FailingSalesReads:
    """Envoltorio cuyo select de ventas falla"""

    def __init__(self, store):
        self.store = store

    def __getattr__(self, name):
        return getattr(self.store, name)

    def select(self, table, **kwargs):
        if table == "sales":
            raise RuntimeError("timeout")
        return self.store.select(table, **kwargs)


class TestFormatting:
    """Tests de formato"""

    def test_trend(self):
        assert calculate_trend(Decimal("150"), Decimal("120")) == 25
        assert calculate_trend(Decimal("50"), Decimal("100")) == -50
        assert calculate_trend(Decimal("10"), Decimal("30")) == -67

    def test_trend_without_previous_period(self):
        assert calculate_trend(Decimal("100"), Decimal("0")) == 0

    def test_relative_time(self):
        assert format_relative_time(NOW - timedelta(seconds=30), NOW) == "Agora mesmo"
        assert format_relative_time(NOW - timedelta(minutes=1), NOW) == "1 minuto atrás"
        assert format_relative_time(NOW - timedelta(minutes=5), NOW) == "5 minutos atrás"
        assert format_relative_time(NOW - timedelta(hours=3), NOW) == "3 horas atrás"
        assert format_relative_time(NOW - timedelta(days=2), NOW) == "2 dias atrás"

    def test_relative_time_older_than_a_month(self):
        assert format_relative_time(NOW - timedelta(days=40), NOW) == "04 de fevereiro"

    def test_currency(self):
        assert format_currency(Decimal("1234.5")) == "R$ 1.234,50"
        assert format_currency(None) == "R$ 0,00"


class TestDashboardService:
    """Tests del agregador"""

    def test_sales_summary_excludes_canceled(self, dashboard_sales):
        sales = DashboardService(dashboard_sales).sales_summary(NOW)
        assert sales["today"] == Decimal("100.00")
        assert sales["month"] == Decimal("150.00")
        assert sales["last_month"] == Decimal("120.00")
        assert sales["trend"] == 25

    def test_active_customers_window(self, memory_store):
        _sale(memory_store, "a1", NOW - timedelta(days=10), "10.00", customer_id="1")
        _sale(memory_store, "a2", NOW - timedelta(days=30), "10.00", customer_id="2")
        _sale(memory_store, "a3", NOW - timedelta(days=120), "10.00", customer_id="3")
        _sale(memory_store, "a4", NOW - timedelta(days=5), "10.00", customer_id="1")

        customers = DashboardService(memory_store).customer_summary(NOW)
        assert customers["total"] == 3
        assert customers["active"] == 2

    def test_inventory_summary(self, memory_store):
        memory_store.update("books", "2", {"quantity": 8})
        inventory = DashboardService(memory_store).inventory_summary(NOW)
        assert inventory["total_units"] == 73
        assert inventory["total_products"] == 3
        assert inventory["low_stock"] == 1

    def test_recent_activities(self, dashboard_sales):
        activities = DashboardService(dashboard_sales).recent_activities(NOW)
        assert [activity["id"] for activity in activities] == ["s1", "s4", "s2", "s3"]
        first = activities[0]
        assert first["description"] == "Venda de R$ 100,00 para Maria Silva"
        assert first["time"] == "1 hora atrás"
        assert first["link"] == "/dashboard/vendas/s1"

    def test_failed_block_does_not_break_summary(self, dashboard_sales):
        summary = DashboardService(FailingSalesReads(dashboard_sales)).get_summary(NOW)
        assert summary.ok
        assert summary.data["sales"] == {
            "today": Decimal("0"), "month": Decimal("0"), "last_month": Decimal("0"), "trend": 0
        }
        assert summary.data["customers"]["active"] == 0
        assert summary.data["recent_activities"] == []
        assert summary.data["inventory"]["total_units"] == 80

    def test_without_store(self):
        response = DashboardService(None).get_summary(NOW)
        assert response.error == "Almacén de datos no disponible"


class TestDashboardAPI:
    def test_summary(self, client):
        response = client.get("/dashboard/summary")
        assert response.status_code == 200
        body = response.json()
        assert body["inventory"]["total_units"] == 80
        assert body["customers"]["total"] == 3
        assert body["recent_activities"] == []
        assert Decimal(body["sales"]["today"]) == Decimal("0")
