"""
Tests para el módulo de Clientes

- Validaciones de documentos brasileños (CPF/CNPJ) y teléfono
- Búsqueda por nombre, email o documento
- Resumen de compras sin ventas canceladas
- Endpoints CRUD
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from app.common.time_utils import utcnow
from app.common.validators import (
    format_cnpj, format_cpf, validate_brazil_phone, validate_cnpj, validate_cpf
)
from app.modules.customers.schemas import CustomerCreate, CustomerType, CustomerUpdate
from app.modules.customers.service import CustomerService


@pytest.fixture
def sample_customer_data():
    return {
        "name": "Ana Souza",
        "email": "ana.souza@example.com",
        "phone": "(11) 98765-4321",
        "city": "Campinas",
        "state": "sp",
        "customer_type": "pf",
        "cpf": "52998224725",
    }


@pytest.fixture
def customer_sales(memory_store):
    """Tres compras del cliente 1, una de ellas cancelada"""
    now = utcnow()
    rows = [
        {"id": "s1", "total_amount": Decimal("100.00"), "payment_status": "paid", "days": 1},
        {"id": "s2", "total_amount": Decimal("50.00"), "payment_status": "pending", "days": 3},
        {"id": "s3", "total_amount": Decimal("999.00"), "payment_status": "canceled", "days": 0},
    ]
    for row in rows:
        memory_store.insert("sales", {
            "id": row["id"],
            "customer_id": "1",
            "user_id": "u1",
            "total_amount": row["total_amount"],
            "payment_method": "pix",
            "payment_status": row["payment_status"],
            "created_at": now - timedelta(days=row["days"]),
        })
    return rows


class TestBrazilValidators:
    """Tests de los validadores de documentos"""

    def test_valid_cpf(self):
        assert validate_cpf("529.982.247-25")
        assert validate_cpf("11144477735")

    def test_invalid_cpf(self):
        assert not validate_cpf("52998224724")
        assert not validate_cpf("111.111.111-11")
        assert not validate_cpf("123")

    def test_valid_cnpj(self):
        assert validate_cnpj("11.222.333/0001-81")

    def test_invalid_cnpj(self):
        assert not validate_cnpj("11222333000182")
        assert not validate_cnpj("00000000000000")

    def test_formatting(self):
        assert format_cpf("52998224725") == "529.982.247-25"
        assert format_cnpj("11222333000181") == "11.222.333/0001-81"
        assert format_cpf("123") is None

    def test_phone(self):
        assert validate_brazil_phone("+55 11 99999-8888")
        assert validate_brazil_phone("(11) 3333-4444")
        assert not validate_brazil_phone("12345")


class TestCustomerSchemas:
    """Tests de validación de clientes"""

    def test_pf_formats_cpf_and_drops_cnpj(self, sample_customer_data):
        sample_customer_data["cnpj"] = "11222333000181"
        customer = CustomerCreate(**sample_customer_data)
        assert customer.cpf == "529.982.247-25"
        assert customer.cnpj is None
        assert customer.state == "SP"

    def test_pf_requires_cpf(self, sample_customer_data):
        del sample_customer_data["cpf"]
        with pytest.raises(ValueError, match="CPF es obligatorio para persona física"):
            CustomerCreate(**sample_customer_data)

    def test_pf_rejects_invalid_cpf(self, sample_customer_data):
        sample_customer_data["cpf"] = "52998224724"
        with pytest.raises(ValueError, match="CPF inválido"):
            CustomerCreate(**sample_customer_data)

    def test_pj_requires_valid_cnpj(self, sample_customer_data):
        sample_customer_data.update({"customer_type": "pj", "cnpj": "11222333000182"})
        with pytest.raises(ValueError, match="CNPJ inválido"):
            CustomerCreate(**sample_customer_data)

    def test_pj_formats_cnpj(self, sample_customer_data):
        sample_customer_data.update({"customer_type": "pj", "cnpj": "11222333000181"})
        customer = CustomerCreate(**sample_customer_data)
        assert customer.customer_type == CustomerType.PJ
        assert customer.cnpj == "11.222.333/0001-81"
        assert customer.cpf is None

    def test_update_validates_cpf(self):
        with pytest.raises(ValueError, match="CPF inválido"):
            CustomerUpdate(cpf="52998224724")

    def test_invalid_phone(self, sample_customer_data):
        sample_customer_data["phone"] = "999"
        with pytest.raises(ValueError):
            CustomerCreate(**sample_customer_data)


class TestCustomerService:
    """Tests del servicio de clientes"""

    def test_search_by_document(self, memory_store):
        response = CustomerService(memory_store).search_customers("111.444")
        assert [customer["name"] for customer in response.data["items"]] == ["João Pereira"]

    def test_search_by_name(self, memory_store):
        response = CustomerService(memory_store).search_customers("empresa")
        assert response.data["total"] == 1
        assert response.data["items"][0]["id"] == "3"

    def test_purchase_summary_excludes_canceled(self, memory_store, customer_sales):
        response = CustomerService(memory_store).get_purchase_summary("1")
        assert response.ok
        summary = response.data
        assert summary["total_purchases"] == 2
        assert summary["total_spent"] == Decimal("150.00")
        assert [sale["id"] for sale in summary["recent_purchases"]] == ["s1", "s2"]
        assert summary["last_purchase_date"] == summary["recent_purchases"][0]["created_at"]

    def test_purchase_summary_without_sales(self, memory_store):
        summary = CustomerService(memory_store).get_purchase_summary("2").data
        assert summary["total_purchases"] == 0
        assert summary["total_spent"] == Decimal("0")
        assert summary["last_purchase_date"] is None

    def test_purchase_summary_missing_customer(self, memory_store):
        response = CustomerService(memory_store).get_purchase_summary("99")
        assert response.error == "Cliente con ID 99 no encontrado"


class TestCustomersAPI:
    """Tests de los endpoints de clientes"""

    def test_list_filters_by_type(self, client):
        response = client.get("/customers/", params={"customer_type": "pj"})
        assert response.status_code == 200
        assert [customer["id"] for customer in response.json()["items"]] == ["3"]

    def test_create_customer(self, client, sample_customer_data):
        response = client.post("/customers/", json=sample_customer_data)
        assert response.status_code == 201
        body = response.json()
        assert body["cpf"] == "529.982.247-25"
        assert body["state"] == "SP"

    def test_create_pf_without_cpf(self, client, sample_customer_data):
        del sample_customer_data["cpf"]
        response = client.post("/customers/", json=sample_customer_data)
        assert response.status_code == 422

    def test_purchases_endpoint(self, client, customer_sales):
        response = client.get("/customers/1/purchases")
        assert response.status_code == 200
        body = response.json()
        assert body["total_purchases"] == 2
        assert Decimal(body["total_spent"]) == Decimal("150.00")

    def test_update_and_delete(self, client, memory_store):
        response = client.patch("/customers/2", json={"notes": "Prefere retirar na loja"})
        assert response.status_code == 200
        assert memory_store.get("customers", "2")["notes"] == "Prefere retirar na loja"

        assert client.delete("/customers/2").status_code == 204
        assert client.get("/customers/2").status_code == 404
