"""
Tests del módulo Financiero

- Gastos recurrentes: validación previa y generación de parcelas
- Transiciones de estado y saldo de transacciones confirmadas
- Respaldo en el almacén local cuando el backend falla
- Comprobantes embebidos cuando el storage deniega la subida
- Contas a pagar por vencimiento y flujo de caja mensual
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from app.common.responses import ServiceResponse
from app.gateway.base import StoreUnavailableError
from app.modules.finance.receipts import ReceiptStorage, ReceiptValidationError, is_access_denied
from app.modules.finance.recurring import (
    RecurringExpenseError, build_installments, create_recurring_expenses, validate_recurrence
)
from app.modules.finance.router import get_receipt_storage
from app.main import app
from app.common.time_utils import local_today
from app.modules.finance.schemas import (
    CashFlowPeriod, DueFilter, PayableOrder, PayablesFilters, Periodicity, TransactionFilters, TransactionStatus
)
from app.modules.finance.service import (
    FinancialService, current_balance, month_label, normalize_transaction, resolve_cash_flow_period
)


@pytest.fixture
def base_expense():
    """Despesa base ya creada (10/01 con vencimiento 20/01)"""
    return {
        "id": "TRX010",
        "descricao": "Aluguel da loja",
        "valor": Decimal("3500.00"),
        "tipo": "despesa",
        "data": date(2024, 1, 10),
        "data_vencimento": date(2024, 1, 20),
        "categoria": "Aluguel",
        "status": "pendente",
        "forma_pagamento": "boleto",
        "observacoes": None,
        "referencia_externa": None,
    }


@pytest.fixture
def finance(memory_store, local_store):
    """Servicio en modo sin backend: opera sobre el almacén local"""
    return FinancialService(memory_store, local_store)


@pytest.fixture
def expense_payload():
    return {
        "descricao": "Aluguel da loja",
        "valor": "3500.00",
        "data": "2024-01-10",
        "data_vencimento": "2024-01-20",
        "categoria": "Aluguel",
        "forma_pagamento": "boleto",
        "recorrencia": {"periodicidade": "mensal", "data_fim": "2024-04-10"},
    }


class UnavailableRemoteStore:
    """Backend real que rechaza toda operación"""

    is_remote = True

    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise StoreUnavailableError("connection refused")
        return _fail


class DeniedError(Exception):
    def __init__(self, code):
        super().__init__(f"S3 operation failed; code: {code}")
        self.code = code


class FakeMinio:
    def __init__(self, error=None):
        self.error = error
        self.objects = {}

    def bucket_exists(self, bucket_name):
        return True

    def make_bucket(self, bucket_name):
        raise AssertionError("el bucket ya existe")

    def put_object(self, bucket_name, object_name, data, length, content_type):
        if self.error is not None:
            raise self.error
        self.objects[object_name] = data.read()


class TestRecurrence:
    """Tests de la generación de gastos recurrentes"""

    def test_end_date_is_required(self):
        assert validate_recurrence(date(2024, 1, 10), None, Periodicity.MENSAL) == "La fecha final es obligatoria"

    def test_end_date_after_start(self):
        message = validate_recurrence(date(2024, 1, 10), date(2024, 1, 10), Periodicity.MENSAL)
        assert message == "La fecha final debe ser posterior a la inicial"

    def test_minimum_period(self):
        message = validate_recurrence(date(2024, 1, 10), date(2024, 6, 10), Periodicity.ANUAL)
        assert message == "El período mínimo para recurrencia anual es de 12 meses"
        message = validate_recurrence(date(2024, 1, 10), date(2024, 2, 9), Periodicity.MENSAL)
        assert message == "El período mínimo para recurrencia mensal es de 1 mes"

    def test_valid_recurrence(self):
        assert validate_recurrence(date(2024, 1, 10), date(2024, 4, 10), Periodicity.TRIMESTRAL) is None

    def test_monthly_installments_keep_due_gap(self, base_expense):
        installments = build_installments(base_expense, Periodicity.MENSAL, date(2024, 4, 10))
        assert [item["data"] for item in installments] == [
            date(2024, 2, 10), date(2024, 3, 10), date(2024, 4, 10)
        ]
        assert [item["data_vencimento"] for item in installments] == [
            date(2024, 2, 20), date(2024, 3, 20), date(2024, 4, 20)
        ]
        assert all(item["observacoes"] == "(Parcela recorrente - mensal)" for item in installments)
        assert all("id" not in item for item in installments)

    def test_month_end_is_clamped(self, base_expense):
        base_expense.update({"data": date(2024, 1, 31), "data_vencimento": None, "observacoes": "Contrato"})
        installments = build_installments(base_expense, Periodicity.MENSAL, date(2024, 3, 31))
        assert [item["data"] for item in installments] == [date(2024, 2, 29), date(2024, 3, 31)]
        assert installments[0]["data_vencimento"] == date(2024, 2, 29)
        assert installments[0]["observacoes"] == "Contrato (Parcela recorrente - mensal)"

    def test_create_collects_all_installments(self, base_expense, finance):
        created = create_recurring_expenses(
            finance.create_transaction, base_expense, Periodicity.MENSAL, date(2024, 4, 10), max_workers=3
        )
        assert sorted(row["data"] for row in created) == [date(2024, 2, 10), date(2024, 3, 10), date(2024, 4, 10)]
        assert len({row["id"] for row in created}) == 3

    def test_first_error_is_reported_with_created(self, base_expense):
        def create(installment):
            if installment["data"] == date(2024, 3, 10):
                return ServiceResponse.failure("valor rechazado")
            return ServiceResponse.success(dict(installment, id=str(installment["data"])))

        with pytest.raises(RecurringExpenseError) as exc_info:
            create_recurring_expenses(create, base_expense, Periodicity.MENSAL, date(2024, 4, 10))
        assert exc_info.value.message == "valor rechazado"
        assert [row["id"] for row in exc_info.value.created] == ["2024-02-10", "2024-04-10"]


class TestFinancialService:
    """Tests de transacciones financieras"""

    def test_balance_counts_only_confirmed(self, finance):
        page = finance.list_transactions().data
        assert page["total"] == 5
        assert page["current_balance"] == Decimal("-992.70")

    def test_current_balance(self):
        rows = [
            {"valor": Decimal("100.00"), "tipo": "receita", "status": "confirmada"},
            {"valor": Decimal("30.00"), "tipo": "despesa", "status": "confirmada"},
            {"valor": Decimal("999.00"), "tipo": "receita", "status": "pendente"},
        ]
        assert current_balance(rows) == Decimal("70.00")

    def test_list_filters(self, finance):
        page = finance.list_transactions(TransactionFilters(tipo="despesa")).data
        assert [row["id"] for row in page["transacoes"]] == ["TRX004"]

        page = finance.list_transactions(TransactionFilters(busca="pedido #v00"), page=1, limit=2).data
        assert page["total"] == 4
        assert page["total_pages"] == 2
        assert len(page["transacoes"]) == 2

    def test_normalize_converts_datetimes_to_local_dates(self):
        row = normalize_transaction({"valor": "10", "data": "2024-03-02T01:30:00Z", "status": TransactionStatus.PENDENTE})
        assert row["data"] == date(2024, 3, 1)
        assert row["valor"] == Decimal("10.00")
        assert row["status"] == "pendente"

    def test_status_transitions(self, finance, local_store):
        response = finance.change_status("TRX003", TransactionStatus.CONFIRMADA)
        assert response.ok
        assert response.data["status"] == "confirmada"
        assert response.data["data_pagamento"] is not None

        assert finance.change_status("TRX003", TransactionStatus.CANCELADA).ok
        response = finance.change_status("TRX003", TransactionStatus.PENDENTE)
        assert response.error == "Transición de estado no permitida: cancelada → pendente"

    def test_confirmed_cannot_go_back_to_pending(self, finance):
        response = finance.change_status("TRX001", TransactionStatus.PENDENTE)
        assert not response.ok

    def test_missing_transaction(self, finance):
        assert finance.get_transaction("TRX999").error == "Transacción con ID TRX999 no encontrado"

    def test_summary_excludes_canceled(self, finance):
        finance.change_status("TRX005", TransactionStatus.CANCELADA)
        summary = finance.get_summary().data
        assert summary["total_receitas"] == Decimal("426.05")
        assert summary["total_despesas"] == Decimal("1250.00")
        assert summary["saldo"] == Decimal("-823.95")
        assert summary["por_categoria"]["Compra de Livros"]["despesas"] == Decimal("1250.00")

    def test_duplicate_reference_returns_existing(self, finance, local_store):
        row = {
            "descricao": "Venda #77 - Maria Silva",
            "valor": Decimal("20.00"),
            "tipo": "receita",
            "data": date(2024, 5, 1),
            "categoria": "Vendas",
            "status": "confirmada",
            "forma_pagamento": "pix",
            "vinculo_id": "77",
            "vinculo_tipo": "venda",
            "referencia_externa": "venda:77",
        }
        first = finance.create_transaction(row)
        second = finance.write_direct(row)
        assert second.ok
        assert second.data["id"] == first.data["id"]
        assert local_store.count("financial_transactions", filters={"vinculo_id": "77"}) == 1


class TestLocalFallback:
    """Tests del respaldo local con el backend caído"""

    def test_create_falls_back_to_local_store(self, local_store):
        service = FinancialService(UnavailableRemoteStore(), local_store)
        response = service.create_transaction({
            "descricao": "Conta de luz",
            "valor": Decimal("230.00"),
            "tipo": "despesa",
            "data": date(2024, 5, 5),
            "categoria": "Utilidades",
            "status": "pendente",
            "forma_pagamento": "boleto",
        })
        assert response.ok
        assert response.data["id"] == "TRX006"
        assert local_store.get("financial_transactions", "TRX006")["descricao"] == "Conta de luz"

    def test_list_falls_back_to_local_store(self, local_store):
        service = FinancialService(UnavailableRemoteStore(), local_store)
        response = service.list_transactions()
        assert response.ok
        assert response.data["total"] == 5

    def test_remote_store_is_used_when_available(self, sql_store, local_store):
        service = FinancialService(sql_store, local_store)
        response = service.create_transaction({
            "descricao": "Venda noturna",
            "valor": Decimal("50.00"),
            "tipo": "receita",
            "data": date(2024, 3, 1),
            "categoria": "Vendas",
            "status": "confirmada",
            "forma_pagamento": "dinheiro",
        })
        assert response.ok
        assert sql_store.get("financial_transactions", response.data["id"]) is not None
        assert local_store.count("financial_transactions") == 5


class TestReceipts:
    """Tests de subida de comprobantes"""

    def test_upload_returns_public_url(self):
        client = FakeMinio()
        reference, inline = ReceiptStorage(client=client, bucket_name="comprovantes").upload(
            "nota fiscal.pdf", b"%PDF-1.4", "application/pdf"
        )
        assert not inline
        assert reference.endswith("nota_fiscal.pdf")
        assert list(client.objects.values()) == [b"%PDF-1.4"]

    def test_access_denied_falls_back_to_data_uri(self):
        storage = ReceiptStorage(client=FakeMinio(DeniedError("AccessDenied")), bucket_name="comprovantes")
        reference, inline = storage.upload("recibo.png", b"abc", "image/png")
        assert inline
        assert reference == "data:image/png;base64,YWJj"

    def test_other_storage_errors_propagate(self):
        storage = ReceiptStorage(client=FakeMinio(DeniedError("InternalError")), bucket_name="comprovantes")
        with pytest.raises(DeniedError):
            storage.upload("recibo.png", b"abc", "image/png")

    def test_invalid_content_type(self):
        storage = ReceiptStorage(client=FakeMinio(), bucket_name="comprovantes")
        with pytest.raises(ReceiptValidationError):
            storage.upload("script.sh", b"echo", "text/x-shellscript")

    def test_is_access_denied_by_message(self):
        assert is_access_denied(RuntimeError("new row violates row-level security policy"))
        assert not is_access_denied(RuntimeError("timeout"))


class TestFinancialAPI:
    """Tests de los endpoints financieros"""

    def test_list_transactions(self, client):
        response = client.get("/financial/transactions", params={"status": "pendente"})
        assert response.status_code == 200
        body = response.json()
        assert [row["id"] for row in body["transacoes"]] == ["TRX003"]
        assert Decimal(body["current_balance"]) == Decimal("-992.70")

    def test_create_recurring_expense(self, client, expense_payload, local_store):
        response = client.post("/financial/expenses", json=expense_payload)
        assert response.status_code == 201
        body = response.json()
        assert body["despesa"]["tipo"] == "despesa"
        assert body["despesa"]["data"] == "2024-01-10"
        assert sorted((row["data"], row["data_vencimento"]) for row in body["parcelas"]) == [
            ("2024-02-10", "2024-02-20"),
            ("2024-03-10", "2024-03-20"),
            ("2024-04-10", "2024-04-20"),
        ]
        assert body["parcelas_erro"] is None
        assert local_store.count("financial_transactions", filters={"categoria": "Aluguel"}) == 4

    def test_invalid_recurrence_writes_nothing(self, client, expense_payload, local_store):
        expense_payload["recorrencia"] = {"periodicidade": "semestral", "data_fim": "2024-04-10"}
        response = client.post("/financial/expenses", json=expense_payload)
        assert response.status_code == 400
        assert response.json()["detail"] == "El período mínimo para recurrencia semestral es de 6 meses"
        assert local_store.count("financial_transactions") == 5

    def test_missing_end_date(self, client, expense_payload):
        expense_payload["recorrencia"] = {"periodicidade": "mensal"}
        response = client.post("/financial/expenses", json=expense_payload)
        assert response.status_code == 400
        assert response.json()["detail"] == "La fecha final es obligatoria"

    def test_change_status_and_delete(self, client, local_store):
        response = client.patch("/financial/transactions/TRX003/status", json={"status": "cancelada"})
        assert response.status_code == 200
        assert response.json()["status"] == "cancelada"

        assert client.delete("/financial/transactions/TRX003").status_code == 204
        assert client.get("/financial/transactions/TRX003").status_code == 404

    def test_transactions_for_sale(self, client):
        response = client.get("/financial/transactions/sale/V001")
        assert [row["id"] for row in response.json()] == ["TRX001"]

    def test_receipt_upload_inline_when_denied(self, client):
        app.dependency_overrides[get_receipt_storage] = lambda: ReceiptStorage(
            client=FakeMinio(DeniedError("AccessDenied")), bucket_name="comprovantes"
        )
        response = client.post(
            "/financial/receipts",
            files={"file": ("recibo.pdf", b"%PDF", "application/pdf")},
        )
        assert response.status_code == 201
        assert response.json()["inline"] is True
        assert response.json()["comprovante"].startswith("data:application/pdf;base64,")


TODAY = date(2024, 3, 15)


def _transaction(trx_id, valor, tipo="despesa", categoria="Fornecedores", status="pendente",
                 data=date(2024, 3, 1), vencimento=None, descricao=None):
    return {
        "id": trx_id,
        "descricao": descricao or f"Lançamento {trx_id}",
        "valor": Decimal(valor),
        "tipo": tipo,
        "data": data,
        "data_vencimento": vencimento,
        "data_pagamento": None,
        "categoria": categoria,
        "status": status,
        "forma_pagamento": "boleto",
        "observacoes": None,
        "vinculo_id": None,
        "vinculo_tipo": None,
        "comprovante": None,
        "link_venda": None,
        "referencia_externa": None,
    }


@pytest.fixture
def payables(memory_store, empty_local_store):
    """Despesas pendentes: atrasada, de hoy, próxima, lejana y sin vencimiento"""
    empty_local_store.insert("financial_transactions", [
        _transaction("A", "1000.00", categoria="Aluguel", vencimento=date(2024, 3, 10), descricao="Aluguel março"),
        _transaction("B", "200.00", vencimento=date(2024, 3, 15), descricao="Boleto Editora Rocco"),
        _transaction("C", "300.00", vencimento=date(2024, 3, 20), descricao="Boleto Editora Intrínseca"),
        _transaction("D", "80.00", categoria="Energia", vencimento=date(2024, 4, 30)),
        _transaction("E", "50.00", categoria="Internet"),
        _transaction("F", "999.00", status="confirmada", vencimento=date(2024, 3, 1)),
        _transaction("G", "500.00", tipo="receita", categoria="Vendas", vencimento=date(2024, 3, 12)),
    ])
    return FinancialService(memory_store, empty_local_store)


@pytest.fixture
def cash_flow(memory_store, empty_local_store):
    empty_local_store.insert("financial_transactions", [
        _transaction("R1", "300.00", tipo="receita", categoria="Vendas", status="confirmada", data=date(2024, 3, 5)),
        _transaction("R2", "100.00", tipo="receita", categoria="Vendas", status="confirmada", data=date(2024, 2, 10)),
        _transaction("D1", "150.00", data=date(2024, 3, 8)),
        _transaction("D2", "50.00", categoria="Aluguel", status="confirmada", data=date(2024, 1, 20)),
        _transaction("X1", "999.00", tipo="receita", categoria="Vendas", status="cancelada", data=date(2024, 3, 9)),
        _transaction("R0", "70.00", tipo="receita", categoria="Vendas", status="confirmada", data=date(2023, 12, 20)),
    ])
    return FinancialService(memory_store, empty_local_store)


class TestAccountsPayable:
    """Tests de contas a pagar"""

    def test_totals_by_due_date(self, payables):
        result = payables.get_accounts_payable(today=TODAY)
        assert result.ok
        data = result.data
        assert data["total_pendente"] == Decimal("1630.00")
        assert data["total_atrasado"] == Decimal("1000.00")
        # Hoy y los próximos 7 días
        assert data["total_proximos_dias"] == Decimal("500.00")
        assert data["quantidade_atrasadas"] == 1
        assert data["categorias"] == ["Aluguel", "Energia", "Fornecedores", "Internet"]

    def test_only_pending_expenses_are_listed(self, payables):
        contas = payables.get_accounts_payable(today=TODAY).data["contas"]
        assert [row["id"] for row in contas] == ["A", "B", "C", "D", "E"]

    def test_overdue_flags(self, payables):
        contas = {row["id"]: row for row in payables.get_accounts_payable(today=TODAY).data["contas"]}
        assert contas["A"]["vencida"] is True
        assert contas["A"]["dias_atraso"] == 5
        assert contas["B"]["vence_hoje"] is True
        assert contas["B"]["vencida"] is False
        assert contas["E"]["dias_atraso"] == 0

    @pytest.mark.parametrize("due_filter, expected", [
        (DueFilter.ATRASADOS, ["A"]),
        (DueFilter.HOJE, ["B"]),
        (DueFilter.PROXIMOS, ["C"]),
    ])
    def test_due_filters(self, payables, due_filter, expected):
        contas = payables.get_accounts_payable(PayablesFilters(vencimento=due_filter), today=TODAY).data["contas"]
        assert [row["id"] for row in contas] == expected

    def test_filters_do_not_change_totals(self, payables):
        data = payables.get_accounts_payable(PayablesFilters(categoria="Energia"), today=TODAY).data
        assert [row["id"] for row in data["contas"]] == ["D"]
        assert data["total_pendente"] == Decimal("1630.00")

    def test_search_and_due_range(self, payables):
        filters = PayablesFilters(busca="editora", data_inicio=date(2024, 3, 16), data_fim=date(2024, 3, 31))
        contas = payables.get_accounts_payable(filters, today=TODAY).data["contas"]
        assert [row["id"] for row in contas] == ["C"]

    def test_order_by_value(self, payables):
        filters = PayablesFilters(ordenacao=PayableOrder.VALOR_DESC)
        contas = payables.get_accounts_payable(filters, today=TODAY).data["contas"]
        assert [row["id"] for row in contas] == ["A", "C", "B", "D", "E"]

    def test_order_by_due_date_descending_keeps_undated_last(self, payables):
        filters = PayablesFilters(ordenacao=PayableOrder.VENCIMENTO_DESC)
        contas = payables.get_accounts_payable(filters, today=TODAY).data["contas"]
        assert [row["id"] for row in contas] == ["D", "C", "B", "A", "E"]


class TestCashFlow:
    """Tests del flujo de caja"""

    def test_period_resolution(self):
        assert resolve_cash_flow_period(CashFlowPeriod.MES, None, None, TODAY) == (date(2024, 3, 1), TODAY)
        assert resolve_cash_flow_period(CashFlowPeriod.TRIMESTRE, None, None, TODAY) == (date(2024, 1, 1), TODAY)
        assert resolve_cash_flow_period(CashFlowPeriod.ANO, None, None, TODAY) == (date(2024, 1, 1), TODAY)

    def test_custom_period_requires_both_dates(self):
        with pytest.raises(ValueError, match="requiere data_inicio y data_fim"):
            resolve_cash_flow_period(CashFlowPeriod.PERSONALIZADO, date(2024, 1, 1), None, TODAY)

    def test_month_label(self):
        assert month_label("2024-03") == "Março/2024"
        assert month_label("2023-12") == "Dezembro/2023"

    def test_current_month(self, cash_flow):
        data = cash_flow.get_cash_flow(CashFlowPeriod.MES, today=TODAY).data
        assert data["resumo"]["total_receitas"] == Decimal("300.00")
        assert data["resumo"]["total_despesas"] == Decimal("150.00")
        assert data["resumo"]["saldo"] == Decimal("150.00")
        assert [month["mes"] for month in data["meses"]] == ["Março/2024"]

    def test_quarter_by_month_most_recent_first(self, cash_flow):
        data = cash_flow.get_cash_flow(CashFlowPeriod.TRIMESTRE, today=TODAY).data
        assert data["resumo"]["saldo"] == Decimal("200.00")
        assert data["resumo"]["receitas_por_categoria"] == {"Vendas": Decimal("400.00")}
        assert data["resumo"]["despesas_por_categoria"] == {
            "Fornecedores": Decimal("150.00"), "Aluguel": Decimal("50.00"),
        }
        assert [month["chave"] for month in data["meses"]] == ["2024-03", "2024-02", "2024-01"]
        assert data["meses"][2]["saldo"] == Decimal("-50.00")

    def test_canceled_transactions_are_excluded(self, cash_flow):
        data = cash_flow.get_cash_flow(
            CashFlowPeriod.PERSONALIZADO, date(2024, 3, 9), date(2024, 3, 9), today=TODAY
        ).data
        assert data["resumo"]["total_receitas"] == Decimal("0")
        assert data["meses"] == []

    def test_custom_period(self, cash_flow):
        data = cash_flow.get_cash_flow(
            CashFlowPeriod.PERSONALIZADO, date(2023, 12, 1), date(2023, 12, 31), today=TODAY
        ).data
        assert data["resumo"]["total_receitas"] == Decimal("70.00")

    def test_invalid_custom_period_is_a_failure(self, cash_flow):
        result = cash_flow.get_cash_flow(CashFlowPeriod.PERSONALIZADO, today=TODAY)
        assert not result.ok
        assert "requiere data_inicio y data_fim" in result.error


class TestPayablesAndCashFlowAPI:
    """Tests de los endpoints de contas a pagar y fluxo de caixa"""

    def test_payables(self, client, local_store):
        due = local_today() - timedelta(days=2)
        local_store.insert("financial_transactions", _transaction(
            "TRX900", "420.00", categoria="Aluguel", data=due, vencimento=due
        ))
        response = client.get("/financial/payables")
        assert response.status_code == 200
        body = response.json()
        assert [row["id"] for row in body["contas"]] == ["TRX900"]
        assert body["contas"][0]["dias_atraso"] == 2
        assert body["quantidade_atrasadas"] == 1

    def test_payables_invalid_filter(self, client):
        response = client.get("/financial/payables", params={"vencimento": "amanha"})
        assert response.status_code == 422

    def test_cash_flow(self, client):
        response = client.get("/financial/cash-flow", params={"periodo": "ano"})
        assert response.status_code == 200
        body = response.json()
        assert body["data_fim"] == local_today().isoformat()
        assert body["meses"]

    def test_custom_cash_flow_without_dates(self, client):
        response = client.get("/financial/cash-flow", params={"periodo": "personalizado"})
        assert response.status_code == 400
