from datetime import date
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from typing import Annotated, List, Optional

from app.common.responses import unwrap
from app.dependencies.storeDependencies import local_store_dependency, store_dependency
from app.modules.finance.receipts import ReceiptStorage, ReceiptValidationError
from app.modules.finance.recurring import (
    RecurringExpenseError, create_recurring_expenses, validate_recurrence
)
from app.modules.finance.schemas import (
    AccountsPayable, CashFlow, CashFlowPeriod, DueFilter, ExpenseCreate, ExpenseResult, FinancialSummary,
    LinkType, PayableOrder, PayablesFilters, ReceiptUploadResponse,
    TransactionCreate, TransactionFilters, TransactionOut, TransactionPage,
    TransactionStatus, TransactionStatusUpdate, TransactionType, TransactionUpdate,
)
from app.modules.finance.service import FinancialService

financial_router = APIRouter(prefix="/financial", tags=["Financial"])


def get_receipt_storage() -> ReceiptStorage:
    return ReceiptStorage()


receipt_storage_dependency = Annotated[ReceiptStorage, Depends(get_receipt_storage)]


@financial_router.get("/transactions", response_model=TransactionPage)
def list_transactions(
    store: store_dependency,
    local_store: local_store_dependency,
    tipo: Optional[TransactionType] = Query(None),
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    data_inicio: Optional[date] = Query(None),
    data_fim: Optional[date] = Query(None),
    categoria: Optional[str] = Query(None),
    busca: Optional[str] = Query(None, description="Descripción, observaciones o categoría"),
    vinculo_id: Optional[str] = Query(None),
    vinculo_tipo: Optional[LinkType] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    """Listar transacciones por fecha descendente con el saldo actual."""
    filters = TransactionFilters(
        tipo=tipo, status=status_filter, data_inicio=data_inicio, data_fim=data_fim,
        categoria=categoria, busca=busca, vinculo_id=vinculo_id, vinculo_tipo=vinculo_tipo,
    )
    return unwrap(FinancialService(store, local_store).list_transactions(filters, page, limit))


@financial_router.get("/summary", response_model=FinancialSummary)
def financial_summary(
    store: store_dependency,
    local_store: local_store_dependency,
    data_inicio: Optional[date] = Query(None),
    data_fim: Optional[date] = Query(None),
):
    """Totales de receitas y despesas, por categoría."""
    return unwrap(FinancialService(store, local_store).get_summary(data_inicio, data_fim))


@financial_router.get("/payables", response_model=AccountsPayable)
def accounts_payable(
    store: store_dependency,
    local_store: local_store_dependency,
    vencimento: DueFilter = Query(DueFilter.TODOS),
    categoria: Optional[str] = Query(None),
    busca: Optional[str] = Query(None),
    data_inicio: Optional[date] = Query(None, description="Vencimiento desde"),
    data_fim: Optional[date] = Query(None, description="Vencimiento hasta"),
    ordenacao: PayableOrder = Query(PayableOrder.VENCIMENTO_ASC),
):
    """Despesas pendentes con totales atrasado, pendiente y próximos días."""
    filters = PayablesFilters(
        vencimento=vencimento, categoria=categoria, busca=busca,
        data_inicio=data_inicio, data_fim=data_fim, ordenacao=ordenacao,
    )
    return unwrap(FinancialService(store, local_store).get_accounts_payable(filters))


@financial_router.get("/cash-flow", response_model=CashFlow)
def cash_flow(
    store: store_dependency,
    local_store: local_store_dependency,
    periodo: CashFlowPeriod = Query(CashFlowPeriod.MES),
    data_inicio: Optional[date] = Query(None),
    data_fim: Optional[date] = Query(None),
):
    """Flujo de caja del período agrupado por mes."""
    return unwrap(FinancialService(store, local_store).get_cash_flow(periodo, data_inicio, data_fim))


@financial_router.get("/transactions/sale/{sale_id}", response_model=List[TransactionOut])
def transactions_for_sale(sale_id: str, store: store_dependency, local_store: local_store_dependency):
    """Transacciones vinculadas a una venta."""
    filters = TransactionFilters(vinculo_id=sale_id, vinculo_tipo=LinkType.VENDA)
    page = unwrap(FinancialService(store, local_store).list_transactions(filters, 1, 100))
    return page["transacoes"]


@financial_router.get("/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(transaction_id: str, store: store_dependency, local_store: local_store_dependency):
    return unwrap(FinancialService(store, local_store).get_transaction(transaction_id))


@financial_router.post("/transactions", response_model=TransactionOut, status_code=status.HTTP_201_CREATED)
def create_transaction(
    transaction: TransactionCreate, store: store_dependency, local_store: local_store_dependency
):
    """Crear receita o despesa."""
    return unwrap(FinancialService(store, local_store).create_transaction(transaction.model_dump()))


@financial_router.patch("/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: str,
    transaction: TransactionUpdate,
    store: store_dependency,
    local_store: local_store_dependency,
):
    service = FinancialService(store, local_store)
    return unwrap(service.update_transaction(transaction_id, transaction.model_dump(exclude_unset=True)))


@financial_router.patch("/transactions/{transaction_id}/status", response_model=TransactionOut)
def change_transaction_status(
    transaction_id: str,
    payload: TransactionStatusUpdate,
    store: store_dependency,
    local_store: local_store_dependency,
):
    """Confirmar o cancelar una transacción."""
    return unwrap(FinancialService(store, local_store).change_status(transaction_id, payload.status))


@financial_router.delete("/transactions/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_transaction(transaction_id: str, store: store_dependency, local_store: local_store_dependency):
    unwrap(FinancialService(store, local_store).delete_transaction(transaction_id))


@financial_router.post("/expenses", response_model=ExpenseResult, status_code=status.HTTP_201_CREATED)
def create_expense(expense: ExpenseCreate, store: store_dependency, local_store: local_store_dependency):
    """
    Registrar una despesa, opcionalmente recurrente.

    La validación de la recurrencia ocurre antes de cualquier escritura. Si
    alguna parcela falla, la despesa base y las parcelas creadas se mantienen
    y el error se informa en `parcelas_erro`.
    """
    recurrence = expense.recorrencia
    if recurrence is not None:
        error = validate_recurrence(expense.data, recurrence.data_fim, recurrence.periodicidade)
        if error:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)

    service = FinancialService(store, local_store)
    base = unwrap(service.create_transaction(expense.to_transaction().model_dump()))
    installments, installment_error = [], None

    if recurrence is not None:
        try:
            installments = create_recurring_expenses(
                service.create_transaction, base, recurrence.periodicidade, recurrence.data_fim
            )
        except RecurringExpenseError as e:
            installments, installment_error = e.created, e.message
    return ExpenseResult(despesa=base, parcelas=installments, parcelas_erro=installment_error)


@financial_router.post("/receipts", response_model=ReceiptUploadResponse, status_code=status.HTTP_201_CREATED)
def upload_receipt(storage: receipt_storage_dependency, file: UploadFile = File(...)):
    """Subir comprobante; devuelve la URL o un data URI si el storage lo rechaza."""
    content = file.file.read()
    content_type = file.content_type or "application/octet-stream"
    try:
        reference, inline = storage.upload(file.filename, content, content_type)
    except ReceiptValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return ReceiptUploadResponse(comprovante=reference, inline=inline)
