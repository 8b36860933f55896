"""
Servicio de transacciones financieras

Modo real: backend SQL, con el almacén local JSON como último recurso de escritura
y lectura. Modo sin backend: opera directamente sobre el almacén local.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from math import ceil
from typing import Any, Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from app.common.entity_service import EntityService
from app.common.responses import ServiceResponse
from app.common.time_utils import MONTH_NAMES, local_today, to_local_date
from app.core.config import settings
from app.gateway.base import (
    Condition, ConflictError, DataStore, RecordNotFoundError, SearchTerm, TRANSACTION_DATE_FIELDS
)
from app.gateway.memory import JsonFileDataStore
from app.modules.finance.schemas import (
    CashFlowPeriod, DueFilter, PayableOrder, PayablesFilters, TransactionFilters, TransactionStatus, TransactionType
)

logger = logging.getLogger(__name__)

TRANSACTION_SEARCH_COLUMNS = ("descricao", "observacoes", "categoria")

ALLOWED_STATUS_TRANSITIONS = {
    TransactionStatus.PENDENTE.value: {TransactionStatus.CONFIRMADA.value, TransactionStatus.CANCELADA.value},
    TransactionStatus.CONFIRMADA.value: {TransactionStatus.CANCELADA.value},
    TransactionStatus.CANCELADA.value: set(),
}


def _plain(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def normalize_transaction(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convertir enums a texto y fechas a fecha de calendario local."""
    row = {key: _plain(value) for key, value in data.items()}
    for field in TRANSACTION_DATE_FIELDS:
        if field in row and row[field] is not None and not isinstance(row[field], date):
            row[field] = to_local_date(row[field])
    if row.get("valor") is not None:
        row["valor"] = Decimal(str(row["valor"])).quantize(Decimal("0.01"))
    return row


def current_balance(rows: List[Dict[str, Any]]) -> Decimal:
    """Saldo de transacciones confirmadas: receitas suman, despesas restan."""
    balance = Decimal("0")
    for row in rows:
        if row.get("status") != TransactionStatus.CONFIRMADA.value:
            continue
        amount = Decimal(str(row.get("valor") or 0))
        balance += amount if row.get("tipo") == TransactionType.RECEITA.value else -amount
    return balance


class FinancialService(EntityService):
    """Transacciones financieras con respaldo local."""

    table = "financial_transactions"
    not_found_label = "Transacción"

    def __init__(self, store: Optional[DataStore], local_store: JsonFileDataStore):
        self.local_store = local_store
        self.remote = store is not None and store.is_remote
        super().__init__(store if self.remote else local_store)

    def _fallback_allowed(self, error: Exception) -> bool:
        return self.remote and not isinstance(error, (RecordNotFoundError, ConflictError))

    # ===== lectura =====

    def _query_args(self, filters: TransactionFilters) -> Dict[str, Any]:
        conditions = []
        if filters.data_inicio:
            conditions.append(Condition("data", "gte", filters.data_inicio))
        if filters.data_fim:
            conditions.append(Condition("data", "lte", filters.data_fim))
        return {
            "filters": {
                "tipo": _plain(filters.tipo),
                "status": _plain(filters.status),
                "categoria": filters.categoria,
                "vinculo_id": filters.vinculo_id,
                "vinculo_tipo": _plain(filters.vinculo_tipo),
            },
            "conditions": conditions,
            "search": SearchTerm(TRANSACTION_SEARCH_COLUMNS, filters.busca) if filters.busca else None,
        }

    def _list_from(self, store: DataStore, filters: TransactionFilters, page: int, limit: int) -> Dict[str, Any]:
        args = self._query_args(filters)
        total = store.count(self.table, **args)
        rows = store.select(
            self.table, **args, order_by="data", descending=True,
            offset=(page - 1) * limit, limit=limit,
        )
        confirmed = store.select(self.table, filters={"status": TransactionStatus.CONFIRMADA.value})
        return {
            "transacoes": rows,
            "total": total,
            "total_pages": ceil(total / limit) if total else 0,
            "page": page,
            "limit": limit,
            "current_balance": current_balance(confirmed),
        }

    def list_transactions(
        self, filters: Optional[TransactionFilters] = None, page: int = 1, limit: int = 10
    ) -> ServiceResponse:
        """Listar transacciones ordenadas por fecha descendente, con saldo actual."""
        filters = filters or TransactionFilters()
        try:
            return ServiceResponse.success(self._list_from(self.store, filters, page, limit))
        except Exception as e:
            if not self._fallback_allowed(e):
                logger.error(f"Error listando transacciones: {e}")
                return ServiceResponse.failure(str(e))
            logger.warning(f"Backend no disponible al listar transacciones, usando almacén local: {e}")
        try:
            return ServiceResponse.success(self._list_from(self.local_store, filters, page, limit))
        except Exception as e:
            logger.error(f"Error listando transacciones locales: {e}")
            return ServiceResponse.failure(str(e))

    def get_transaction(self, transaction_id: str) -> ServiceResponse:
        response = self.get_by_id(transaction_id)
        if response.ok or not self.remote:
            return response
        local = self.local_store.get(self.table, transaction_id)
        return ServiceResponse.success(local) if local else response

    def find_linked(self, vinculo_id: str, vinculo_tipo: str = "venda") -> List[Dict[str, Any]]:
        """
        Transacciones vinculadas (lanza la excepción del almacén si falla).

        En modo real incluye las que quedaron en el almacén local tras un
        fallo del backend.
        """
        filters = {"vinculo_id": vinculo_id, "vinculo_tipo": vinculo_tipo}
        rows = self.store.select(self.table, filters=filters)
        if self.remote:
            known = {row.get("referencia_externa") or row["id"] for row in rows}
            rows += [
                row for row in self.local_store.select(self.table, filters=filters)
                if (row.get("referencia_externa") or row["id"]) not in known
            ]
        return rows

    def find_by_reference(self, reference: str) -> Optional[Dict[str, Any]]:
        rows = self.store.select(self.table, filters={"referencia_externa": reference}, limit=1)
        return rows[0] if rows else None

    # ===== escritura =====

    def _insert_local(self, row: Dict[str, Any]) -> Dict[str, Any]:
        new_id = self.local_store.insert_financial_transaction(row)
        return self.local_store.get(self.table, new_id)

    def _existing_for_conflict(self, row: Dict[str, Any], error: ConflictError) -> ServiceResponse:
        reference = row.get("referencia_externa")
        existing = self.find_by_reference(reference) if reference else None
        if existing is not None:
            logger.info(f"Transacción con referencia {reference} ya existía; no se duplica")
            return ServiceResponse.success(existing)
        return ServiceResponse.failure(error.message)

    def create_transaction(self, data: Dict[str, Any]) -> ServiceResponse:
        """
        Crear transacción.

        1. Inserción con fechas seguras (RPC)
        2. Inserción genérica
        3. Almacén local si el backend falla
        """
        row = normalize_transaction(data)

        if self.remote:
            try:
                new_id = self.store.insert_financial_transaction(row)
                return ServiceResponse.success(self.store.get(self.table, new_id))
            except ConflictError as e:
                return self._existing_for_conflict(row, e)
            except Exception as e:
                logger.warning(f"Inserción con fechas seguras falló, intentando inserción genérica: {e}")

            try:
                return ServiceResponse.success(self.store.insert(self.table, row)[0])
            except ConflictError as e:
                return self._existing_for_conflict(row, e)
            except Exception as e:
                logger.error(f"Backend rechazó la transacción, guardando en almacén local: {e}")

        try:
            return ServiceResponse.success(self._insert_local(row))
        except ConflictError as e:
            return ServiceResponse.failure(e.message)
        except Exception as e:
            logger.error(f"No se pudo guardar la transacción localmente: {e}")
            return ServiceResponse.failure(str(e))

    def write_direct(self, data: Dict[str, Any]) -> ServiceResponse:
        """
        Escritura secundaria independiente: inserción directa sin la ruta RPC.
        Sin backend real escribe directo en el almacén local.
        """
        row = normalize_transaction(data)
        try:
            if self.remote:
                return ServiceResponse.success(self.store.insert(self.table, row)[0])
            return ServiceResponse.success(self._insert_local(row))
        except ConflictError as e:
            return self._existing_for_conflict(row, e)
        except Exception as e:
            logger.error(f"Escritura directa de transacción falló: {e}")
            return ServiceResponse.failure(str(e))

    def update_transaction(self, transaction_id: str, data: Dict[str, Any]) -> ServiceResponse:
        row = normalize_transaction(data)
        response = self.update(transaction_id, row)
        if response.ok or not self.remote:
            return response
        if self.local_store.get(self.table, transaction_id) is None:
            return response
        logger.warning(f"Actualizando transacción {transaction_id} en almacén local")
        try:
            return ServiceResponse.success(self.local_store.update(self.table, transaction_id, row))
        except Exception as e:
            return ServiceResponse.failure(str(e))

    def delete_transaction(self, transaction_id: str) -> ServiceResponse:
        response = self.delete(transaction_id)
        if response.ok or not self.remote:
            return response
        if self.local_store.get(self.table, transaction_id) is None:
            return response
        logger.warning(f"Eliminando transacción {transaction_id} del almacén local")
        self.local_store.delete(self.table, transaction_id)
        return ServiceResponse.success({"id": transaction_id})

    def change_status(self, transaction_id: str, new_status: TransactionStatus) -> ServiceResponse:
        """Cambiar estado: pendente → confirmada, pendente|confirmada → cancelada."""
        current = self.get_transaction(transaction_id)
        if not current.ok:
            return current

        old_status = current.data.get("status")
        target = _plain(new_status)
        if target == old_status:
            return current
        if target not in ALLOWED_STATUS_TRANSITIONS.get(old_status, set()):
            return ServiceResponse.failure(f"Transición de estado no permitida: {old_status} → {target}")

        changes: Dict[str, Any] = {"status": target}
        if target == TransactionStatus.CONFIRMADA.value and not current.data.get("data_pagamento"):
            changes["data_pagamento"] = local_today()
        return self.update_transaction(transaction_id, changes)

    # ===== resumen =====

    def get_summary(self, data_inicio: Optional[date] = None, data_fim: Optional[date] = None) -> ServiceResponse:
        """Totales de receitas/despesas y por categoría (excluye canceladas)."""
        def _summary():
            conditions = [Condition("status", "ne", TransactionStatus.CANCELADA.value)]
            if data_inicio:
                conditions.append(Condition("data", "gte", data_inicio))
            if data_fim:
                conditions.append(Condition("data", "lte", data_fim))
            rows = self.store.select(self.table, conditions=conditions)

            total_receitas = Decimal("0")
            total_despesas = Decimal("0")
            por_categoria: Dict[str, Dict[str, Decimal]] = {}
            for row in rows:
                amount = Decimal(str(row.get("valor") or 0))
                bucket = por_categoria.setdefault(
                    row.get("categoria") or "Outros", {"receitas": Decimal("0"), "despesas": Decimal("0")}
                )
                if row.get("tipo") == TransactionType.RECEITA.value:
                    total_receitas += amount
                    bucket["receitas"] += amount
                else:
                    total_despesas += amount
                    bucket["despesas"] += amount

            return {
                "total_receitas": total_receitas,
                "total_despesas": total_despesas,
                "saldo": total_receitas - total_despesas,
                "por_categoria": por_categoria,
            }

        return self._run("get_summary", _summary)

    # ===== lecturas con respaldo local =====

    def select_transactions(self, **kwargs) -> List[Dict[str, Any]]:
        """select sobre transacciones; en modo real cae al almacén local si el backend falla."""
        try:
            return self.store.select(self.table, **kwargs)
        except Exception as e:
            if not self._fallback_allowed(e):
                raise
            logger.warning(f"Backend no disponible, leyendo transacciones locales: {e}")
            return self.local_store.select(self.table, **kwargs)

    # ===== contas a pagar =====

    def get_accounts_payable(
        self, filters: Optional[PayablesFilters] = None, today: Optional[date] = None
    ) -> ServiceResponse:
        """
        Despesas pendentes con totales por vencimiento.

        Los totales cubren todas las pendientes: atrasado (vence antes de hoy) y
        próximos días (de hoy a hoy + PAYABLES_UPCOMING_DAYS). El listado aplica
        los filtros y la ordenación.
        """
        filters = filters or PayablesFilters()
        today = today or local_today()
        window_end = today + timedelta(days=settings.PAYABLES_UPCOMING_DAYS)

        def _payables():
            rows = self.select_transactions(filters={
                "tipo": TransactionType.DESPESA.value,
                "status": TransactionStatus.PENDENTE.value,
            })
            total_pendente = Decimal("0")
            total_atrasado = Decimal("0")
            total_proximos = Decimal("0")
            overdue_count = 0
            for row in rows:
                amount = Decimal(str(row.get("valor") or 0))
                due = row.get("data_vencimento")
                total_pendente += amount
                row["dias_atraso"] = max(0, (today - due).days) if due else 0
                row["vencida"] = bool(due and due < today)
                row["vence_hoje"] = due == today
                if row["vencida"]:
                    total_atrasado += amount
                    overdue_count += 1
                elif due and due <= window_end:
                    total_proximos += amount

            contas = [row for row in rows if matches_payable_filters(row, filters, today, window_end)]
            return {
                "data_referencia": today,
                "contas": sort_payables(contas, filters.ordenacao),
                "total_pendente": total_pendente,
                "total_atrasado": total_atrasado,
                "total_proximos_dias": total_proximos,
                "quantidade_atrasadas": overdue_count,
                "categorias": sorted({row["categoria"] for row in rows if row.get("categoria")}),
            }

        return self._run("get_accounts_payable", _payables)

    # ===== fluxo de caixa =====

    def get_cash_flow(
        self,
        periodo: CashFlowPeriod = CashFlowPeriod.MES,
        data_inicio: Optional[date] = None,
        data_fim: Optional[date] = None,
        today: Optional[date] = None,
    ) -> ServiceResponse:
        """Resumen del período y receitas/despesas por mes, el más reciente primero."""
        try:
            start, end = resolve_cash_flow_period(periodo, data_inicio, data_fim, today or local_today())
        except ValueError as e:
            return ServiceResponse.failure(str(e))

        def _cash_flow():
            rows = self.select_transactions(conditions=[
                Condition("status", "ne", TransactionStatus.CANCELADA.value),
                Condition("data", "gte", start),
                Condition("data", "lte", end),
            ])
            receitas: Dict[str, Decimal] = {}
            despesas: Dict[str, Decimal] = {}
            months: Dict[str, Dict[str, Decimal]] = {}
            for row in rows:
                amount = Decimal(str(row.get("valor") or 0))
                day = to_local_date(row["data"])
                bucket = months.setdefault(
                    f"{day.year}-{day.month:02d}", {"receitas": Decimal("0"), "despesas": Decimal("0")}
                )
                categoria = row.get("categoria") or "Outros"
                if row.get("tipo") == TransactionType.RECEITA.value:
                    receitas[categoria] = receitas.get(categoria, Decimal("0")) + amount
                    bucket["receitas"] += amount
                else:
                    despesas[categoria] = despesas.get(categoria, Decimal("0")) + amount
                    bucket["despesas"] += amount

            total_receitas = sum(receitas.values(), Decimal("0"))
            total_despesas = sum(despesas.values(), Decimal("0"))
            return {
                "data_inicio": start,
                "data_fim": end,
                "resumo": {
                    "total_receitas": total_receitas,
                    "total_despesas": total_despesas,
                    "saldo": total_receitas - total_despesas,
                    "receitas_por_categoria": receitas,
                    "despesas_por_categoria": despesas,
                },
                "meses": [
                    {
                        "chave": key,
                        "mes": month_label(key),
                        "receitas": months[key]["receitas"],
                        "despesas": months[key]["despesas"],
                        "saldo": months[key]["receitas"] - months[key]["despesas"],
                    }
                    for key in sorted(months, reverse=True)
                ],
            }

        return self._run("get_cash_flow", _cash_flow)


def matches_payable_filters(row: Dict[str, Any], filters: PayablesFilters, today: date, window_end: date) -> bool:
    due = row.get("data_vencimento")
    if filters.vencimento != DueFilter.TODOS:
        if due is None:
            return False
        if filters.vencimento == DueFilter.ATRASADOS and not due < today:
            return False
        if filters.vencimento == DueFilter.HOJE and due != today:
            return False
        if filters.vencimento == DueFilter.PROXIMOS and not today < due <= window_end:
            return False
    if filters.categoria and row.get("categoria") != filters.categoria:
        return False
    needle = (filters.busca or "").strip().lower()
    if needle and not any(needle in (row.get(column) or "").lower() for column in TRANSACTION_SEARCH_COLUMNS):
        return False
    if filters.data_inicio and (due is None or due < filters.data_inicio):
        return False
    if filters.data_fim and (due is None or due > filters.data_fim):
        return False
    return True


def sort_payables(rows: List[Dict[str, Any]], order: PayableOrder) -> List[Dict[str, Any]]:
    """Ordenar por vencimiento (sin vencimiento al final) o por valor."""
    if order in (PayableOrder.VALOR_ASC, PayableOrder.VALOR_DESC):
        return sorted(
            rows, key=lambda row: Decimal(str(row.get("valor") or 0)), reverse=order == PayableOrder.VALOR_DESC
        )
    dated = sorted(
        (row for row in rows if row.get("data_vencimento")),
        key=lambda row: row["data_vencimento"],
        reverse=order == PayableOrder.VENCIMENTO_DESC,
    )
    return dated + [row for row in rows if not row.get("data_vencimento")]


def resolve_cash_flow_period(
    periodo: CashFlowPeriod, data_inicio: Optional[date], data_fim: Optional[date], today: date
) -> Tuple[date, date]:
    """
    Período del flujo de caja.

    mes: desde el día 1 del mes actual; trimestre: desde el día 1 de hace dos
    meses; ano: desde el 1 de enero. Todos terminan hoy. personalizado exige
    ambas fechas.
    """
    if periodo == CashFlowPeriod.PERSONALIZADO:
        if not data_inicio or not data_fim:
            raise ValueError("El período personalizado requiere data_inicio y data_fim")
        start, end = data_inicio, data_fim
    elif periodo == CashFlowPeriod.TRIMESTRE:
        start, end = today.replace(day=1) - relativedelta(months=2), today
    elif periodo == CashFlowPeriod.ANO:
        start, end = date(today.year, 1, 1), today
    else:
        start, end = today.replace(day=1), today
    if end < start:
        raise ValueError("La fecha final no puede ser anterior a la inicial")
    return start, end


def month_label(key: str) -> str:
    """'2024-03' -> 'Março/2024'"""
    year, month = key.split("-")
    return f"{MONTH_NAMES[int(month) - 1].capitalize()}/{year}"
