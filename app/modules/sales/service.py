"""
Servicio de Ventas

Finalización de venta: la venta y sus líneas son obligatorias; stock,
movimientos y la transacción financiera vinculada son efectos secundarios
que fallan de forma independiente y solo se registran en el log.
"""
import logging
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.common.entity_service import STORE_UNAVAILABLE_MESSAGE, EntityService, Pagination
from app.common.responses import ServiceResponse
from app.common.time_utils import local_today
from app.core.config import settings
from app.gateway.base import DataStore
from app.gateway.memory import JsonFileDataStore
from app.modules.auth.schemas import SessionContext
from app.modules.finance.schemas import LinkType, TransactionStatus, TransactionType
from app.modules.finance.service import FinancialService
from app.modules.inventory.schemas import MovementReason, MovementType
from app.modules.inventory.service import StockService, reversal_note, sale_note
from app.modules.sales.schemas import (
    PAYMENT_FORM_BY_METHOD, TOTAL_TOLERANCE, PaymentStatus, SaleCreate, SaleLineCreate,
    compute_sale_total, distribute_general_discount,
)

logger = logging.getLogger(__name__)

UNIDENTIFIED_CUSTOMER = "Cliente no identificado"
SALES_CATEGORY = "Vendas"


class SaleFinalizationError(Exception):
    """Falló un paso obligatorio (venta o líneas); la venta no se completó."""

    def __init__(self, message: str, sale_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.sale_id = sale_id


class SaleValidationError(Exception):
    """El carrito no es válido; no se escribió nada."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class OperatorRequiredError(SaleValidationError):
    """No hay identidad de operador para registrar la venta."""


def sale_reference(sale_id: str) -> str:
    """Clave de idempotencia de la transacción vinculada a una venta."""
    return f"venda:{sale_id}"


def sale_link(sale_id: str) -> str:
    return f"/dashboard/vendas/{sale_id}"


def build_sale_transaction(sale: Dict[str, Any], customer_name: str) -> Dict[str, Any]:
    """Receita confirmada vinculada a la venta."""
    sale_id = str(sale["id"])
    today = local_today()
    return {
        "descricao": f"Venda #{sale_id} - {customer_name}",
        "valor": sale["total_amount"],
        "tipo": TransactionType.RECEITA.value,
        "data": today,
        "data_pagamento": today,
        "categoria": SALES_CATEGORY,
        "status": TransactionStatus.CONFIRMADA.value,
        "forma_pagamento": PAYMENT_FORM_BY_METHOD.get(sale.get("payment_method"), "dinheiro"),
        "observacoes": sale.get("notes"),
        "vinculo_id": sale_id,
        "vinculo_tipo": LinkType.VENDA.value,
        "link_venda": sale_link(sale_id),
        "referencia_externa": sale_reference(sale_id),
    }


class SaleService(EntityService):
    """Service for sale operations"""

    table = "sales"
    not_found_label = "Venta"

    def __init__(
        self,
        store: Optional[DataStore],
        local_store: JsonFileDataStore,
        verification_delay: Optional[float] = None,
    ):
        super().__init__(store)
        self.stock = StockService(store)
        self.finance = FinancialService(store, local_store)
        self.verification_delay = (
            settings.SALE_VERIFICATION_DELAY_SECONDS if verification_delay is None else verification_delay
        )

    # ===== helpers =====

    def _customer_name(self, customer_id: Optional[str]) -> str:
        if not customer_id:
            return UNIDENTIFIED_CUSTOMER
        try:
            customer = self.store.get("customers", customer_id)
        except Exception as e:
            logger.warning(f"No se pudo obtener el cliente {customer_id}: {e}")
            return UNIDENTIFIED_CUSTOMER
        return (customer or {}).get("name") or UNIDENTIFIED_CUSTOMER

    def _resolve_operator(self, sale: SaleCreate, context: Optional[SessionContext]) -> str:
        session = context.session if context else None
        if session is not None:
            if sale.user_id and sale.user_id != session.user_id:
                logger.warning(
                    f"Operador informado ({sale.user_id}) no coincide con la sesión ({session.user_id}); "
                    f"se usa el de la sesión"
                )
            return session.user_id
        if sale.user_id:
            return sale.user_id
        raise OperatorRequiredError("Usuario no autenticado")

    def _upsert_profile(self, context: Optional[SessionContext]) -> None:
        session = context.session if context else None
        if session is None:
            return
        try:
            self.store.upsert("users", {
                "id": session.user_id,
                "email": session.email,
                "name": session.name,
                "role": session.role,
            })
        except Exception as e:
            logger.warning(f"No se pudo actualizar el perfil del operador {session.user_id}: {e}")

    def _prepare_lines(self, sale: SaleCreate) -> List[SaleLineCreate]:
        lines = []
        for line in sale.items:
            if line.unit_price is None:
                try:
                    book = self.store.get("books", line.book_id)
                except Exception as e:
                    raise SaleValidationError(f"No se pudo obtener el libro {line.book_id}: {getattr(e, 'message', e)}")
                if book is None:
                    raise SaleValidationError(f"Libro con ID {line.book_id} no encontrado")
                line = line.model_copy(update={"unit_price": Decimal(str(book.get("selling_price") or 0))})
            lines.append(line)

        lines = distribute_general_discount(lines, sale.general_discount)
        for line in lines:
            if line.discount > line.gross:
                raise SaleValidationError(f"El descuento del libro {line.book_id} supera el valor de la línea")
        return lines

    def _local_by_reference(self, sale_id: str) -> List[Dict[str, Any]]:
        """Transacción de la venta ya guardada en el almacén local."""
        try:
            return self.finance.local_store.select(
                self.finance.table, filters={"referencia_externa": sale_reference(sale_id)}
            )
        except Exception as e:
            logger.warning(f"No se pudo consultar el almacén local para la venta {sale_id}: {e}")
            return []

    def _link_transaction(self, sale: Dict[str, Any], warnings: List[str]) -> None:
        """Crear la transacción vinculada, verificarla y reescribirla si no aparece."""
        sale_id = str(sale["id"])
        transaction = build_sale_transaction(sale, self._customer_name(sale.get("customer_id")))

        created = self.finance.create_transaction(transaction)
        if not created.ok:
            logger.error(f"No se pudo crear la transacción de la venta {sale_id}: {created.error}")

        if self.verification_delay:
            time.sleep(self.verification_delay)

        try:
            linked = self.finance.find_linked(sale_id, LinkType.VENDA.value)
        except Exception as e:
            logger.warning(f"No se pudo verificar la transacción de la venta {sale_id}: {e}")
            linked = self._local_by_reference(sale_id)
        if linked:
            return

        logger.warning(f"Transacción de la venta {sale_id} no encontrada tras crearla; escritura secundaria")
        fallback = self.finance.write_direct(transaction)
        if not fallback.ok and not self._local_by_reference(sale_id):
            logger.error(f"Escritura secundaria de la transacción de la venta {sale_id} falló: {fallback.error}")
            warnings.append("La transacción financiera de la venta no pudo registrarse")

    # ===== finalización =====

    def finalize_sale(self, sale: SaleCreate, context: Optional[SessionContext] = None) -> Dict[str, Any]:
        """
        Finalizar una venta del punto de venta.

        Lanza SaleValidationError antes de escribir (carrito inválido, total
        que no coincide, sin operador) y SaleFinalizationError si falla la
        inserción de la venta o de sus líneas. Devuelve el ID aunque fallen
        los efectos secundarios; esos fallos se reportan en `warnings`.
        """
        if self.store is None:
            raise SaleFinalizationError(STORE_UNAVAILABLE_MESSAGE)

        lines = self._prepare_lines(sale)
        total = compute_sale_total(lines)
        if sale.total is not None and abs(Decimal(str(sale.total)) - total) > TOTAL_TOLERANCE:
            raise SaleValidationError(
                f"El total informado ({sale.total}) no coincide con el calculado ({total})"
            )

        operator_id = self._resolve_operator(sale, context)
        self._upsert_profile(context)

        try:
            created = self.store.insert(self.table, {
                "customer_id": sale.customer_id,
                "user_id": operator_id,
                "total_amount": total,
                "payment_method": sale.payment_method.value,
                "payment_status": PaymentStatus.PAID.value,
                "notes": sale.notes,
            })[0]
        except Exception as e:
            logger.error(f"Error al crear la venta: {e}")
            raise SaleFinalizationError(f"Error al crear la venta: {getattr(e, 'message', e)}")

        sale_id = str(created["id"])
        try:
            self.store.insert("sale_items", [
                {
                    "sale_id": sale_id,
                    "book_id": line.book_id,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                    "discount": line.discount,
                    "total": line.line_total,
                }
                for line in lines
            ])
        except Exception as e:
            logger.error(f"Venta {sale_id} creada sin líneas: {e}")
            raise SaleFinalizationError(f"Error al registrar los ítems de la venta: {getattr(e, 'message', e)}", sale_id)

        warnings: List[str] = []
        for line in lines:
            if not self.stock.apply_best_effort(
                line.book_id, MovementType.SAIDA, line.quantity, MovementReason.VENDA,
                notes=sale_note(sale_id), responsible=operator_id,
            ):
                warnings.append(f"Stock del libro {line.book_id} no actualizado")

        self._link_transaction(created, warnings)

        logger.info(f"Venta {sale_id} finalizada: total {total}, {len(lines)} líneas")
        return {"id": sale_id, "total_amount": total, "warnings": warnings}

    # ===== cambio de estado =====

    def update_payment_status(
        self, sale_id: str, new_status: PaymentStatus, notes: Optional[str] = None
    ) -> ServiceResponse:
        """
        Cambiar el estado de pago de una venta.

        canceled: devuelve el stock (estorno) y cancela la transacción vinculada.
        paid: confirma la transacción vinculada o crea una si no existe.
        pending: no toca el libro financiero.
        Si se informan `notes`, reemplazan las notas de la venta.
        """
        current = self.get_by_id(sale_id)
        if not current.ok:
            return current

        sale = current.data
        old_status = sale.get("payment_status")
        target = new_status.value if hasattr(new_status, "value") else new_status
        if target == old_status:
            return self.update(sale_id, {"notes": notes}) if notes else current
        if old_status == PaymentStatus.CANCELED.value:
            return ServiceResponse.failure("Una venta cancelada no puede cambiar de estado")

        changes = {"payment_status": target}
        if notes:
            changes["notes"] = notes
        response = self.update(sale_id, changes)
        if not response.ok:
            return response

        if target == PaymentStatus.CANCELED.value:
            self._reverse_stock(sale_id, response.data.get("user_id"))
            self._cancel_linked_transactions(sale_id)
        elif target == PaymentStatus.PAID.value:
            self._confirm_linked_transaction(response.data)
        return response

    def _reverse_stock(self, sale_id: str, responsible: Optional[str]) -> None:
        try:
            items = self.store.select("sale_items", filters={"sale_id": sale_id})
        except Exception as e:
            logger.error(f"No se pudieron leer las líneas de la venta {sale_id} para el estorno: {e}")
            return
        for item in items:
            self.stock.apply_best_effort(
                item["book_id"], MovementType.ENTRADA, item["quantity"], MovementReason.ESTORNO,
                notes=reversal_note(sale_id), responsible=responsible,
            )

    def _cancel_linked_transactions(self, sale_id: str) -> None:
        try:
            linked = self.finance.find_linked(sale_id, LinkType.VENDA.value)
        except Exception as e:
            logger.error(f"No se pudo buscar la transacción de la venta {sale_id}: {e}")
            return
        for transaction in linked:
            if transaction.get("status") == TransactionStatus.CANCELADA.value:
                continue
            result = self.finance.change_status(transaction["id"], TransactionStatus.CANCELADA)
            if not result.ok:
                logger.error(f"No se pudo cancelar la transacción {transaction['id']}: {result.error}")

    def _confirm_linked_transaction(self, sale: Dict[str, Any]) -> None:
        sale_id = str(sale["id"])
        try:
            linked = self.finance.find_linked(sale_id, LinkType.VENDA.value)
        except Exception as e:
            logger.error(f"No se pudo buscar la transacción de la venta {sale_id}: {e}")
            return

        if not linked:
            logger.info(f"Venta {sale_id} pagada sin transacción vinculada; se crea una nueva")
            transaction = build_sale_transaction(sale, self._customer_name(sale.get("customer_id")))
            result = self.finance.create_transaction(transaction)
            if not result.ok:
                logger.error(f"No se pudo crear la transacción de la venta {sale_id}: {result.error}")
            return

        for transaction in linked:
            if transaction.get("status") == TransactionStatus.PENDENTE.value:
                result = self.finance.change_status(transaction["id"], TransactionStatus.CONFIRMADA)
                if not result.ok:
                    logger.error(f"No se pudo confirmar la transacción {transaction['id']}: {result.error}")

    # ===== reconciliación =====

    def reconcile_sales(self) -> ServiceResponse:
        """Crear la transacción faltante de cada venta pagada que no la tenga."""
        if self.store is None:
            return ServiceResponse.failure(STORE_UNAVAILABLE_MESSAGE)
        try:
            sales = self.store.select(self.table, filters={"payment_status": PaymentStatus.PAID.value})
        except Exception as e:
            logger.error(f"Error leyendo ventas para reconciliar: {e}")
            return ServiceResponse.failure(str(e))

        repaired, failed = [], []
        for sale in sales:
            sale_id = str(sale["id"])
            try:
                if self.finance.find_linked(sale_id, LinkType.VENDA.value):
                    continue
            except Exception as e:
                logger.error(f"No se pudo verificar la venta {sale_id}: {e}")
                failed.append(sale_id)
                continue
            transaction = build_sale_transaction(sale, self._customer_name(sale.get("customer_id")))
            result = self.finance.create_transaction(transaction)
            if result.ok:
                repaired.append(sale_id)
            else:
                logger.error(f"No se pudo reparar la venta {sale_id}: {result.error}")
                failed.append(sale_id)

        if repaired:
            logger.info(f"Reconciliación: {len(repaired)} ventas con transacción creada")
        return ServiceResponse.success({"repaired": repaired, "failed": failed})

    # ===== lecturas =====

    def list_sales(
        self,
        payment_status: Optional[PaymentStatus] = None,
        customer_id: Optional[str] = None,
        pagination: Optional[Pagination] = None,
    ) -> ServiceResponse:
        response = self.get_all(
            {"payment_status": payment_status.value if payment_status else None, "customer_id": customer_id},
            pagination,
        )
        if response.ok:
            for sale in response.data["items"]:
                sale["customer_name"] = self._customer_name(sale.get("customer_id"))
        return response

    def fetch_recent_sales(self, limit: int = 10) -> ServiceResponse:
        def _recent():
            sales = self.store.select(self.table, order_by="created_at", descending=True, limit=limit)
            for sale in sales:
                sale["customer_name"] = self._customer_name(sale.get("customer_id"))
            return sales

        return self._run("fetch_recent_sales", _recent)

    def fetch_sale_details(self, sale_id: str) -> ServiceResponse:
        """Venta con sus líneas, títulos de libros y nombre del cliente."""
        current = self.get_by_id(sale_id)
        if not current.ok:
            return current

        def _details():
            sale = current.data
            items = self.store.select("sale_items", filters={"sale_id": sale_id}, order_by="created_at")
            for item in items:
                book = self.store.get("books", item["book_id"])
                item["book_title"] = book.get("title") if book else None
            sale["items"] = items
            sale["customer_name"] = self._customer_name(sale.get("customer_id"))
            return sale

        return self._run("fetch_sale_details", _details)

    def fetch_product_sale_history(self, book_id: str) -> ServiceResponse:
        """Ventas en las que aparece un libro, de la más reciente a la más antigua."""
        def _history():
            history = []
            for item in self.store.select("sale_items", filters={"book_id": book_id}):
                sale = self.store.get(self.table, item["sale_id"]) or {}
                history.append({
                    "sale_id": item["sale_id"],
                    "date": sale.get("created_at"),
                    "customer_name": self._customer_name(sale.get("customer_id")),
                    "quantity": item["quantity"],
                    "unit_price": item["unit_price"],
                    "total": item["total"],
                    "payment_status": sale.get("payment_status"),
                })
            history.sort(key=lambda entry: (entry["date"] is not None, entry["date"]), reverse=True)
            return history

        return self._run("fetch_product_sale_history", _history)
