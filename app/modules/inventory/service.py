import logging
import re
from typing import List, Optional

from app.common.entity_service import STORE_UNAVAILABLE_MESSAGE, EntityService, Pagination
from app.common.responses import ServiceResponse
from app.modules.inventory.schemas import (
    InventoryCountLine, MovementReason, MovementType, StockMovementCreate
)

logger = logging.getLogger(__name__)

SALE_NOTE_PATTERN = re.compile(r"Venda #([a-zA-Z0-9-]+)")


def sale_note(sale_id: str) -> str:
    return f"Venda #{sale_id}"


def reversal_note(sale_id: str) -> str:
    return f"Estorno da Venda #{sale_id}"


def extract_sale_id(notes: Optional[str]) -> Optional[str]:
    """Extraer el ID de venta de notas con formato 'Venda #<id>'."""
    if not notes:
        return None
    match = SALE_NOTE_PATTERN.search(notes)
    return match.group(1) if match else None


class StockService(EntityService):
    """Service for stock movements: cantidad del libro + fila de auditoría."""

    table = "stock_movements"
    not_found_label = "Movimiento"

    def _movement_row(self, data: StockMovementCreate) -> dict:
        return {
            "book_id": data.book_id,
            "type": data.type.value,
            "quantity": data.quantity,
            "reason": data.reason.value,
            "notes": data.notes,
            "responsible": data.responsible,
        }

    def create_movement(self, data: StockMovementCreate) -> ServiceResponse:
        """
        Crear movimiento de stock y actualizar la cantidad del libro.

        Una salida mayor al stock disponible se rechaza antes de escribir.
        Si la fila de movimiento falla tras actualizar la cantidad, se registra
        la discrepancia y no se revierte la cantidad.
        """
        if self.store is None:
            return ServiceResponse.failure(STORE_UNAVAILABLE_MESSAGE)

        try:
            book = self.store.get("books", data.book_id)
        except Exception as e:
            logger.error(f"Error leyendo libro {data.book_id}: {e}")
            return ServiceResponse.failure(str(e))
        if book is None:
            return ServiceResponse.failure(f"Libro con ID {data.book_id} no encontrado")

        current = book.get("quantity") or 0
        if data.type == MovementType.SAIDA and data.quantity > current:
            return ServiceResponse.failure(
                f"Stock insuficiente para '{book.get('title')}'. "
                f"Disponible: {current}, Solicitado: {data.quantity}"
            )

        delta = data.quantity if data.type == MovementType.ENTRADA else -data.quantity
        try:
            new_quantity = self.store.increment("books", "quantity", data.book_id, delta, floor=0)
        except Exception as e:
            logger.error(f"Error actualizando cantidad del libro {data.book_id}: {e}")
            return ServiceResponse.failure(f"Error actualizando stock: {getattr(e, 'message', e)}")

        result = {
            "book_id": data.book_id,
            "previous_quantity": current,
            "new_quantity": new_quantity,
            "movement": None,
            "warning": None,
        }
        try:
            result["movement"] = self.store.insert(self.table, self._movement_row(data))[0]
        except Exception as e:
            logger.error(
                f"Discrepancia de stock: libro {data.book_id} pasó de {current} a {new_quantity} "
                f"sin movimiento registrado ({data.type.value}/{data.reason.value}): {e}"
            )
            result["warning"] = "Cantidad actualizada, pero el movimiento no pudo registrarse"

        return ServiceResponse.success(result)

    def apply_best_effort(
        self,
        book_id: str,
        movement_type: MovementType,
        quantity: int,
        reason: MovementReason,
        notes: Optional[str] = None,
        responsible: Optional[str] = None,
    ) -> bool:
        """
        Ajuste de stock que nunca bloquea al llamador (ventas y estornos).

        La cantidad se recorta en cero en lugar de rechazar la salida; cada
        escritura falla de forma independiente y solo se registra en el log.
        """
        if self.store is None:
            logger.warning(f"Sin almacén para ajustar stock del libro {book_id}")
            return False

        ok = True
        delta = quantity if movement_type == MovementType.ENTRADA else -quantity
        try:
            self.store.increment("books", "quantity", book_id, delta, floor=0)
        except Exception as e:
            ok = False
            logger.error(f"No se pudo actualizar el stock del libro {book_id} ({delta:+d}): {e}")

        try:
            self.store.insert(self.table, {
                "book_id": book_id,
                "type": movement_type.value,
                "quantity": quantity,
                "reason": reason.value,
                "notes": notes,
                "responsible": responsible,
            })
        except Exception as e:
            ok = False
            logger.error(f"No se pudo registrar el movimiento del libro {book_id}: {e}")

        return ok

    def adjust_inventory(
        self,
        book_id: str,
        counted_quantity: int,
        responsible: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ServiceResponse:
        """Ajustar el stock a una cantidad contada físicamente."""
        if self.store is None:
            return ServiceResponse.failure(STORE_UNAVAILABLE_MESSAGE)
        try:
            book = self.store.get("books", book_id)
        except Exception as e:
            return ServiceResponse.failure(str(e))
        if book is None:
            return ServiceResponse.failure(f"Libro con ID {book_id} no encontrado")

        current = book.get("quantity") or 0
        difference = counted_quantity - current
        if difference == 0:
            return ServiceResponse.failure("No es necesario ajustar: la cantidad contada es igual a la actual")

        return self.create_movement(StockMovementCreate(
            book_id=book_id,
            type=MovementType.ENTRADA if difference > 0 else MovementType.SAIDA,
            quantity=abs(difference),
            reason=MovementReason.AJUSTE,
            notes=notes or f"Ajuste de inventario: {current} → {counted_quantity}",
            responsible=responsible,
        ))

    def run_inventory_count(
        self,
        lines: List[InventoryCountLine],
        responsible: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ServiceResponse:
        """
        Procesar un conteo físico completo.

        Primero calcula las diferencias (acréscimos, reduções y diferencia total)
        y luego emite un ajuste por cada línea con diferencia distinta de cero.
        """
        if self.store is None:
            return ServiceResponse.failure(STORE_UNAVAILABLE_MESSAGE)

        results = []
        for line in lines:
            entry = {
                "book_id": line.book_id,
                "counted_quantity": line.counted_quantity,
                "difference": 0,
                "adjusted": False,
            }
            try:
                book = self.store.get("books", line.book_id)
            except Exception as e:
                entry["error"] = str(e)
                results.append(entry)
                continue
            if book is None:
                entry["error"] = f"Libro con ID {line.book_id} no encontrado"
                results.append(entry)
                continue
            entry["title"] = book.get("title")
            entry["previous_quantity"] = book.get("quantity") or 0
            entry["difference"] = line.counted_quantity - entry["previous_quantity"]
            results.append(entry)

        counted = [entry for entry in results if "error" not in entry]
        summary = {
            "total_products": len(counted),
            "acrescimos": sum(1 for entry in counted if entry["difference"] > 0),
            "reducoes": sum(1 for entry in counted if entry["difference"] < 0),
            "diferenca_total": sum(entry["difference"] for entry in counted),
        }

        for entry in counted:
            if entry["difference"] == 0:
                continue
            response = self.adjust_inventory(entry["book_id"], entry["counted_quantity"], responsible, notes)
            if response.ok:
                entry["adjusted"] = True
            else:
                entry["error"] = response.error
                logger.warning(f"Ajuste de inventario fallido para {entry['book_id']}: {response.error}")

        return ServiceResponse.success({**summary, "lines": results})

    def list_movements(
        self,
        book_id: Optional[str] = None,
        movement_type: Optional[MovementType] = None,
        reason: Optional[MovementReason] = None,
        pagination: Optional[Pagination] = None,
    ) -> ServiceResponse:
        """Historial de movimientos con el ID de venta extraído de las notas."""
        response = self.get_all(
            {
                "book_id": book_id,
                "type": movement_type.value if movement_type else None,
                "reason": reason.value if reason else None,
            },
            pagination,
        )
        if not response.ok:
            return response

        titles = {}
        for movement in response.data["items"]:
            movement["sale_id"] = extract_sale_id(movement.get("notes"))
            if movement["book_id"] not in titles:
                try:
                    book = self.store.get("books", movement["book_id"])
                except Exception as e:
                    logger.warning(f"No se pudo resolver el título del libro {movement['book_id']}: {e}")
                    book = None
                titles[movement["book_id"]] = book.get("title") if book else None
            movement["book_title"] = titles[movement["book_id"]]
        return response
