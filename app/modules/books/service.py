import logging
from typing import Optional

from app.common.entity_service import EntityService, Pagination
from app.common.responses import ServiceResponse
from app.core.config import settings
from app.gateway.base import Condition, SearchTerm
from app.modules.inventory.schemas import MovementReason, MovementType, StockMovementCreate
from app.modules.inventory.service import StockService

logger = logging.getLogger(__name__)

BOOK_SEARCH_COLUMNS = ("title", "author", "isbn")


class BookService(EntityService):
    """Servicio del catálogo de libros."""

    table = "books"
    not_found_label = "Libro"

    def search_books(self, term: str, pagination: Optional[Pagination] = None) -> ServiceResponse:
        """Buscar por título, autor o ISBN (sin distinguir mayúsculas)."""
        pagination = pagination or Pagination(order_by="title", descending=False)
        return self.get_all(pagination=pagination, search=SearchTerm(BOOK_SEARCH_COLUMNS, term.strip()))

    def update_stock(
        self,
        book_id: str,
        delta: int,
        reason: MovementReason = MovementReason.AJUSTE,
        notes: Optional[str] = None,
        responsible: Optional[str] = None,
    ) -> ServiceResponse:
        """
        Aplicar un delta de cantidad como movimiento de stock.

        Rechaza el delta si la cantidad quedaría negativa; cada cambio queda
        registrado en stock_movements.
        """
        if delta == 0:
            return ServiceResponse.failure("El delta de stock no puede ser cero")
        return StockService(self.store).create_movement(StockMovementCreate(
            book_id=book_id,
            type=MovementType.ENTRADA if delta > 0 else MovementType.SAIDA,
            quantity=abs(delta),
            reason=reason,
            notes=notes,
            responsible=responsible,
        ))

    def get_low_stock_books(self) -> ServiceResponse:
        """Libros con cantidad <= stock mínimo (por defecto DEFAULT_MIN_STOCK)."""
        def _low_stock():
            books = self.store.select(self.table, order_by="quantity")
            return [
                book for book in books
                if (book.get("quantity") or 0) <= minimum_stock(book)
            ]

        return self._run("get_low_stock_books", _low_stock)

    def get_categories(self) -> ServiceResponse:
        def _categories():
            books = self.store.select(self.table, conditions=[Condition("category", "not_null")])
            return sorted({book["category"] for book in books if book["category"]})

        return self._run("get_categories", _categories)

    def get_available_books(self, pagination: Optional[Pagination] = None) -> ServiceResponse:
        """Libros con stock disponible para el punto de venta."""
        pagination = pagination or Pagination(order_by="title", descending=False)
        return self.get_all(pagination=pagination, conditions=[Condition("quantity", "gt", 0)])


def minimum_stock(book: dict) -> int:
    """Umbral de stock bajo del libro (DEFAULT_MIN_STOCK si no tiene)."""
    minimum = book.get("minimum_stock")
    return settings.DEFAULT_MIN_STOCK if minimum is None else minimum
