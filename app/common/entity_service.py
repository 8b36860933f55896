"""
Servicio de entidad genérico

Envuelve el almacén de datos para una tabla lógica y devuelve siempre un
ServiceResponse {data, error, status}; nunca lanza excepciones hacia el llamador.
"""
import logging
from math import ceil
from typing import Any, Dict, Iterable, Optional

from pydantic import BaseModel, Field

from app.common.responses import ServiceResponse
from app.core.config import settings
from app.gateway.base import Condition, DataStore, RecordNotFoundError, SearchTerm

logger = logging.getLogger(__name__)

STORE_UNAVAILABLE_MESSAGE = "Almacén de datos no disponible"


class Pagination(BaseModel):
    page: int = Field(1, ge=1)
    page_size: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
    order_by: Optional[str] = "created_at"
    descending: bool = True

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class EntityService:
    """CRUD genérico sobre una tabla del almacén."""

    table: str = ""
    not_found_label: str = "Item"

    def __init__(self, store: Optional[DataStore]):
        self.store = store

    def _not_found(self, item_id: Any) -> str:
        return f"{self.not_found_label} con ID {item_id} no encontrado"

    def _run(self, operation: str, func, *args, **kwargs) -> ServiceResponse:
        if self.store is None:
            return ServiceResponse.failure(STORE_UNAVAILABLE_MESSAGE)
        try:
            return ServiceResponse.success(func(*args, **kwargs))
        except Exception as e:
            logger.error(f"Error en {self.table}.{operation}: {e}")
            return ServiceResponse.failure(getattr(e, "message", None) or str(e))

    # ===== operaciones =====

    def get_all(
        self,
        filters: Optional[Dict[str, Any]] = None,
        pagination: Optional[Pagination] = None,
        conditions: Optional[Iterable[Condition]] = None,
        search: Optional[SearchTerm] = None,
    ) -> ServiceResponse:
        """Listar con filtros de igualdad (se ignoran los None) y paginación."""
        pagination = pagination or Pagination()
        conditions = list(conditions or ())

        def _query():
            total = self.store.count(self.table, filters=filters, conditions=conditions, search=search)
            items = self.store.select(
                self.table,
                filters=filters,
                conditions=conditions,
                search=search,
                order_by=pagination.order_by,
                descending=pagination.descending,
                offset=pagination.offset,
                limit=pagination.page_size,
            )
            return {
                "items": items,
                "total": total,
                "page": pagination.page,
                "page_size": pagination.page_size,
                "total_pages": ceil(total / pagination.page_size) if total else 0,
            }

        return self._run("get_all", _query)

    def get_by_id(self, item_id: str) -> ServiceResponse:
        response = self._run("get_by_id", lambda: self.store.get(self.table, item_id))
        if response.ok and response.data is None:
            return ServiceResponse.failure(self._not_found(item_id))
        return response

    def create(self, data: Dict[str, Any]) -> ServiceResponse:
        return self._run("create", lambda: self.store.insert(self.table, data)[0])

    def update(self, item_id: str, data: Dict[str, Any]) -> ServiceResponse:
        def _update():
            try:
                return self.store.update(self.table, item_id, data)
            except RecordNotFoundError:
                raise RecordNotFoundError(self._not_found(item_id))

        return self._run("update", _update)

    def delete(self, item_id: str) -> ServiceResponse:
        def _delete():
            try:
                self.store.delete(self.table, item_id)
            except RecordNotFoundError:
                raise RecordNotFoundError(self._not_found(item_id))
            return {"id": item_id}

        return self._run("delete", _delete)
