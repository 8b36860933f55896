"""
Puerto del almacén de datos (Data Store Gateway)

Define la interfaz que consumen todos los servicios de entidad:
- CRUD por tabla con filtros de igualdad, condiciones de rango y búsqueda
- Ordenación y paginación por rango (offset/limit)
- RPC: incremento atómico de una columna numérica
- RPC: inserción de transacción financiera con fechas seguras por zona horaria

Existen dos implementaciones: SQLAlchemy (backend real) y memoria (datos de ejemplo).
"""
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Union

from app.common.time_utils import to_local_date

Row = Dict[str, Any]

FINANCIAL_TRANSACTIONS_TABLE = "financial_transactions"
TRANSACTION_DATE_FIELDS = ("data", "data_vencimento", "data_pagamento")


class DataStoreError(Exception):
    """Error genérico devuelto por el almacén de datos."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StoreUnavailableError(DataStoreError):
    """El almacén no está configurado o no responde."""


class PermissionDeniedError(DataStoreError):
    """Denegación por política de seguridad a nivel de fila/bucket."""


class ConflictError(DataStoreError):
    """Violación de unicidad."""


class RecordNotFoundError(DataStoreError):
    """No existe la fila solicitada."""


CONDITION_OPERATORS = ("eq", "ne", "gt", "gte", "lt", "lte", "in", "is_null", "not_null")


class Condition(NamedTuple):
    column: str
    op: str
    value: Any = None


class SearchTerm(NamedTuple):
    """Búsqueda parcial sin distinguir mayúsculas, combinada con OR entre columnas."""
    columns: Sequence[str]
    term: str


class DataStore(ABC):
    """Interfaz común del almacén de datos."""

    is_remote: bool = False

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        conditions: Optional[Iterable[Condition]] = None,
        search: Optional[SearchTerm] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        ...

    @abstractmethod
    def count(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        conditions: Optional[Iterable[Condition]] = None,
        search: Optional[SearchTerm] = None,
    ) -> int:
        ...

    @abstractmethod
    def get(self, table: str, row_id: str) -> Optional[Row]:
        ...

    @abstractmethod
    def insert(self, table: str, values: Union[Row, List[Row]]) -> List[Row]:
        ...

    @abstractmethod
    def update(self, table: str, row_id: str, values: Row) -> Row:
        ...

    @abstractmethod
    def delete(self, table: str, row_id: str) -> None:
        ...

    @abstractmethod
    def upsert(self, table: str, values: Row, conflict_column: str = "id") -> Row:
        ...

    @abstractmethod
    def increment(
        self, table: str, column: str, row_id: str, delta: int, floor: Optional[int] = 0
    ) -> int:
        """Sumar `delta` a una columna numérica de forma atómica; devuelve el nuevo valor."""

    def insert_financial_transaction(self, params: Row) -> str:
        """
        Insertar una transacción financiera normalizando sus fechas.

        Las fechas se guardan como fecha de calendario de la tienda, así una venta
        registrada a las 22h en São Paulo no cae en el día siguiente por UTC.
        """
        row = dict(params)
        for field in TRANSACTION_DATE_FIELDS:
            if isinstance(row.get(field), (datetime, str)):
                row[field] = to_local_date(row[field])
        created = self.insert(FINANCIAL_TRANSACTIONS_TABLE, row)
        return created[0]["id"]


def compare(value: Any, op: str, expected: Any) -> bool:
    """Evaluar una condición sobre un valor en memoria."""
    if op == "is_null":
        return value is None
    if op == "not_null":
        return value is not None
    if op == "eq":
        return value == expected
    if op == "ne":
        return value != expected
    if op == "in":
        return value in expected
    if value is None:
        return False
    # Comparar fechas contra datetimes sin mezclar tipos
    if isinstance(expected, datetime) and not isinstance(value, datetime) and isinstance(value, date):
        value = datetime.combine(value, datetime.min.time())
    elif isinstance(value, datetime) and not isinstance(expected, datetime) and isinstance(expected, date):
        value = value.date()
    if op == "gt":
        return value > expected
    if op == "gte":
        return value >= expected
    if op == "lt":
        return value < expected
    if op == "lte":
        return value <= expected
    raise DataStoreError(f"Operador no soportado: {op}")
