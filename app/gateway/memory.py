"""
Almacenes en memoria

- InMemoryDataStore: tablas de ejemplo compartidas durante la vida del proceso
  (modo degradado cuando el backend real no está disponible)
- JsonFileDataStore: transacciones financieras persistidas en un archivo JSON
  local, usado como último recurso de escritura
"""
import json
import logging
import os
import re
import threading
from copy import deepcopy
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from uuid import uuid4

from app.common.time_utils import utcnow
from app.gateway.base import (
    Condition,
    ConflictError,
    DataStore,
    DataStoreError,
    FINANCIAL_TRANSACTIONS_TABLE,
    RecordNotFoundError,
    Row,
    SearchTerm,
    compare,
)

logger = logging.getLogger(__name__)

DEFAULT_UNIQUE_COLUMNS = {
    FINANCIAL_TRANSACTIONS_TABLE: ("referencia_externa",),
    "users": ("email",),
}


class InMemoryDataStore(DataStore):
    """
    Tablas como listas de diccionarios.

    Filtros, ordenación y paginación se aplican igual que en el backend real.
    No hay bloqueo entre escritores concurrentes.
    """

    is_remote = False

    def __init__(
        self,
        tables: Optional[Dict[str, List[Row]]] = None,
        unique_columns: Optional[Dict[str, Iterable[str]]] = None,
    ):
        self.tables: Dict[str, List[Row]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.unique_columns = {
            name: tuple(columns)
            for name, columns in (unique_columns if unique_columns is not None else DEFAULT_UNIQUE_COLUMNS).items()
        }

    # ===== helpers =====

    def _table(self, table: str) -> List[Row]:
        return self.tables.setdefault(table, [])

    def _new_id(self, table: str) -> str:
        return str(uuid4())

    def _matches(
        self,
        row: Row,
        filters: Optional[Dict[str, Any]],
        conditions: Optional[Iterable[Condition]],
        search: Optional[SearchTerm],
    ) -> bool:
        for key, value in (filters or {}).items():
            if value is None:
                continue
            if row.get(key) != value:
                return False
        for condition in conditions or ():
            if not compare(row.get(condition.column), condition.op, condition.value):
                return False
        if search and search.term:
            needle = search.term.lower()
            if not any(needle in str(row.get(col) or "").lower() for col in search.columns):
                return False
        return True

    def _check_unique(self, table: str, row: Row, exclude_id: Optional[str] = None) -> None:
        for column in self.unique_columns.get(table, ()):
            value = row.get(column)
            if value is None:
                continue
            for existing in self._table(table):
                if existing.get("id") != exclude_id and existing.get(column) == value:
                    raise ConflictError(
                        f"Valor duplicado para {table}.{column}: {value}"
                    )

    def _after_write(self, table: str) -> None:
        """Hook para subclases que persisten el estado."""

    # ===== DataStore =====

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
        conditions = list(conditions or ())
        rows = [
            row for row in self._table(table)
            if self._matches(row, filters, conditions, search)
        ]

        if order_by:
            present = [row for row in rows if row.get(order_by) is not None]
            missing = [row for row in rows if row.get(order_by) is None]
            present.sort(key=lambda row: row[order_by], reverse=descending)
            rows = present + missing

        start = offset or 0
        end = start + limit if limit is not None else None
        return [deepcopy(row) for row in rows[start:end]]

    def count(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        conditions: Optional[Iterable[Condition]] = None,
        search: Optional[SearchTerm] = None,
    ) -> int:
        conditions = list(conditions or ())
        return sum(1 for row in self._table(table) if self._matches(row, filters, conditions, search))

    def get(self, table: str, row_id: str) -> Optional[Row]:
        for row in self._table(table):
            if str(row.get("id")) == str(row_id):
                return deepcopy(row)
        return None

    def insert(self, table: str, values: Union[Row, List[Row]]) -> List[Row]:
        batch = values if isinstance(values, list) else [values]
        created = []
        for item in batch:
            now = utcnow()
            row = dict(item)
            row["id"] = row.get("id") or self._new_id(table)
            row.setdefault("created_at", now)
            row.setdefault("updated_at", now)
            if self.get(table, row["id"]) is not None:
                raise ConflictError(f"Ya existe {table} con ID {row['id']}")
            self._check_unique(table, row)
            self._table(table).insert(0, row)
            created.append(deepcopy(row))
        self._after_write(table)
        return created

    def update(self, table: str, row_id: str, values: Row) -> Row:
        for row in self._table(table):
            if str(row.get("id")) == str(row_id):
                candidate = {**row, **values, "id": row["id"], "updated_at": utcnow()}
                self._check_unique(table, candidate, exclude_id=row["id"])
                row.update(candidate)
                self._after_write(table)
                return deepcopy(row)
        raise RecordNotFoundError(f"{table}: ID {row_id} no encontrado")

    def delete(self, table: str, row_id: str) -> None:
        rows = self._table(table)
        for index, row in enumerate(rows):
            if str(row.get("id")) == str(row_id):
                del rows[index]
                self._after_write(table)
                return
        raise RecordNotFoundError(f"{table}: ID {row_id} no encontrado")

    def upsert(self, table: str, values: Row, conflict_column: str = "id") -> Row:
        key = values.get(conflict_column)
        if key is not None:
            for row in self._table(table):
                if row.get(conflict_column) == key:
                    return self.update(table, row["id"], values)
        return self.insert(table, values)[0]

    def increment(
        self, table: str, column: str, row_id: str, delta: int, floor: Optional[int] = 0
    ) -> int:
        for row in self._table(table):
            if str(row.get("id")) == str(row_id):
                new_value = (row.get(column) or 0) + delta
                if floor is not None:
                    new_value = max(floor, new_value)
                row[column] = new_value
                row["updated_at"] = utcnow()
                self._after_write(table)
                return new_value
        raise RecordNotFoundError(f"{table}: ID {row_id} no encontrado")


# ===== Persistencia local en JSON =====

def _json_default(value: Any):
    if isinstance(value, datetime):
        return {"__datetime__": value.isoformat()}
    if isinstance(value, date):
        return {"__date__": value.isoformat()}
    if isinstance(value, Decimal):
        return {"__decimal__": str(value)}
    raise TypeError(f"Tipo no serializable: {type(value).__name__}")


def _json_object_hook(obj: Dict[str, Any]):
    if "__datetime__" in obj:
        return datetime.fromisoformat(obj["__datetime__"])
    if "__date__" in obj:
        return date.fromisoformat(obj["__date__"])
    if "__decimal__" in obj:
        return Decimal(obj["__decimal__"])
    return obj


LOCAL_ID_PATTERN = re.compile(r"^TRX(\d+)$")


class JsonFileDataStore(InMemoryDataStore):
    """
    Estado local persistido de transacciones financieras.

    Solo maneja la tabla `financial_transactions`; cada escritura reescribe
    el archivo completo. Los IDs siguen el formato TRX001, TRX002...
    """

    def __init__(self, path: str, seed: Optional[Callable[[], List[Row]]] = None):
        super().__init__(tables={FINANCIAL_TRANSACTIONS_TABLE: []})
        self.path = path
        self._lock = threading.RLock()
        if os.path.exists(path):
            self._load()
        elif seed is not None:
            self.tables[FINANCIAL_TRANSACTIONS_TABLE] = [dict(row) for row in seed()]
            self._save()

    def _load(self) -> None:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                rows = json.load(fh, object_hook=_json_object_hook)
            if not isinstance(rows, list):
                raise ValueError("se esperaba una lista de transacciones")
        except (OSError, ValueError) as e:
            self._quarantine(e)
            return
        self.tables[FINANCIAL_TRANSACTIONS_TABLE] = rows
        logger.info(f"Almacén local cargado: {len(rows)} transacciones desde {self.path}")

    def _quarantine(self, error: Exception) -> None:
        """Apartar un archivo ilegible y seguir con la tabla vacía."""
        backup = f"{self.path}.{utcnow():%Y%m%d%H%M%S}.corrupt"
        logger.error(f"No se pudo leer el almacén local {self.path}: {error}. Se mueve a {backup}")
        try:
            os.replace(self.path, backup)
        except OSError as e:
            logger.error(f"No se pudo apartar el archivo local {self.path}: {e}")
        self.tables[FINANCIAL_TRANSACTIONS_TABLE] = []

    def _save(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.{uuid4().hex}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(self.tables[FINANCIAL_TRANSACTIONS_TABLE], fh, default=_json_default, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    def _table(self, table: str) -> List[Row]:
        if table != FINANCIAL_TRANSACTIONS_TABLE:
            raise DataStoreError(f"El almacén local no maneja la tabla {table}")
        return self.tables[FINANCIAL_TRANSACTIONS_TABLE]

    def _new_id(self, table: str) -> str:
        numbers = [
            int(match.group(1))
            for match in (LOCAL_ID_PATTERN.match(str(row.get("id"))) for row in self._table(table))
            if match
        ]
        return f"TRX{(max(numbers) if numbers else 0) + 1:03d}"

    def _after_write(self, table: str) -> None:
        self._save()

    # Escrituras serializadas: el archivo y la secuencia TRX son compartidos
    def insert(self, table: str, values: Union[Row, List[Row]]) -> List[Row]:
        with self._lock:
            return super().insert(table, values)

    def update(self, table: str, row_id: str, values: Row) -> Row:
        with self._lock:
            return super().update(table, row_id, values)

    def delete(self, table: str, row_id: str) -> None:
        with self._lock:
            super().delete(table, row_id)
