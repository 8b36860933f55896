"""
Implementación del almacén de datos sobre SQLAlchemy (backend real)
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy import case, or_
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.database.database import Base
from app.gateway.base import (
    Condition,
    ConflictError,
    DataStore,
    DataStoreError,
    PermissionDeniedError,
    RecordNotFoundError,
    Row,
    SearchTerm,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

PERMISSION_MARKERS = ("permission denied", "row-level security", "insufficient privilege")


def registered_models() -> Dict[str, Any]:
    """Mapa tabla -> modelo ORM de todos los modelos registrados en Base."""
    return {
        mapper.class_.__tablename__: mapper.class_
        for mapper in Base.registry.mappers
        if hasattr(mapper.class_, "__tablename__")
    }


def row_to_dict(instance) -> Row:
    return {attr.key: getattr(instance, attr.key) for attr in instance.__mapper__.column_attrs}


class SqlAlchemyDataStore(DataStore):
    """
    Cada operación abre su propia sesión y hace commit al terminar.
    Los errores del motor se traducen a la jerarquía DataStoreError.
    """

    is_remote = True

    def __init__(self, session_factory: sessionmaker, models: Optional[Dict[str, Any]] = None):
        self.session_factory = session_factory
        self.models = models if models is not None else registered_models()

    # ===== helpers =====

    def _model(self, table: str):
        try:
            return self.models[table]
        except KeyError:
            raise DataStoreError(f"Tabla desconocida: {table}")

    @contextmanager
    def _session(self):
        db: Session = self.session_factory()
        try:
            yield db
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError(str(e.orig))
        except (OperationalError, ProgrammingError) as e:
            db.rollback()
            message = str(e.orig)
            if any(marker in message.lower() for marker in PERMISSION_MARKERS):
                raise PermissionDeniedError(message)
            raise StoreUnavailableError(message)
        except SQLAlchemyError as e:
            db.rollback()
            raise DataStoreError(str(e))
        finally:
            db.close()

    def _column(self, model, name: str):
        column = getattr(model, name, None)
        if column is None:
            raise DataStoreError(f"Columna desconocida: {model.__tablename__}.{name}")
        return column

    def _apply_filters(
        self,
        query,
        model,
        filters: Optional[Dict[str, Any]],
        conditions: Optional[Iterable[Condition]],
        search: Optional[SearchTerm],
    ):
        for key, value in (filters or {}).items():
            if value is None:
                continue
            query = query.filter(self._column(model, key) == value)

        for condition in conditions or ():
            column = self._column(model, condition.column)
            op, value = condition.op, condition.value
            if op == "eq":
                query = query.filter(column == value)
            elif op == "ne":
                query = query.filter(or_(column != value, column.is_(None)))
            elif op == "gt":
                query = query.filter(column > value)
            elif op == "gte":
                query = query.filter(column >= value)
            elif op == "lt":
                query = query.filter(column < value)
            elif op == "lte":
                query = query.filter(column <= value)
            elif op == "in":
                query = query.filter(column.in_(list(value)))
            elif op == "is_null":
                query = query.filter(column.is_(None))
            elif op == "not_null":
                query = query.filter(column.isnot(None))
            else:
                raise DataStoreError(f"Operador no soportado: {op}")

        if search and search.term:
            pattern = f"%{search.term}%"
            query = query.filter(or_(*[self._column(model, col).ilike(pattern) for col in search.columns]))

        return query

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
        model = self._model(table)
        with self._session() as db:
            query = self._apply_filters(db.query(model), model, filters, conditions, search)
            if order_by:
                column = self._column(model, order_by)
                # Nulos al final en ambos sentidos, igual que el almacén en memoria
                query = query.order_by(column.is_(None), column.desc() if descending else column.asc())
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return [row_to_dict(item) for item in query.all()]

    def count(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        conditions: Optional[Iterable[Condition]] = None,
        search: Optional[SearchTerm] = None,
    ) -> int:
        model = self._model(table)
        with self._session() as db:
            return self._apply_filters(db.query(model), model, filters, conditions, search).count()

    def get(self, table: str, row_id: str) -> Optional[Row]:
        model = self._model(table)
        with self._session() as db:
            instance = db.get(model, str(row_id))
            return row_to_dict(instance) if instance is not None else None

    def insert(self, table: str, values: Union[Row, List[Row]]) -> List[Row]:
        model = self._model(table)
        batch = values if isinstance(values, list) else [values]
        with self._session() as db:
            instances = [model(**item) for item in batch]
            db.add_all(instances)
            db.flush()
            for instance in instances:
                db.refresh(instance)
            return [row_to_dict(instance) for instance in instances]

    def update(self, table: str, row_id: str, values: Row) -> Row:
        model = self._model(table)
        with self._session() as db:
            instance = db.get(model, str(row_id))
            if instance is None:
                raise RecordNotFoundError(f"{table}: ID {row_id} no encontrado")
            for key, value in values.items():
                if key == "id":
                    continue
                self._column(model, key)
                setattr(instance, key, value)
            db.flush()
            db.refresh(instance)
            return row_to_dict(instance)

    def delete(self, table: str, row_id: str) -> None:
        model = self._model(table)
        with self._session() as db:
            instance = db.get(model, str(row_id))
            if instance is None:
                raise RecordNotFoundError(f"{table}: ID {row_id} no encontrado")
            db.delete(instance)

    def upsert(self, table: str, values: Row, conflict_column: str = "id") -> Row:
        model = self._model(table)
        key = values.get(conflict_column)
        with self._session() as db:
            instance = None
            if key is not None:
                instance = db.query(model).filter(self._column(model, conflict_column) == key).first()
            if instance is None:
                instance = model(**values)
                db.add(instance)
            else:
                for field, value in values.items():
                    if field != "id":
                        setattr(instance, field, value)
            db.flush()
            db.refresh(instance)
            return row_to_dict(instance)

    def increment(
        self, table: str, column: str, row_id: str, delta: int, floor: Optional[int] = 0
    ) -> int:
        model = self._model(table)
        target = self._column(model, column)
        new_value = target + delta
        if floor is not None:
            new_value = case((target + delta < floor, floor), else_=target + delta)
        with self._session() as db:
            updated = (
                db.query(model)
                .filter(model.id == str(row_id))
                .update({column: new_value}, synchronize_session=False)
            )
            if not updated:
                raise RecordNotFoundError(f"{table}: ID {row_id} no encontrado")
            return db.query(target).filter(model.id == str(row_id)).scalar()
