from app.gateway.base import (
    Condition,
    ConflictError,
    DataStore,
    DataStoreError,
    PermissionDeniedError,
    RecordNotFoundError,
    SearchTerm,
    StoreUnavailableError,
)
from app.gateway.memory import InMemoryDataStore, JsonFileDataStore
from app.gateway.sql import SqlAlchemyDataStore

__all__ = [
    "Condition",
    "ConflictError",
    "DataStore",
    "DataStoreError",
    "InMemoryDataStore",
    "JsonFileDataStore",
    "PermissionDeniedError",
    "RecordNotFoundError",
    "SearchTerm",
    "SqlAlchemyDataStore",
    "StoreUnavailableError",
]
