"""
Selección del almacén de datos

Las instancias se crean una vez por proceso; la elección entre backend real y
datos de ejemplo se hace por petición a partir del SessionContext:
(a) force_real_data tras login, (b) sesión viva, (c) DATABASE_URL configurada.
"""
import logging
from functools import lru_cache
from typing import Optional

from app.core.config import settings
from app.gateway.base import DataStore
from app.gateway.memory import InMemoryDataStore, JsonFileDataStore
from app.gateway.sample_data import sample_tables, sample_transactions
from app.gateway.sql import SqlAlchemyDataStore
from app.modules.auth.schemas import SessionContext

logger = logging.getLogger(__name__)


def should_use_real_data(context: Optional[SessionContext]) -> bool:
    if context is not None and (context.force_real_data or context.is_authenticated):
        return True
    if settings.FORCE_REAL_DATA:
        return True
    return settings.database_configured


def load_models() -> None:
    """Registrar todos los modelos ORM en Base.metadata."""
    import app.modules.auth.models  # noqa: F401
    import app.modules.books.models  # noqa: F401
    import app.modules.customers.models  # noqa: F401
    import app.modules.finance.models  # noqa: F401
    import app.modules.inventory.models  # noqa: F401
    import app.modules.sales.models  # noqa: F401


@lru_cache()
def get_memory_store() -> InMemoryDataStore:
    from app.modules.auth.utils import hash_password

    store = InMemoryDataStore(tables=sample_tables())
    store.insert("users", {
        "email": settings.DEMO_USER_EMAIL,
        "name": "Administrador",
        "role": "admin",
        "password": hash_password(settings.DEMO_USER_PASSWORD),
        "is_active": True,
    })
    logger.info("Almacén en memoria inicializado con datos de ejemplo")
    return store


@lru_cache()
def get_remote_store() -> Optional[SqlAlchemyDataStore]:
    from app.database.database import SessionLocal

    if SessionLocal is None:
        return None
    load_models()
    return SqlAlchemyDataStore(SessionLocal)


@lru_cache()
def get_local_transaction_store() -> JsonFileDataStore:
    return JsonFileDataStore(settings.LOCAL_FALLBACK_PATH, seed=sample_transactions)


def select_data_store(context: Optional[SessionContext]) -> DataStore:
    if should_use_real_data(context):
        store = get_remote_store()
        if store is not None:
            return store
        logger.warning("Se pidió el backend real pero DATABASE_URL no está configurada; usando datos de ejemplo")
    return get_memory_store()
