from fastapi import Depends
from typing import Annotated

from app.gateway.base import DataStore
from app.gateway.memory import JsonFileDataStore
from app.gateway.selection import get_local_transaction_store, select_data_store
from app.modules.auth.dependencies import get_session_context
from app.modules.auth.schemas import SessionContext


def get_data_store(context: SessionContext = Depends(get_session_context)) -> DataStore:
    """Almacén de datos elegido para la petición actual."""
    return select_data_store(context)


def get_local_store() -> JsonFileDataStore:
    """Almacén local persistido de transacciones financieras."""
    return get_local_transaction_store()


session_dependency = Annotated[SessionContext, Depends(get_session_context)]

store_dependency = Annotated[DataStore, Depends(get_data_store)]

local_store_dependency = Annotated[JsonFileDataStore, Depends(get_local_store)]
