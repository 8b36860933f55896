"""
Fixtures compartidas de la suite de tests.
"""
import os
import tempfile

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("SALE_VERIFICATION_DELAY_SECONDS", "0")
os.environ.setdefault("LOCAL_FALLBACK_PATH", os.path.join(tempfile.mkdtemp(), "transacoes-locais.json"))

import pytest
from fastapi.testclient import TestClient

from app.database.database import Base, build_engine, build_session_factory
from app.dependencies.storeDependencies import get_data_store, get_local_store
from app.gateway.memory import InMemoryDataStore, JsonFileDataStore
from app.gateway.sample_data import sample_tables, sample_transactions
from app.gateway.selection import load_models
from app.gateway.sql import SqlAlchemyDataStore
from app.main import app
from app.modules.auth.utils import build_token_claims, create_access_token, hash_password


@pytest.fixture
def memory_store():
    """Almacén en memoria con libros y clientes de ejemplo"""
    return InMemoryDataStore(tables=sample_tables())


@pytest.fixture
def local_store(tmp_path):
    """Almacén local de transacciones con TRX001-TRX005"""
    return JsonFileDataStore(str(tmp_path / "transacoes.json"), seed=sample_transactions)


@pytest.fixture
def empty_local_store(tmp_path):
    return JsonFileDataStore(str(tmp_path / "vazio.json"))


@pytest.fixture
def sql_store():
    """Backend SQL real sobre SQLite en memoria"""
    load_models()
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield SqlAlchemyDataStore(build_session_factory(engine))
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def operator(memory_store):
    """Operador registrado en el almacén en memoria"""
    return memory_store.insert("users", {
        "email": "vendedor@livraria.com",
        "name": "Vendedor Teste",
        "role": "vendedor",
        "password": hash_password("segredo123"),
        "is_active": True,
    })[0]


@pytest.fixture
def auth_headers(operator):
    token = create_access_token(build_token_claims(operator))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(memory_store, local_store):
    """TestClient con los almacenes de la petición sustituidos"""
    app.dependency_overrides[get_data_store] = lambda: memory_store
    app.dependency_overrides[get_local_store] = lambda: local_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
