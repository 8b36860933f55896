"""
Tests de autenticación

- Login, credenciales incorrectas y cuentas inactivas
- Token que activa el backend real (force_real_data)
- Sesión de la petición y eventos SIGNED_IN / SIGNED_OUT
- Registro de operadores restringido por rol
"""

import pytest
from fastapi import HTTPException

from app.modules.auth.schemas import AuthSession, SessionContext
from app.modules.auth.service import SIGNED_IN, SIGNED_OUT, AuthService, on_auth_state_change
from app.modules.auth.utils import (
    build_token_claims, create_access_token, decode_token, hash_password, session_from_payload, verify_password
)


@pytest.fixture
def admin_headers(memory_store):
    admin = memory_store.insert("users", {
        "email": "gerente@livraria.com",
        "name": "Gerente",
        "role": "gerente",
        "password": hash_password("gerente123"),
        "is_active": True,
    })[0]
    return {"Authorization": f"Bearer {create_access_token(build_token_claims(admin))}"}


@pytest.fixture
def auth_events():
    events = []
    unsubscribe = on_auth_state_change(lambda event, session: events.append((event, session)))
    yield events
    unsubscribe()


class TestTokens:
    """Tests de tokens y contraseñas"""

    def test_password_hashing(self):
        hashed = hash_password("segredo123")
        assert hashed != "segredo123"
        assert verify_password("segredo123", hashed)
        assert not verify_password("errada", hashed)

    def test_token_round_trip(self, operator):
        payload = decode_token(create_access_token(build_token_claims(operator)))
        session = session_from_payload(payload)
        assert session.user_id == operator["id"]
        assert session.email == "vendedor@livraria.com"
        assert session.name == "Vendedor Teste"
        assert session.role == "vendedor"
        assert payload["force_real_data"] is True

    def test_invalid_token(self):
        assert decode_token("nao-e-um-token") is None


class TestAuthService:
    """Tests del servicio de autenticación"""

    def test_sign_in(self, memory_store, operator, auth_events):
        response = AuthService(memory_store).sign_in("vendedor@livraria.com", "segredo123")
        assert response.token_type == "bearer"
        assert response.user.id == operator["id"]
        assert decode_token(response.access_token)["force_real_data"] is True
        assert memory_store.get("users", operator["id"])["last_login"] is not None

        assert [event for event, _ in auth_events] == [SIGNED_IN]
        assert auth_events[0][1].email == "vendedor@livraria.com"

    def test_wrong_password(self, memory_store, operator, auth_events):
        with pytest.raises(HTTPException) as exc_info:
            AuthService(memory_store).sign_in("vendedor@livraria.com", "errada")
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Credenciales incorrectas"
        assert auth_events == []

    def test_unknown_email(self, memory_store):
        with pytest.raises(HTTPException) as exc_info:
            AuthService(memory_store).sign_in("ninguem@livraria.com", "segredo123")
        assert exc_info.value.status_code == 401

    def test_inactive_account(self, memory_store, operator):
        memory_store.update("users", operator["id"], {"is_active": False})
        with pytest.raises(HTTPException) as exc_info:
            AuthService(memory_store).sign_in("vendedor@livraria.com", "segredo123")
        assert exc_info.value.status_code == 403

    def test_sign_out_notifies_listeners(self, memory_store, auth_events):
        session = AuthSession(user_id="u1", email="caixa@livraria.com")
        AuthService(memory_store).sign_out(SessionContext(session=session))
        assert auth_events == [(SIGNED_OUT, session)]

    def test_failing_listener_does_not_break_sign_out(self, memory_store, auth_events):
        def broken(event, session):
            raise RuntimeError("listener quebrado")

        unsubscribe = on_auth_state_change(broken)
        try:
            AuthService(memory_store).sign_out(SessionContext())
        finally:
            unsubscribe()
        assert auth_events == [(SIGNED_OUT, None)]

    def test_unsubscribe(self, memory_store):
        events = []
        unsubscribe = on_auth_state_change(lambda event, session: events.append(event))
        unsubscribe()
        AuthService(memory_store).sign_out(SessionContext())
        assert events == []


class TestAuthAPI:
    """Tests de los endpoints de autenticación"""

    def test_login(self, client, operator):
        response = client.post("/auth/login", json={"email": "vendedor@livraria.com", "password": "segredo123"})
        assert response.status_code == 200
        body = response.json()
        assert body["user"]["email"] == "vendedor@livraria.com"
        assert "password" not in body["user"]

    def test_login_wrong_password(self, client, operator):
        response = client.post("/auth/login", json={"email": "vendedor@livraria.com", "password": "errada"})
        assert response.status_code == 401

    def test_session(self, client, auth_headers, operator):
        response = client.get("/auth/session", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["user_id"] == operator["id"]

    def test_session_without_token(self, client):
        assert client.get("/auth/session").status_code == 401

    def test_invalid_token_is_rejected(self, client):
        response = client.get("/auth/session", headers={"Authorization": "Bearer invalido"})
        assert response.status_code == 401

    def test_logout(self, client, auth_headers):
        assert client.post("/auth/logout", headers=auth_headers).status_code == 204

    def test_register_user_requires_manager(self, client, auth_headers):
        payload = {"email": "novo@livraria.com", "name": "Novo", "password": "novo123"}
        assert client.post("/auth/users", json=payload).status_code == 401
        assert client.post("/auth/users", json=payload, headers=auth_headers).status_code == 403

    def test_register_user(self, client, admin_headers, memory_store):
        payload = {"email": "novo@livraria.com", "name": "Novo", "password": "novo123"}
        response = client.post("/auth/users", json=payload, headers=admin_headers)
        assert response.status_code == 201
        assert response.json()["role"] == "vendedor"
        stored = memory_store.select("users", filters={"email": "novo@livraria.com"})[0]
        assert stored["password"] != "novo123"

        duplicate = client.post("/auth/users", json=payload, headers=admin_headers)
        assert duplicate.status_code == 400
        assert duplicate.json()["detail"] == "Este email ya está registrado"
