import logging
import threading
from datetime import timedelta
from typing import Callable, List, Optional

from fastapi import HTTPException, status

from app.common.time_utils import utcnow
from app.core.config import settings
from app.gateway.base import ConflictError, DataStore
from app.modules.auth.schemas import AuthSession, SessionContext, TokenResponse, UserCreate, UserOut
from app.modules.auth.utils import (
    build_token_claims, create_access_token, hash_password, session_from_payload, verify_password, decode_token
)

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"

AuthListener = Callable[[str, Optional[AuthSession]], None]

_listeners: List[AuthListener] = []
_listeners_lock = threading.Lock()


def on_auth_state_change(listener: AuthListener) -> Callable[[], None]:
    """
    Registrar un callback para eventos de sesión (SIGNED_IN / SIGNED_OUT).
    Devuelve la función para cancelar la suscripción.
    """
    with _listeners_lock:
        _listeners.append(listener)

    def unsubscribe() -> None:
        with _listeners_lock:
            if listener in _listeners:
                _listeners.remove(listener)

    return unsubscribe


def _notify(event: str, session: Optional[AuthSession]) -> None:
    with _listeners_lock:
        listeners = list(_listeners)
    for listener in listeners:
        try:
            listener(event, session)
        except Exception as e:
            logger.error(f"Listener de autenticación falló en {event}: {e}")


class AuthService:
    """
    Servicio de autenticación sobre la tabla `users` del almacén.
    """

    def __init__(self, store: DataStore):
        self.store = store

    def _find_by_email(self, email: str) -> Optional[dict]:
        users = self.store.select("users", filters={"email": email}, limit=1)
        return users[0] if users else None

    def register_user(self, user_data: UserCreate) -> dict:
        """Crear usuario con contraseña hasheada."""
        if self._find_by_email(user_data.email):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Este email ya está registrado"
            )
        try:
            user = self.store.insert("users", {
                "email": user_data.email,
                "name": user_data.name,
                "role": user_data.role.value,
                "password": hash_password(user_data.password),
                "is_active": True,
            })[0]
        except ConflictError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Este email ya está registrado"
            )
        logger.info(f"Usuario {user['email']} registrado")
        return user

    def sign_in(self, email: str, password: str) -> TokenResponse:
        """
        Login: valida credenciales y emite un token que activa el uso del
        backend real (`force_real_data`).
        """
        user = self._find_by_email(email)
        if not user or not user.get("password"):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Credenciales incorrectas"
            )

        if not verify_password(password, user["password"]):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Credenciales incorrectas"
            )

        if not user.get("is_active", True):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Cuenta inactiva"
            )

        try:
            self.store.update("users", user["id"], {"last_login": utcnow()})
        except Exception as e:
            logger.warning(f"No se pudo registrar el último login de {email}: {e}")

        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        access_token = create_access_token(build_token_claims(user, force_real_data=True), expires_delta)

        _notify(SIGNED_IN, session_from_payload(decode_token(access_token)))
        logger.info(f"Login de {email}")

        return TokenResponse(
            access_token=access_token,
            expires_in=int(expires_delta.total_seconds()),
            user=UserOut(**user),
        )

    def sign_out(self, context: SessionContext) -> None:
        """Los tokens no se revocan; solo se notifica a los listeners."""
        _notify(SIGNED_OUT, context.session)
        if context.session:
            logger.info(f"Logout de {context.session.email}")

    @staticmethod
    def get_session(context: SessionContext) -> Optional[AuthSession]:
        return context.session
