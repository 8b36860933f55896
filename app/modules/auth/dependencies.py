"""
Dependencias de autenticación para FastAPI.
"""
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.modules.auth.schemas import AuthSession, SessionContext
from app.modules.auth.utils import decode_token, session_from_payload

# Security scheme; sin token se trabaja en modo anónimo/demo
security = HTTPBearer(auto_error=False)


def get_session_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> SessionContext:
    """
    Construir el contexto de sesión de la petición.
    Un token presente pero inválido se rechaza; la ausencia de token no.
    """
    if credentials is None:
        return SessionContext()

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return SessionContext(
        force_real_data=bool(payload.get("force_real_data")),
        session=session_from_payload(payload),
    )


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def require_session(
        context: SessionContext = Depends(get_session_context),
    ) -> AuthSession:
        """Exigir una sesión viva."""
        if context.session is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Usuario no autenticado",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return context.session

    @staticmethod
    def require_role(*roles: str):
        """Exigir uno de los roles indicados."""
        def role_checker(session: AuthSession = Depends(AuthDependencies.require_session)) -> AuthSession:
            if session.role not in roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de los roles: {', '.join(roles)}"
                )
            return session
        return role_checker
