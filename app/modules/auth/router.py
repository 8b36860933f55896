from fastapi import APIRouter, Depends, HTTPException, status

from app.dependencies.storeDependencies import session_dependency, store_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthSession, TokenResponse, UserCreate, UserLogin, UserOut
from app.modules.auth.service import AuthService

auth_router = APIRouter(prefix="/auth", tags=["Auth"])


@auth_router.post("/login", response_model=TokenResponse)
def login(credentials: UserLogin, store: store_dependency):
    """
    Login de usuario. El token emitido hace que las siguientes peticiones
    usen el backend real.
    """
    return AuthService(store).sign_in(credentials.email, credentials.password)


@auth_router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(context: session_dependency, store: store_dependency):
    AuthService(store).sign_out(context)


@auth_router.get("/session", response_model=AuthSession)
def get_session(context: session_dependency):
    """Sesión viva de la petición."""
    session = AuthService.get_session(context)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Usuario no autenticado",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


@auth_router.post(
    "/users",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(AuthDependencies.require_role("admin", "gerente"))],
)
def register_user(user_data: UserCreate, store: store_dependency):
    """Registrar operador (solo admin/gerente)."""
    return AuthService(store).register_user(user_data)
