from pydantic import BaseModel, EmailStr, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    GERENTE = "gerente"
    VENDEDOR = "vendedor"


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserCreate(BaseModel):
    email: EmailStr
    name: str
    password: str
    role: UserRole = UserRole.VENDEDOR

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if len(v) < 6:
            raise ValueError('La contraseña debe tener al menos 6 caracteres')
        return v


class UserOut(BaseModel):
    id: str
    email: EmailStr
    name: Optional[str] = None
    role: str
    is_active: bool = True
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuthSession(BaseModel):
    """Sesión viva resuelta desde el token bearer."""
    user_id: str
    email: str
    name: Optional[str] = None
    role: str = UserRole.VENDEDOR.value
    expires_at: Optional[datetime] = None


class SessionContext(BaseModel):
    """
    Estado de autenticación de la petición.

    `force_real_data` se activa tras un login exitoso y viaja en el token;
    decide junto con la sesión qué almacén de datos se usa.
    """
    force_real_data: bool = False
    session: Optional[AuthSession] = None

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut
