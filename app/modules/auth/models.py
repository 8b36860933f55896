from sqlalchemy import Column, String, Boolean, DateTime

from app.database.database import Base
from app.common.mixins import BaseMixin


class User(Base, BaseMixin):
    """Perfil del operador. El id coincide con el del proveedor de autenticación."""
    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="vendedor")  # admin, gerente, vendedor
    password = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime, nullable=True)
