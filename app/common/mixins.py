"""
Mixins comunes para los modelos
"""
from sqlalchemy import Column, DateTime, String
from uuid import uuid4

from app.common.time_utils import utcnow


def generate_id() -> str:
    return str(uuid4())


class IdMixin:
    """Identificador textual (UUID por defecto, los almacenes locales usan otros formatos)"""

    id = Column(String(36), primary_key=True, default=generate_id, index=True)


class TimestampMixin:
    """Mixin for models that need timestamp tracking (UTC naive)"""

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class BaseMixin(IdMixin, TimestampMixin):
    """Combina identificador y timestamps para los modelos del negocio"""
