from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(url: str, echo: bool = False) -> Engine:
    """Crear engine síncrono. SQLite en memoria comparte una única conexión."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        echo=echo
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


# Engine del backend real; None cuando DATABASE_URL no está configurada
sync_engine: Optional[Engine] = (
    build_engine(settings.DATABASE_URL, echo=settings.DEBUG and settings.ENVIRONMENT != "test")
    if settings.database_configured else None
)

SessionLocal: Optional[sessionmaker] = (
    build_session_factory(sync_engine) if sync_engine is not None else None
)

if sync_engine is None:
    logger.warning("DATABASE_URL no configurada: se usarán datos de ejemplo en memoria")
