"""
Motores y sesiones de base de datos.

El motor síncrono sirve al almacén de definiciones de informe (CRUD,
plantillas y tareas Celery); el asíncrono a la ejecución de informes sobre
los documentos de negocio.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool
from erp_informes.core.config import settings
import logging

logger = logging.getLogger(__name__)


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def register_sqlite_functions(engine) -> None:
    """
    Sustituye lower() de SQLite por la versión Unicode de Python.

    El lower() nativo de SQLite solo convierte ASCII, así que 'ÑANDÚ' no
    coincidiría con 'ñandú' en los filtros de texto sin distinguir
    mayúsculas. PostgreSQL ya aplica las reglas Unicode del locale.
    """
    sync = engine.sync_engine if isinstance(engine, AsyncEngine) else engine
    if sync.dialect.name != "sqlite":
        return

    @event.listens_for(sync, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.create_function("lower", 1, _unicode_lower)


# Motor del almacén de definiciones
sync_engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
    echo=settings.DEBUG
)

# Motor de ejecución de informes
async_engine = create_async_engine(
    settings.async_database_url,
    pool_pre_ping=True,
    echo=settings.DEBUG,
    poolclass=NullPool if settings.ENVIRONMENT == "test" else None
)
register_sqlite_functions(async_engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)

AsyncSessionLocal = sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)

Base = declarative_base()


def get_db():
    """Sesión síncrona por petición para el almacén de definiciones."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_async_db() -> AsyncSession:
    """Sesión asíncrona por petición para ejecutar informes."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Error de base de datos durante la ejecución: {e}")
            await session.rollback()
            raise
        finally:
            await session.close()
