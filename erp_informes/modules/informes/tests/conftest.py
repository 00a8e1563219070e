"""
Fixtures comunes para los tests del módulo de Informes

- Base de datos SQLite en memoria para el almacén de definiciones
- Fuente de datos en memoria con facturas de ejemplo
- TestClient con las dependencias de base de datos y fuente sustituidas
"""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from uuid import uuid4

from erp_informes.database.database import Base, get_db
from erp_informes.modules.informes import models  # noqa: F401
from erp_informes.modules.informes.datasources.memory import InMemoryDataSource
from erp_informes.modules.informes.router import get_data_source


FACTURAS = [
    {
        "numero": "F-001", "fecha": "2024-01-10T10:00:00Z", "clienteNombre": "Acme Corp",
        "cliente": {"nombre": "Acme Corp", "nif": "B11111111"}, "estado": "emitida",
        "baseImponible": 82.64, "total": 100.0, "pendiente": 100.0,
        "totales": {"baseImponible": 82.64, "totalFactura": 100.0},
    },
    {
        "numero": "F-002", "fecha": "2024-01-20T12:00:00Z", "clienteNombre": "Beta SL",
        "cliente": {"nombre": "Beta SL", "nif": "B22222222"}, "estado": "cobrada",
        "baseImponible": 165.29, "total": 200.0, "pendiente": 0.0,
        "totales": {"baseImponible": 165.29, "totalFactura": 200.0},
    },
    {
        "numero": "F-003", "fecha": "2024-02-05T09:30:00Z", "clienteNombre": "Acme Corp",
        "cliente": {"nombre": "Acme Corp", "nif": "B11111111"}, "estado": "cobrada",
        "baseImponible": 247.93, "total": 300.0, "pendiente": 0.0,
        "totales": {"baseImponible": 247.93, "totalFactura": 300.0},
    },
    {
        "numero": "F-004", "fecha": "2024-02-25T16:00:00Z", "clienteNombre": "Gamma SA",
        "cliente": {"nombre": "Gamma SA", "nif": "A33333333"}, "estado": "vencida",
        "baseImponible": 330.58, "total": 400.0, "pendiente": 400.0,
        "totales": {"baseImponible": 330.58, "totalFactura": 400.0},
    },
    {
        "numero": "F-005", "fecha": "2024-03-15T11:00:00Z", "clienteNombre": "Beta SL",
        "cliente": {"nombre": "Beta SL", "nif": "B22222222"}, "estado": "emitida",
        "baseImponible": 413.22, "total": 500.0, "pendiente": 250.0,
        "totales": {"baseImponible": 413.22, "totalFactura": 500.0},
    },
    {
        "numero": "F-006", "fecha": "2024-12-31T18:30:00Z", "clienteNombre": "Acme Corp",
        "cliente": {"nombre": "Acme Corp", "nif": "B11111111"}, "estado": "emitida",
        "baseImponible": 495.87, "total": 600.0, "pendiente": 600.0,
        "totales": {"baseImponible": 495.87, "totalFactura": 600.0},
    },
    {
        "numero": "F-007", "fecha": "2023-12-31T10:00:00Z", "clienteNombre": "Delta SA",
        "cliente": {"nombre": "Delta SA", "nif": "A44444444"}, "estado": "cobrada",
        "baseImponible": 578.51, "total": 700.0, "pendiente": 0.0,
        "totales": {"baseImponible": 578.51, "totalFactura": 700.0},
    },
    {
        # Borrador sin cliente ni importe pendiente
        "numero": "F-008", "fecha": "2024-03-01T08:00:00Z", "clienteNombre": None,
        "estado": "borrador", "baseImponible": 41.32, "total": 50.0,
        "totales": {"baseImponible": 41.32, "totalFactura": 50.0},
    },
]


# ===== DEFINICIONES =====

def ventas_por_mes(**overrides):
    """Ventas de 2024 agrupadas por mes"""
    definicion = {
        "nombre": "Ventas 2024 por mes",
        "modulo": "ventas",
        "coleccion": "facturas",
        "campos": [
            {"campo": "fecha", "etiqueta": "Mes"},
            {"campo": "totales.totalFactura", "agregacion": "sum"},
        ],
        "filtros": [
            {"campo": "fecha", "operador": "between", "valor": "2024-01-01", "valor2": "2024-12-31"},
        ],
        "agrupaciones": [{"campo": "fecha", "granularidad": "month"}],
        "ordenamiento": [{"campo": "fecha", "direccion": "asc"}],
    }
    definicion.update(overrides)
    return definicion


def listado_facturas(**overrides):
    """Listado plano de facturas"""
    definicion = {
        "nombre": "Listado de facturas",
        "modulo": "ventas",
        "coleccion": "facturas",
        "campos": [
            {"campo": "numero"},
            {"campo": "fecha"},
            {"campo": "clienteNombre"},
            {"campo": "estado"},
            {"campo": "total"},
        ],
    }
    definicion.update(overrides)
    return definicion


# ===== FIXTURES =====

@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def other_user_id():
    return uuid4()


@pytest.fixture
def db_session():
    """Sesión síncrona sobre SQLite en memoria con las tablas del módulo"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def memory_source():
    return InMemoryDataSource({"facturas": FACTURAS})


@pytest.fixture
def client(db_session, memory_source):
    """TestClient con base de datos y fuente de datos de prueba"""
    from erp_informes.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_data_source] = lambda: memory_source
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
        app.state.ai_interpreter = None


@pytest.fixture
def headers(tenant_id, user_id):
    return {"X-Company-ID": str(tenant_id), "X-User-ID": str(user_id)}
