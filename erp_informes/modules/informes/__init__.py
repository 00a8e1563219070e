"""
Módulo de Informes - ERP

Motor de informes ad-hoc multiempresa: los usuarios definen qué campos ver,
cómo filtrarlos, agruparlos y ordenarlos, y el motor lo traduce a un plan
de consulta que se ejecuta contra la fuente de datos de la empresa.

Componentes:
- catalog.py: Catálogo estático de módulos, colecciones y campos
- definition.py: Definición normalizada de un informe
- validator.py: Validación única (usuario, IA y plantillas) y parámetros
- compiler.py: Traducción de la definición a etapas de consulta
- engine.py: Ejecución con paginación, totales, reintentos y tiempo máximo
- datasources/: Fuentes de datos por empresa (SQL y en memoria)
- service.py: Informes guardados, duplicado, favoritos y plantillas
- ai_intake.py: Generación de definiciones desde lenguaje natural
- export.py: Renderizado de resultados (CSV)
- router.py: Endpoints REST API
- tasks.py: Tareas Celery
"""

__version__ = "1.0.0"

from .exceptions import (
    ExecutionError,
    ExecutionTimeoutError,
    InformeError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .catalog import CATALOG, Aggregation, FieldType, ModuloInforme, Operator
from .validator import bind_parameters, validate_definition
from .compiler import compile_definition
from .engine import ReportExecutor

__all__ = [
    "CATALOG",
    "Aggregation",
    "FieldType",
    "ModuloInforme",
    "Operator",
    "validate_definition",
    "bind_parameters",
    "compile_definition",
    "ReportExecutor",
    "InformeError",
    "ValidationError",
    "NotFoundError",
    "ExecutionError",
    "ExecutionTimeoutError",
    "PermissionDeniedError",
]
