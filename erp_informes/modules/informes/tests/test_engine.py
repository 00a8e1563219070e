"""
Tests para el motor de ejecución

Escenarios de ejecución sobre la fuente en memoria: paginación, totales,
filtros, parámetros, reintentos de errores transitorios y tiempo máximo.
"""

import asyncio

import pytest

from conftest import FACTURAS, listado_facturas, ventas_por_mes
from erp_informes.modules.informes.datasources.base import TransientDataSourceError
from erp_informes.modules.informes.datasources.memory import InMemoryDataSource
from erp_informes.modules.informes.engine import ReportExecutor, build_columns, is_transient
from erp_informes.modules.informes.exceptions import (
    ExecutionError, ExecutionTimeoutError, ValidationError,
)
from erp_informes.modules.informes.validator import validate_definition


def _execute(raw, source=None, **kwargs):
    executor = ReportExecutor(source or InMemoryDataSource({"facturas": FACTURAS}), retry_backoff=0)
    return asyncio.run(executor.execute(validate_definition(raw), **kwargs))


# ===== FUENTES DE PRUEBA =====

class FlakySource:
    """Falla las primeras `failures` llamadas con el error indicado"""

    def __init__(self, failures, error=None):
        self.inner = InMemoryDataSource({"facturas": FACTURAS})
        self.failures = failures
        self.error = error or TransientDataSourceError("conexión reiniciada")
        self.calls = 0

    async def _maybe_fail(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error

    async def aggregate(self, collection, stages, timeout=None):
        await self._maybe_fail()
        return await self.inner.aggregate(collection, stages, timeout)

    async def count(self, collection, stages, timeout=None):
        await self._maybe_fail()
        return await self.inner.count(collection, stages, timeout)


class SlowSource:
    """Tarda más que cualquier tiempo máximo razonable de test"""

    def __init__(self):
        self.calls = 0

    async def aggregate(self, collection, stages, timeout=None):
        self.calls += 1
        await asyncio.sleep(5)
        return []

    async def count(self, collection, stages, timeout=None):
        self.calls += 1
        await asyncio.sleep(5)
        return 0


# ===== ESCENARIOS =====

class TestGroupedExecution:
    """Ventas de 2024 agrupadas por mes"""

    def test_rows_grouped_by_month(self):
        result = _execute(ventas_por_mes(), limit=10)
        assert result.rows == [
            {"fecha": "2024-01", "totales.totalFactura": 300.0},
            {"fecha": "2024-02", "totales.totalFactura": 700.0},
            {"fecha": "2024-03", "totales.totalFactura": 550.0},
            {"fecha": "2024-12", "totales.totalFactura": 600.0},
        ]
        assert result.totals == {"totales.totalFactura": 2150.0}
        assert result.pagination.total == 4
        assert result.pagination.total_pages == 1

    def test_totals_independent_of_page(self):
        first = _execute(ventas_por_mes(), page=1, limit=2)
        second = _execute(ventas_por_mes(), page=2, limit=2)

        assert [r["fecha"] for r in first.rows] == ["2024-01", "2024-02"]
        assert [r["fecha"] for r in second.rows] == ["2024-03", "2024-12"]
        assert first.totals == second.totals == {"totales.totalFactura": 2150.0}
        assert first.pagination.total_pages == 2

    def test_deterministic(self):
        assert _execute(ventas_por_mes(), limit=3) == _execute(ventas_por_mes(), limit=3)

    def test_columns_metadata(self):
        result = _execute(ventas_por_mes())
        assert [(c.key, c.label, c.type, c.aggregation, c.format) for c in result.columns] == [
            ("fecha", "Mes", "date", "none", "month"),
            ("totales.totalFactura", "Total Factura", "number", "sum", "currency"),
        ]

    def test_count_column_is_numeric(self):
        definition = validate_definition(listado_facturas(
            campos=[{"campo": "estado"}, {"campo": "total", "agregacion": "count", "alias": "facturas"}],
            agrupaciones=[{"campo": "estado"}],
        ))
        columns = build_columns(definition)
        assert columns[1].key == "facturas"
        assert columns[1].type == "number"
        assert columns[1].format is None

    def test_sort_by_aggregate_desc(self):
        result = _execute(listado_facturas(
            campos=[{"campo": "clienteNombre"}, {"campo": "total", "agregacion": "sum"}],
            agrupaciones=[{"campo": "clienteNombre"}],
            ordenamiento=[{"campo": "total", "direccion": "desc"}],
        ))
        assert [r["clienteNombre"] for r in result.rows] == ["Acme Corp", "Beta SL", "Delta SA", "Gamma SA", None]
        assert result.rows[0]["total"] == 1000.0

    def test_top_n(self):
        raw = listado_facturas(
            campos=[{"campo": "clienteNombre"}, {"campo": "total", "agregacion": "sum"}],
            agrupaciones=[{"campo": "clienteNombre"}],
            ordenamiento=[{"campo": "total", "direccion": "desc"}],
            config={"limite": 2},
        )
        result = _execute(raw, limit=10)
        assert [r["clienteNombre"] for r in result.rows] == ["Acme Corp", "Beta SL"]
        assert result.pagination.total == 2
        assert result.totals == {"total": 2850.0}


class TestFilters:

    def test_contains_is_case_insensitive(self):
        """contains(clienteNombre, 'ACME') encuentra 'Acme Corp'"""
        result = _execute(listado_facturas(filtros=[
            {"campo": "clienteNombre", "operador": "contains", "valor": "ACME"},
        ]))
        assert [r["numero"] for r in result.rows] == ["F-001", "F-003", "F-006"]

    def test_date_only_lte_and_gt_do_not_overlap(self):
        """lte y gt sobre la misma fecha sin hora reparten el día sin solaparse"""
        hasta = _execute(listado_facturas(filtros=[
            {"campo": "fecha", "operador": "lte", "valor": "2024-01-10"},
        ]))
        desde = _execute(listado_facturas(filtros=[
            {"campo": "fecha", "operador": "gt", "valor": "2024-01-10"},
        ]))
        numeros_hasta = {r["numero"] for r in hasta.rows}
        numeros_desde = {r["numero"] for r in desde.rows}

        assert numeros_hasta == {"F-001", "F-007"}
        assert numeros_hasta.isdisjoint(numeros_desde)
        assert len(numeros_hasta | numeros_desde) == len(FACTURAS)

    def test_not_equals_includes_missing(self):
        result = _execute(listado_facturas(filtros=[
            {"campo": "clienteNombre", "operador": "notEquals", "valor": "Acme Corp"},
        ]))
        assert {r["numero"] for r in result.rows} == {"F-002", "F-004", "F-005", "F-007", "F-008"}

    def test_is_null(self):
        result = _execute(listado_facturas(filtros=[{"campo": "pendiente", "operador": "isNull"}]))
        assert [r["numero"] for r in result.rows] == ["F-008"]

    def test_in(self):
        result = _execute(listado_facturas(filtros=[
            {"campo": "estado", "operador": "in", "valor": ["emitida", "vencida"]},
        ]))
        assert [r["numero"] for r in result.rows] == ["F-001", "F-004", "F-005", "F-006"]

    def test_nested_field(self):
        result = _execute(listado_facturas(
            campos=[{"campo": "numero"}, {"campo": "cliente.nif"}],
            filtros=[{"campo": "cliente.nif", "operador": "startsWith", "valor": "a"}],
        ))
        assert result.rows == [
            {"numero": "F-004", "cliente.nif": "A33333333"},
            {"numero": "F-007", "cliente.nif": "A44444444"},
        ]

    def test_no_matches(self):
        """Sin coincidencias: filas vacías, totales identidad y total 0"""
        result = _execute(listado_facturas(
            campos=[
                {"campo": "total", "agregacion": "sum"},
                {"campo": "total", "agregacion": "count", "alias": "facturas"},
                {"campo": "total", "agregacion": "avg", "alias": "media"},
                {"campo": "total", "agregacion": "min", "alias": "minimo"},
                {"campo": "total", "agregacion": "max", "alias": "maximo"},
            ],
            filtros=[{"campo": "estado", "operador": "equals", "valor": "anulada"}],
        ))
        assert result.rows == []
        assert result.totals == {"total": 0, "facturas": 0, "media": None, "minimo": None, "maximo": None}
        assert result.pagination.total == 0
        assert result.pagination.total_pages == 0

    def test_aggregates_without_group_keys(self):
        result = _execute(listado_facturas(
            campos=[
                {"campo": "total", "agregacion": "sum"},
                {"campo": "pendiente", "agregacion": "max"},
            ],
            filtros=[{"campo": "estado", "operador": "equals", "valor": "emitida"}],
        ))
        assert result.rows == [{"total": 1200.0, "pendiente": 600.0}]
        assert result.pagination.total == 1


class TestPagination:

    def test_pages_cover_all_rows_without_duplicates(self):
        raw = listado_facturas(ordenamiento=[{"campo": "total", "direccion": "desc"}])
        first = _execute(raw, page=1, limit=3)
        total_pages = first.pagination.total_pages
        assert total_pages == 3

        numeros = []
        for page in range(1, total_pages + 1):
            numeros.extend(r["numero"] for r in _execute(raw, page=page, limit=3).rows)
        assert len(numeros) == len(set(numeros)) == first.pagination.total == len(FACTURAS)

    def test_page_beyond_last(self):
        result = _execute(listado_facturas(), page=5, limit=3)
        assert result.rows == []
        assert result.pagination.total == len(FACTURAS)

    def test_limit_capped_by_max_page_size(self):
        executor = ReportExecutor(InMemoryDataSource({"facturas": FACTURAS}), max_page_size=5)
        result = asyncio.run(executor.execute(validate_definition(listado_facturas()), limit=50))
        assert result.pagination.limit == 5
        assert len(result.rows) == 5

    def test_pagination_disabled(self):
        result = _execute(listado_facturas(config={"paginacion": False}), page=3, limit=2)
        assert result.pagination.page == 1
        assert len(result.rows) == len(FACTURAS)

    def test_totals_disabled(self):
        assert _execute(ventas_por_mes(config={"mostrarTotales": False})).totals == {}


class TestParameters:

    PARAMETROS = [
        {"nombre": "desde", "tipo": "fecha"},
        {"nombre": "hasta", "tipo": "fecha"},
    ]
    FILTROS = [
        {"campo": "fecha", "operador": "gte", "parametro": "desde"},
        {"campo": "fecha", "operador": "lte", "parametro": "hasta"},
    ]

    def test_optional_parameters_omitted(self):
        result = _execute(listado_facturas(parametros=self.PARAMETROS, filtros=self.FILTROS))
        assert result.pagination.total == len(FACTURAS)

    def test_parameter_values_applied(self):
        result = _execute(
            listado_facturas(parametros=self.PARAMETROS, filtros=self.FILTROS),
            parameters={"desde": "2024-02-01", "hasta": "2024-03-01"},
        )
        assert [r["numero"] for r in result.rows] == ["F-003", "F-004", "F-008"]

    def test_required_parameter_missing(self):
        parametros = [{"nombre": "desde", "tipo": "fecha", "requerido": True}]
        with pytest.raises(ValidationError) as exc_info:
            _execute(listado_facturas(parametros=parametros, filtros=self.FILTROS[:1]))
        assert exc_info.value.paths == ["parametros.desde"]


# ===== FALLOS DE LA FUENTE =====

class TestRetries:
    """Reintentos de errores transitorios"""

    def test_transient_errors_retried(self):
        source = FlakySource(failures=2)
        result = _execute(listado_facturas(), source=source)
        assert result.pagination.total == len(FACTURAS)
        # 2 fallos + filas + conteo
        assert source.calls == 4

    def test_retries_exhausted(self):
        source = FlakySource(failures=100)
        executor = ReportExecutor(source, retry_attempts=3, retry_backoff=0)
        with pytest.raises(ExecutionError) as exc_info:
            asyncio.run(executor.execute(validate_definition(listado_facturas())))
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.cause, TransientDataSourceError)
        assert source.calls == 3

    def test_connection_error_is_transient(self):
        source = FlakySource(failures=1, error=ConnectionResetError("reset"))
        assert _execute(listado_facturas(), source=source).pagination.total == len(FACTURAS)

    def test_non_transient_error_not_retried(self):
        source = FlakySource(failures=1, error=RuntimeError("consulta inválida"))
        with pytest.raises(ExecutionError) as exc_info:
            _execute(listado_facturas(), source=source)
        assert exc_info.value.attempts == 1
        assert source.calls == 1

    def test_is_transient(self):
        assert is_transient(TransientDataSourceError("x"))
        assert is_transient(ConnectionRefusedError())
        assert not is_transient(TimeoutError())
        assert not is_transient(asyncio.TimeoutError())
        assert not is_transient(ValueError("x"))


class TestTimeout:
    """Tiempo máximo de ejecución"""

    def test_timeout_aborts_without_retry(self):
        source = SlowSource()
        executor = ReportExecutor(source, retry_backoff=0)
        with pytest.raises(ExecutionTimeoutError) as exc_info:
            asyncio.run(executor.execute(validate_definition(listado_facturas()), timeout=0.05))
        assert exc_info.value.timeout == 0.05
        assert source.calls == 1

    def test_default_timeout_from_executor(self):
        executor = ReportExecutor(SlowSource(), timeout=0.05)
        with pytest.raises(ExecutionTimeoutError):
            asyncio.run(executor.execute(validate_definition(listado_facturas())))
