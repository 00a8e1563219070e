"""
Tests para la fuente de datos en memoria
"""

import asyncio

from conftest import FACTURAS, listado_facturas
from erp_informes.modules.informes.catalog import CATALOG, Aggregation, ModuloInforme, Operator
from erp_informes.modules.informes.compiler import (
    Between, Comparison, Membership, Presence, TextMatch, compile_definition,
)
from erp_informes.modules.informes.datasources.memory import (
    InMemoryDataSource, InMemoryDataSourceProvider, accumulate, evaluate, get_path,
)
from erp_informes.modules.informes.validator import validate_definition


def _field(path):
    return CATALOG.resolve(ModuloInforme.VENTAS, "facturas", path)


class TestPaths:

    def test_nested_path(self):
        assert get_path({"cliente": {"nombre": "Acme"}}, "cliente.nombre") == "Acme"

    def test_missing_path_is_distinct_from_null(self):
        document = {"cliente": None, "pendiente": None}
        assert get_path(document, "pendiente") is None
        assert get_path(document, "cliente.nombre") is not None
        assert get_path(document, "cliente.nombre") is get_path(document, "noExiste")


class TestEvaluate:
    """Semántica de los predicados sobre documentos"""

    def test_not_equals_matches_missing_value(self):
        predicate = Comparison(_field("clienteNombre"), Operator.NOT_EQUALS, "Acme Corp")
        assert evaluate(predicate, {"clienteNombre": "Beta SL"})
        assert evaluate(predicate, {"clienteNombre": None})
        assert evaluate(predicate, {})
        assert not evaluate(predicate, {"clienteNombre": "Acme Corp"})

    def test_range_comparison_ignores_missing(self):
        predicate = Comparison(_field("pendiente"), Operator.LT, 10)
        assert evaluate(predicate, {"pendiente": 0})
        assert not evaluate(predicate, {})

    def test_between_inclusive(self):
        predicate = Between(_field("total"), 100, 200)
        assert evaluate(predicate, {"total": 100})
        assert evaluate(predicate, {"total": "200"})
        assert not evaluate(predicate, {"total": 200.01})

    def test_not_in_matches_missing_value(self):
        predicate = Membership(_field("estado"), ("anulada",), negate=True)
        assert evaluate(predicate, {})
        assert not evaluate(predicate, {"estado": "anulada"})

    def test_text_match_case_insensitive(self):
        predicate = TextMatch(_field("clienteNombre"), Operator.CONTAINS, "ACME")
        assert evaluate(predicate, {"clienteNombre": "Acme Corp"})

    def test_text_match_case_sensitive(self):
        predicate = TextMatch(_field("clienteNombre"), Operator.STARTS_WITH, "acme", case_sensitive=True)
        assert not evaluate(predicate, {"clienteNombre": "Acme Corp"})
        assert evaluate(predicate, {"clienteNombre": "acme corp"})

    def test_presence(self):
        missing = Presence(_field("pendiente"), present=False)
        assert evaluate(missing, {})
        assert evaluate(missing, {"pendiente": None})
        assert not evaluate(missing, {"pendiente": 0})


class TestAccumulate:
    """Funciones de agregación y sus valores identidad"""

    def test_sum_ignores_nulls(self):
        assert accumulate(Aggregation.SUM, [1, None, 2], 3) == 3

    def test_count_counts_rows(self):
        assert accumulate(Aggregation.COUNT, [None, None], 2) == 2

    def test_identity_values(self):
        assert accumulate(Aggregation.SUM, [], 0) == 0
        assert accumulate(Aggregation.COUNT, [], 0) == 0
        assert accumulate(Aggregation.AVG, [], 0) is None
        assert accumulate(Aggregation.MIN, [None], 1) is None
        assert accumulate(Aggregation.MAX, [], 0) is None

    def test_avg_min_max(self):
        assert accumulate(Aggregation.AVG, [1, 2, 3, None], 4) == 2
        assert accumulate(Aggregation.MIN, [3, 1, 2], 3) == 1
        assert accumulate(Aggregation.MAX, [3, 1, 2], 3) == 3


class TestInMemoryDataSource:
    """Ejecución de planes completos"""

    def test_sort_puts_nulls_first_ascending(self):
        definition = validate_definition(listado_facturas(ordenamiento=[{"campo": "clienteNombre"}]))
        plan = compile_definition(definition, limit=20)
        rows = asyncio.run(InMemoryDataSource({"facturas": FACTURAS}).aggregate(plan.collection, plan.rows))
        assert rows[0]["numero"] == "F-008"
        assert rows[1]["clienteNombre"] == "Acme Corp"

    def test_sort_puts_nulls_last_descending(self):
        definition = validate_definition(listado_facturas(ordenamiento=[{"campo": "clienteNombre", "direccion": "desc"}]))
        plan = compile_definition(definition, limit=20)
        rows = asyncio.run(InMemoryDataSource({"facturas": FACTURAS}).aggregate(plan.collection, plan.rows))
        assert rows[-1]["numero"] == "F-008"

    def test_sort_is_stable_on_ties(self):
        definition = validate_definition(listado_facturas(ordenamiento=[{"campo": "clienteNombre"}]))
        plan = compile_definition(definition, limit=20)
        rows = asyncio.run(InMemoryDataSource({"facturas": FACTURAS}).aggregate(plan.collection, plan.rows))
        acme = [r["numero"] for r in rows if r["clienteNombre"] == "Acme Corp"]
        assert acme == ["F-001", "F-003", "F-006"]

    def test_source_keeps_its_own_copy(self):
        documents = [{"numero": "X-1", "total": 10}]
        source = InMemoryDataSource({"facturas": documents})
        documents[0]["total"] = 99

        definition = validate_definition(listado_facturas(campos=[{"campo": "total"}]))
        plan = compile_definition(definition)
        assert asyncio.run(source.aggregate(plan.collection, plan.rows)) == [{"total": 10}]

    def test_unknown_collection_is_empty(self):
        definition = validate_definition(listado_facturas())
        plan = compile_definition(definition)
        assert asyncio.run(InMemoryDataSource().count(plan.collection, plan.count)) == 0

    def test_provider_isolates_tenants(self):
        provider = InMemoryDataSourceProvider()
        provider.for_tenant("a").add("facturas", FACTURAS)
        assert provider.for_tenant("a") is provider.for_tenant("a")

        plan = compile_definition(validate_definition(listado_facturas()))
        assert asyncio.run(provider.for_tenant("a").count(plan.collection, plan.count)) == len(FACTURAS)
        assert asyncio.run(provider.for_tenant("b").count(plan.collection, plan.count)) == 0
