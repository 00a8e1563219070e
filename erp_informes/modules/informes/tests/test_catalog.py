"""
Tests para el catálogo de campos
"""

import pytest

from erp_informes.modules.informes.catalog import (
    CATALOG, Aggregation, CollectionDefinition, FieldCatalog, FieldDefinition,
    FieldNotFound, FieldType, ModuloInforme, Operator, parse_aggregation, parse_operator,
)


class TestFieldCatalog:
    """Consultas sobre el catálogo"""

    def test_every_module_has_collections(self):
        """Todos los módulos exponen al menos una colección"""
        for module in ModuloInforme:
            assert CATALOG.collections_for(module), module

    def test_resolve_nested_field(self):
        field = CATALOG.resolve(ModuloInforme.VENTAS, "facturas", "totales.totalFactura")
        assert field.type == FieldType.NUMBER
        assert field.aggregatable is True
        assert field.format == "currency"
        assert field.segments == ("totales", "totalFactura")

    def test_resolve_accepts_module_value(self):
        field = CATALOG.resolve("ventas", "facturas", "fecha")
        assert field.type == FieldType.DATE

    def test_resolve_unknown_field(self):
        with pytest.raises(FieldNotFound):
            CATALOG.resolve(ModuloInforme.VENTAS, "facturas", "noExiste")

    def test_resolve_unknown_module(self):
        with pytest.raises(FieldNotFound):
            CATALOG.resolve("contabilidad", "asientos", "importe")

    def test_fields_for_collection(self):
        paths = [f.path for f in CATALOG.fields_for(ModuloInforme.COMPRAS, "facturas_compra")]
        assert "proveedorNombre" in paths
        assert all(f.collection == "facturas_compra" for f in CATALOG.fields_for(ModuloInforme.COMPRAS, "facturas_compra"))

    def test_fields_for_module_spans_collections(self):
        collections = {f.collection for f in CATALOG.fields_for(ModuloInforme.VENTAS)}
        assert {"facturas", "lineas_factura", "pedidos"} <= collections

    def test_has_collection(self):
        assert CATALOG.has_collection(ModuloInforme.STOCK, "productos")
        assert not CATALOG.has_collection(ModuloInforme.STOCK, "facturas")

    def test_as_dict_single_module(self):
        data = CATALOG.as_dict(ModuloInforme.TESORERIA)
        assert list(data) == ["tesoreria"]
        colecciones = {c["coleccion"] for c in data["tesoreria"]}
        assert colecciones == {"movimientos_tesoreria", "vencimientos"}

    def test_as_dict_lists_enum_values_and_operators(self):
        facturas = next(c for c in CATALOG.as_dict()["ventas"] if c["coleccion"] == "facturas")
        estado = next(f for f in facturas["campos"] if f["campo"] == "estado")
        assert "cobrada" in estado["valores"]
        assert "in" in estado["operadores"]
        assert "contains" not in estado["operadores"]

    def test_duplicate_field_rejected(self):
        """Un catálogo con el mismo campo dos veces no se puede construir"""
        field = FieldDefinition(ModuloInforme.GENERAL, "logs", "fecha", "Fecha", FieldType.DATE)
        collection = CollectionDefinition(ModuloInforme.GENERAL, "logs", "Logs", (field, field))
        with pytest.raises(ValueError):
            FieldCatalog([collection])


class TestOperators:
    """Operadores permitidos por tipo y nombres heredados"""

    def test_operators_derived_from_type(self):
        total = CATALOG.resolve(ModuloInforme.VENTAS, "facturas", "total")
        nombre = CATALOG.resolve(ModuloInforme.VENTAS, "facturas", "clienteNombre")
        activo = CATALOG.resolve(ModuloInforme.STOCK, "productos", "activo")

        assert Operator.BETWEEN in total.allowed_operators
        assert Operator.CONTAINS not in total.allowed_operators
        assert Operator.CONTAINS in nombre.allowed_operators
        assert Operator.GT not in nombre.allowed_operators
        assert activo.allowed_operators == {
            Operator.EQUALS, Operator.NOT_EQUALS, Operator.IS_NULL, Operator.IS_NOT_NULL,
        }

    def test_parse_operator_canonical_and_legacy(self):
        assert parse_operator("gte") == Operator.GTE
        assert parse_operator("notIn") == Operator.NOT_IN
        assert parse_operator("mayor") == Operator.GT
        assert parse_operator("Entre") == Operator.BETWEEN
        assert parse_operator("parecido") is None
        assert parse_operator(3) is None

    def test_parse_aggregation(self):
        assert parse_aggregation(None) == Aggregation.NONE
        assert parse_aggregation("") == Aggregation.NONE
        assert parse_aggregation("SUM") == Aggregation.SUM
        assert parse_aggregation("promedio") == Aggregation.AVG
        assert parse_aggregation("conteo") == Aggregation.COUNT
        assert parse_aggregation("mediana") is None
