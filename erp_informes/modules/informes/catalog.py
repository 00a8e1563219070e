"""
Catálogo de campos para informes

Registro estático, por módulo y colección, de los campos consultables:
tipo, etiqueta, si admiten agregación y qué operadores de filtro permiten.

El catálogo se construye una sola vez al importar el módulo y no se modifica
después; validador y compilador lo consultan sin sincronización. Los
operadores permitidos de un campo se derivan siempre de su tipo.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple


class ModuloInforme(str, Enum):
    """Módulos de negocio expuestos al catálogo"""
    VENTAS = "ventas"
    COMPRAS = "compras"
    STOCK = "stock"
    TESORERIA = "tesoreria"
    PERSONAL = "personal"
    CLIENTES = "clientes"
    PROVEEDORES = "proveedores"
    PROYECTOS = "proyectos"
    GENERAL = "general"


class FieldType(str, Enum):
    """Tipos de campo"""
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    REFERENCE = "reference"
    ENUM = "enum"


class Operator(str, Enum):
    """Operadores de filtro"""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    BETWEEN = "between"
    IN = "in"
    NOT_IN = "notIn"
    IS_NULL = "isNull"
    IS_NOT_NULL = "isNotNull"


class Aggregation(str, Enum):
    """Funciones de agregación"""
    NONE = "none"
    SUM = "sum"
    AVG = "avg"
    COUNT = "count"
    MIN = "min"
    MAX = "max"


# Nombres heredados de las definiciones antiguas (y de la IA)
OPERATOR_ALIASES = {
    "igual": Operator.EQUALS,
    "diferente": Operator.NOT_EQUALS,
    "contiene": Operator.CONTAINS,
    "comienza": Operator.STARTS_WITH,
    "termina": Operator.ENDS_WITH,
    "mayor": Operator.GT,
    "mayor_igual": Operator.GTE,
    "menor": Operator.LT,
    "menor_igual": Operator.LTE,
    "entre": Operator.BETWEEN,
    "en": Operator.IN,
    "no_en": Operator.NOT_IN,
    "no_existe": Operator.IS_NULL,
    "existe": Operator.IS_NOT_NULL,
}

AGGREGATION_ALIASES = {
    "ninguna": Aggregation.NONE,
    "suma": Aggregation.SUM,
    "promedio": Aggregation.AVG,
    "conteo": Aggregation.COUNT,
}

TEXT_OPERATORS = frozenset({Operator.CONTAINS, Operator.STARTS_WITH, Operator.ENDS_WITH})
RANGE_OPERATORS = frozenset({Operator.GT, Operator.GTE, Operator.LT, Operator.LTE})
SET_OPERATORS = frozenset({Operator.IN, Operator.NOT_IN})
PRESENCE_OPERATORS = frozenset({Operator.IS_NULL, Operator.IS_NOT_NULL})

_EQUALITY = frozenset({Operator.EQUALS, Operator.NOT_EQUALS})

OPERATORS_BY_TYPE: Dict[FieldType, FrozenSet[Operator]] = {
    FieldType.STRING: _EQUALITY | TEXT_OPERATORS | SET_OPERATORS | PRESENCE_OPERATORS,
    FieldType.NUMBER: _EQUALITY | RANGE_OPERATORS | {Operator.BETWEEN} | SET_OPERATORS | PRESENCE_OPERATORS,
    FieldType.DATE: _EQUALITY | RANGE_OPERATORS | {Operator.BETWEEN} | PRESENCE_OPERATORS,
    FieldType.BOOLEAN: _EQUALITY | PRESENCE_OPERATORS,
    FieldType.REFERENCE: _EQUALITY | SET_OPERATORS | PRESENCE_OPERATORS,
    FieldType.ENUM: _EQUALITY | SET_OPERATORS | PRESENCE_OPERATORS,
}


def parse_operator(value: Any) -> Optional[Operator]:
    """Operador canónico a partir de su nombre canónico o heredado"""
    if isinstance(value, Operator):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Operator(value)
    except ValueError:
        return OPERATOR_ALIASES.get(value.strip().lower())


def parse_aggregation(value: Any) -> Optional[Aggregation]:
    """Agregación canónica; None o cadena vacía equivalen a 'none'"""
    if value is None or value == "":
        return Aggregation.NONE
    if isinstance(value, Aggregation):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Aggregation(value.strip().lower())
    except ValueError:
        return AGGREGATION_ALIASES.get(value.strip().lower())


@dataclass(frozen=True)
class FieldDefinition:
    """Campo consultable de una colección"""
    module: ModuloInforme
    collection: str
    path: str
    label: str
    type: FieldType
    aggregatable: bool = False
    enum_values: Tuple[str, ...] = ()
    format: Optional[str] = None  # currency | percentage

    @property
    def allowed_operators(self) -> FrozenSet[Operator]:
        return OPERATORS_BY_TYPE[self.type]

    @property
    def segments(self) -> Tuple[str, ...]:
        return tuple(self.path.split("."))

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "campo": self.path,
            "etiqueta": self.label,
            "tipo": self.type.value,
            "agregable": self.aggregatable,
            "operadores": sorted(op.value for op in self.allowed_operators),
        }
        if self.enum_values:
            data["valores"] = list(self.enum_values)
        if self.format:
            data["formato"] = self.format
        return data


@dataclass(frozen=True)
class CollectionDefinition:
    """Colección de un módulo con sus campos"""
    module: ModuloInforme
    name: str
    label: str
    fields: Tuple[FieldDefinition, ...]


class FieldNotFound(LookupError):
    """Campo, colección o módulo inexistente en el catálogo"""


class FieldCatalog:
    """Índice inmutable de colecciones y campos por módulo"""

    def __init__(self, collections: Iterable[CollectionDefinition]):
        by_module: Dict[ModuloInforme, List[CollectionDefinition]] = {module: [] for module in ModuloInforme}
        fields: Dict[Tuple[ModuloInforme, str, str], FieldDefinition] = {}

        for collection in collections:
            by_module[collection.module].append(collection)
            for field in collection.fields:
                key = (field.module, field.collection, field.path)
                if key in fields:
                    raise ValueError(f"Campo duplicado en el catálogo: {key}")
                fields[key] = field

        self._collections = MappingProxyType({
            module: tuple(items) for module, items in by_module.items()
        })
        self._fields = MappingProxyType(fields)

    def modules(self) -> Tuple[ModuloInforme, ...]:
        return tuple(ModuloInforme)

    def collections_for(self, module: ModuloInforme) -> Tuple[CollectionDefinition, ...]:
        return self._collections.get(ModuloInforme(module), ())

    def has_collection(self, module: ModuloInforme, collection: str) -> bool:
        return any(c.name == collection for c in self.collections_for(module))

    def fields_for(self, module: ModuloInforme, collection: Optional[str] = None) -> List[FieldDefinition]:
        result = []
        for item in self.collections_for(module):
            if collection is None or item.name == collection:
                result.extend(item.fields)
        return result

    def resolve(self, module: ModuloInforme, collection: str, path: str) -> FieldDefinition:
        try:
            return self._fields[(ModuloInforme(module), collection, path)]
        except (KeyError, ValueError):
            raise FieldNotFound(f"{module}/{collection}/{path}")

    def as_dict(self, module: Optional[ModuloInforme] = None) -> Dict[str, Any]:
        """Catálogo serializable para la interfaz de usuario"""
        modules = [ModuloInforme(module)] if module else list(ModuloInforme)
        return {
            m.value: [
                {
                    "coleccion": c.name,
                    "etiqueta": c.label,
                    "campos": [f.to_dict() for f in c.fields],
                }
                for c in self.collections_for(m)
            ]
            for m in modules
        }


# ============================================
# DEFINICIÓN DEL CATÁLOGO
# ============================================

S, N, D, B, R, E = (
    FieldType.STRING, FieldType.NUMBER, FieldType.DATE,
    FieldType.BOOLEAN, FieldType.REFERENCE, FieldType.ENUM,
)

ESTADOS_FACTURA = ("borrador", "emitida", "cobrada", "parcial", "vencida", "anulada")
ESTADOS_FACTURA_COMPRA = ("pendiente", "pagada", "parcial", "vencida", "anulada")
TIPOS_MOVIMIENTO_STOCK = ("entrada", "salida", "ajuste", "traspaso")


def _coleccion(module: ModuloInforme, name: str, label: str, *campos) -> CollectionDefinition:
    """
    Construye una colección a partir de tuplas
    (campo, etiqueta, tipo[, opciones]) donde opciones admite
    'agregable', 'valores' y 'formato'.
    """
    fields = []
    for campo in campos:
        path, field_label, field_type = campo[:3]
        options = campo[3] if len(campo) > 3 else {}
        fields.append(FieldDefinition(
            module=module,
            collection=name,
            path=path,
            label=field_label,
            type=field_type,
            aggregatable=options.get("agregable", False),
            enum_values=tuple(options.get("valores", ())),
            format=options.get("formato"),
        ))
    return CollectionDefinition(module=module, name=name, label=label, fields=tuple(fields))


MONEDA = {"agregable": True, "formato": "currency"}
CANTIDAD = {"agregable": True}

CATALOG = FieldCatalog([
    # VENTAS
    _coleccion(
        ModuloInforme.VENTAS, "facturas", "Facturas",
        ("numero", "Número", S),
        ("fecha", "Fecha", D),
        ("clienteId", "Cliente (ID)", R),
        ("clienteNombre", "Cliente", S),
        ("cliente.nombre", "Cliente", S),
        ("cliente.nif", "NIF Cliente", S),
        ("estado", "Estado", E, {"valores": ESTADOS_FACTURA}),
        ("formaPago", "Forma de Pago", S),
        ("baseImponible", "Base Imponible", N, MONEDA),
        ("totalIva", "IVA", N, MONEDA),
        ("total", "Total", N, MONEDA),
        ("pendiente", "Pendiente", N, MONEDA),
        ("diasVencida", "Días Vencida", N),
        ("totales.baseImponible", "Base Imponible", N, MONEDA),
        ("totales.totalIva", "Total IVA", N, MONEDA),
        ("totales.totalFactura", "Total Factura", N, MONEDA),
    ),
    _coleccion(
        ModuloInforme.VENTAS, "lineas_factura", "Líneas de Factura",
        ("fecha", "Fecha", D),
        ("productoId", "Producto (ID)", R),
        ("productoNombre", "Producto", S),
        ("sku", "SKU", S),
        ("familia", "Familia", S),
        ("cantidad", "Cantidad", N, CANTIDAD),
        ("precioUnitario", "Precio Unitario", N, {"formato": "currency"}),
        ("descuento", "Descuento", N, {"formato": "percentage"}),
        ("subtotal", "Subtotal", N, MONEDA),
    ),
    _coleccion(
        ModuloInforme.VENTAS, "pedidos", "Pedidos",
        ("numero", "Número", S),
        ("fecha", "Fecha", D),
        ("clienteNombre", "Cliente", S),
        ("total", "Total", N, MONEDA),
        ("estado", "Estado", S),
    ),
    _coleccion(
        ModuloInforme.VENTAS, "presupuestos", "Presupuestos",
        ("numero", "Número", S),
        ("fecha", "Fecha", D),
        ("clienteNombre", "Cliente", S),
        ("total", "Total", N, MONEDA),
        ("estado", "Estado", S),
        ("validoHasta", "Válido Hasta", D),
    ),
    _coleccion(
        ModuloInforme.VENTAS, "albaranes", "Albaranes",
        ("numero", "Número", S),
        ("fecha", "Fecha", D),
        ("clienteNombre", "Cliente", S),
        ("total", "Total", N, MONEDA),
        ("facturado", "Facturado", B),
    ),
    # COMPRAS
    _coleccion(
        ModuloInforme.COMPRAS, "facturas_compra", "Facturas de Compra",
        ("numero", "Número", S),
        ("fecha", "Fecha", D),
        ("fechaVencimiento", "Vencimiento", D),
        ("proveedorId", "Proveedor (ID)", R),
        ("proveedorNombre", "Proveedor", S),
        ("baseImponible", "Base Imponible", N, MONEDA),
        ("total", "Total", N, MONEDA),
        ("pendiente", "Pendiente", N, MONEDA),
        ("estado", "Estado", E, {"valores": ESTADOS_FACTURA_COMPRA}),
    ),
    _coleccion(
        ModuloInforme.COMPRAS, "pedidos_compra", "Pedidos de Compra",
        ("numero", "Número", S),
        ("fecha", "Fecha", D),
        ("proveedorNombre", "Proveedor", S),
        ("total", "Total", N, MONEDA),
        ("estado", "Estado", S),
    ),
    # STOCK
    _coleccion(
        ModuloInforme.STOCK, "productos", "Productos",
        ("sku", "SKU", S),
        ("nombre", "Nombre", S),
        ("familia", "Familia", S),
        ("activo", "Activo", B),
        ("stockActual", "Stock Actual", N, CANTIDAD),
        ("stockMinimo", "Stock Mínimo", N),
        ("precioVenta", "Precio Venta", N, {"formato": "currency"}),
        ("precioCoste", "Precio Coste", N, {"formato": "currency"}),
        ("valorStock", "Valor Stock", N, MONEDA),
    ),
    _coleccion(
        ModuloInforme.STOCK, "movimientos_stock", "Movimientos de Stock",
        ("fecha", "Fecha", D),
        ("productoId", "Producto (ID)", R),
        ("productoNombre", "Producto", S),
        ("tipo", "Tipo", E, {"valores": TIPOS_MOVIMIENTO_STOCK}),
        ("cantidad", "Cantidad", N, CANTIDAD),
        ("almacen", "Almacén", S),
    ),
    # TESORERIA
    _coleccion(
        ModuloInforme.TESORERIA, "movimientos_tesoreria", "Movimientos",
        ("fecha", "Fecha", D),
        ("concepto", "Concepto", S),
        ("tipo", "Tipo", E, {"valores": ("cobro", "pago", "traspaso")}),
        ("importe", "Importe", N, MONEDA),
        ("saldo", "Saldo", N, {"formato": "currency"}),
    ),
    _coleccion(
        ModuloInforme.TESORERIA, "vencimientos", "Vencimientos",
        ("fecha", "Fecha", D),
        ("tipo", "Tipo", E, {"valores": ("cobro", "pago")}),
        ("tercero", "Tercero", S),
        ("importe", "Importe", N, MONEDA),
        ("estado", "Estado", S),
    ),
    # PERSONAL
    _coleccion(
        ModuloInforme.PERSONAL, "personal", "Personal",
        ("codigo", "Código", S),
        ("nombre", "Nombre", S),
        ("departamento", "Departamento", S),
        ("puesto", "Puesto", S),
        ("fechaAlta", "Fecha Alta", D),
        ("activo", "Activo", B),
    ),
    _coleccion(
        ModuloInforme.PERSONAL, "fichajes", "Fichajes",
        ("fecha", "Fecha", D),
        ("empleadoId", "Empleado (ID)", R),
        ("empleadoNombre", "Empleado", S),
        ("horaEntrada", "Entrada", S),
        ("horaSalida", "Salida", S),
        ("horasTrabajadas", "Horas", N, CANTIDAD),
    ),
    _coleccion(
        ModuloInforme.PERSONAL, "partes_trabajo", "Partes de Trabajo",
        ("fecha", "Fecha", D),
        ("empleadoId", "Empleado (ID)", R),
        ("empleadoNombre", "Empleado", S),
        ("proyecto", "Proyecto", S),
        ("descripcion", "Descripción", S),
        ("horas", "Horas", N, CANTIDAD),
        ("coste", "Coste", N, MONEDA),
    ),
    # CLIENTES
    _coleccion(
        ModuloInforme.CLIENTES, "clientes", "Clientes",
        ("codigo", "Código", S),
        ("nombre", "Nombre", S),
        ("nif", "NIF", S),
        ("email", "Email", S),
        ("telefono", "Teléfono", S),
        ("ciudad", "Ciudad", S),
        ("fechaAlta", "Fecha Alta", D),
        ("totalFacturado", "Total Facturado", N, MONEDA),
        ("saldoPendiente", "Saldo Pendiente", N, MONEDA),
    ),
    # PROVEEDORES
    _coleccion(
        ModuloInforme.PROVEEDORES, "proveedores", "Proveedores",
        ("codigo", "Código", S),
        ("nombre", "Nombre", S),
        ("nif", "NIF", S),
        ("email", "Email", S),
        ("telefono", "Teléfono", S),
        ("totalComprado", "Total Comprado", N, MONEDA),
        ("saldoPendiente", "Saldo Pendiente", N, MONEDA),
    ),
    # PROYECTOS
    _coleccion(
        ModuloInforme.PROYECTOS, "proyectos", "Proyectos",
        ("codigo", "Código", S),
        ("nombre", "Nombre", S),
        ("clienteId", "Cliente (ID)", R),
        ("cliente", "Cliente", S),
        ("fechaInicio", "Fecha Inicio", D),
        ("fechaFin", "Fecha Fin", D),
        ("estado", "Estado", S),
        ("presupuesto", "Presupuesto", N, MONEDA),
        ("horasEstimadas", "Horas Estimadas", N, CANTIDAD),
        ("horasReales", "Horas Reales", N, CANTIDAD),
    ),
    # GENERAL
    _coleccion(
        ModuloInforme.GENERAL, "logs", "Logs del Sistema",
        ("fecha", "Fecha", D),
        ("usuario", "Usuario", S),
        ("accion", "Acción", S),
        ("modulo", "Módulo", S),
        ("detalles", "Detalles", S),
    ),
])


def fields_for(module: ModuloInforme) -> List[FieldDefinition]:
    """Campos disponibles para un módulo"""
    return CATALOG.fields_for(module)


def resolve(module: ModuloInforme, collection: str, path: str) -> FieldDefinition:
    """Resuelve una referencia de campo; lanza FieldNotFound si no existe"""
    return CATALOG.resolve(module, collection, path)
