"""
Plantillas de informes predefinidas.

Se siembran por empresa, identificadas por (modulo, nombre). Pasan por el
mismo validador que cualquier otra definición.
"""

from typing import Any, Dict, List

FORMATOS = ["pdf", "excel", "csv"]


def _rango_fechas(requerido: bool) -> List[Dict[str, Any]]:
    return [
        {"nombre": "fechaDesde", "etiqueta": "Desde", "tipo": "fecha", "requerido": requerido},
        {"nombre": "fechaHasta", "etiqueta": "Hasta", "tipo": "fecha", "requerido": requerido},
    ]


def _filtros_fecha(campo: str = "fecha") -> List[Dict[str, Any]]:
    return [
        {"campo": campo, "operador": "gte", "parametro": "fechaDesde", "etiqueta": "Desde"},
        {"campo": campo, "operador": "lte", "parametro": "fechaHasta", "etiqueta": "Hasta"},
    ]


PLANTILLAS: List[Dict[str, Any]] = [
    {
        "nombre": "Ventas Mensuales",
        "descripcion": "Resumen de ventas agrupadas por mes",
        "modulo": "ventas",
        "coleccion": "facturas",
        "tipo": "mixto",
        "campos": [
            {"campo": "fecha", "etiqueta": "Mes"},
            {"campo": "total", "etiqueta": "Total", "agregacion": "sum"},
            {"campo": "baseImponible", "etiqueta": "Base", "agregacion": "sum"},
        ],
        "filtros": _filtros_fecha(),
        "parametros": _rango_fechas(requerido=False),
        "agrupaciones": [{"campo": "fecha", "granularidad": "month"}],
        "ordenamiento": [{"campo": "fecha", "direccion": "asc"}],
        "grafico": {"tipo": "linea", "ejeX": "fecha", "ejeY": ["total"], "mostrarLeyenda": True},
        "config": {"paginacion": True, "mostrarTotales": True, "exportable": True, "formatos": FORMATOS},
        "compartido": True,
        "orden": 1,
    },
    {
        "nombre": "Top Clientes",
        "descripcion": "Ranking de clientes por volumen de facturación",
        "modulo": "ventas",
        "coleccion": "facturas",
        "tipo": "tabla",
        "campos": [
            {"campo": "clienteNombre", "etiqueta": "Cliente"},
            {"campo": "total", "etiqueta": "Total Facturado", "agregacion": "sum"},
            {"campo": "total", "etiqueta": "Nº Facturas", "agregacion": "count", "alias": "numFacturas"},
        ],
        "filtros": _filtros_fecha(),
        "parametros": _rango_fechas(requerido=False),
        "agrupaciones": [{"campo": "clienteNombre"}],
        "ordenamiento": [{"campo": "total", "direccion": "desc"}],
        "config": {"paginacion": True, "mostrarTotales": True, "exportable": True, "formatos": FORMATOS, "limite": 20},
        "compartido": True,
        "orden": 2,
    },
    {
        "nombre": "Facturas Pendientes de Cobro",
        "descripcion": "Facturas emitidas con importe pendiente",
        "modulo": "ventas",
        "coleccion": "facturas",
        "tipo": "tabla",
        "campos": [
            {"campo": "numero", "etiqueta": "Número"},
            {"campo": "fecha", "etiqueta": "Fecha"},
            {"campo": "clienteNombre", "etiqueta": "Cliente"},
            {"campo": "total", "etiqueta": "Total"},
            {"campo": "pendiente", "etiqueta": "Pendiente"},
        ],
        "filtros": [
            {"campo": "pendiente", "operador": "gt", "valor": 0},
            {"campo": "estado", "operador": "notIn", "valor": ["cobrada", "anulada"]},
        ],
        "ordenamiento": [{"campo": "fecha", "direccion": "asc"}],
        "config": {"paginacion": True, "mostrarTotales": True, "exportable": True, "formatos": FORMATOS},
        "compartido": True,
        "orden": 3,
    },
    {
        "nombre": "Compras por Proveedor",
        "descripcion": "Ranking de proveedores por volumen de compras",
        "modulo": "compras",
        "coleccion": "facturas_compra",
        "tipo": "tabla",
        "campos": [
            {"campo": "proveedorNombre", "etiqueta": "Proveedor"},
            {"campo": "total", "etiqueta": "Total Comprado", "agregacion": "sum"},
            {"campo": "total", "etiqueta": "Nº Facturas", "agregacion": "count", "alias": "numFacturas"},
        ],
        "filtros": _filtros_fecha(),
        "parametros": _rango_fechas(requerido=False),
        "agrupaciones": [{"campo": "proveedorNombre"}],
        "ordenamiento": [{"campo": "total", "direccion": "desc"}],
        "config": {"paginacion": True, "mostrarTotales": True, "exportable": True, "formatos": FORMATOS, "limite": 20},
        "compartido": True,
        "orden": 4,
    },
    {
        "nombre": "Stock Valorado",
        "descripcion": "Inventario actual con valoración",
        "modulo": "stock",
        "coleccion": "productos",
        "tipo": "tabla",
        "campos": [
            {"campo": "sku", "etiqueta": "SKU"},
            {"campo": "nombre", "etiqueta": "Producto"},
            {"campo": "stockActual", "etiqueta": "Stock"},
            {"campo": "precioCoste", "etiqueta": "Coste Unit."},
            {"campo": "valorStock", "etiqueta": "Valor Total"},
        ],
        "filtros": [{"campo": "activo", "operador": "equals", "valor": True}],
        "ordenamiento": [{"campo": "valorStock", "direccion": "desc"}],
        "config": {"paginacion": True, "mostrarTotales": True, "exportable": True, "formatos": FORMATOS},
        "compartido": True,
        "orden": 5,
    },
    {
        "nombre": "Movimientos de Stock por Tipo",
        "descripcion": "Unidades movidas por tipo de movimiento",
        "modulo": "stock",
        "coleccion": "movimientos_stock",
        "tipo": "mixto",
        "campos": [
            {"campo": "tipo", "etiqueta": "Tipo"},
            {"campo": "cantidad", "etiqueta": "Unidades", "agregacion": "sum"},
            {"campo": "cantidad", "etiqueta": "Movimientos", "agregacion": "count", "alias": "movimientos"},
        ],
        "filtros": _filtros_fecha(),
        "parametros": _rango_fechas(requerido=False),
        "agrupaciones": [{"campo": "tipo"}],
        "grafico": {"tipo": "circular", "ejeX": "tipo", "ejeY": ["cantidad"]},
        "config": {"paginacion": True, "mostrarTotales": True, "exportable": True, "formatos": FORMATOS},
        "compartido": True,
        "orden": 6,
    },
    {
        "nombre": "Cobros y Pagos por Mes",
        "descripcion": "Movimientos de tesorería agrupados por mes y tipo",
        "modulo": "tesoreria",
        "coleccion": "movimientos_tesoreria",
        "tipo": "mixto",
        "campos": [
            {"campo": "fecha", "etiqueta": "Mes"},
            {"campo": "tipo", "etiqueta": "Tipo"},
            {"campo": "importe", "etiqueta": "Importe", "agregacion": "sum"},
        ],
        "filtros": _filtros_fecha(),
        "parametros": _rango_fechas(requerido=False),
        "agrupaciones": [{"campo": "fecha", "granularidad": "month"}, {"campo": "tipo"}],
        "ordenamiento": [{"campo": "fecha", "direccion": "asc"}],
        "grafico": {"tipo": "barra", "ejeX": "fecha", "ejeY": ["importe"], "mostrarLeyenda": True},
        "config": {"paginacion": True, "mostrarTotales": True, "exportable": True, "formatos": FORMATOS},
        "compartido": True,
        "orden": 7,
    },
    {
        "nombre": "Horas por Empleado",
        "descripcion": "Resumen de horas trabajadas por empleado",
        "modulo": "personal",
        "coleccion": "partes_trabajo",
        "tipo": "mixto",
        "campos": [
            {"campo": "empleadoNombre", "etiqueta": "Empleado"},
            {"campo": "horas", "etiqueta": "Horas", "agregacion": "sum"},
            {"campo": "coste", "etiqueta": "Coste", "agregacion": "sum"},
        ],
        "filtros": _filtros_fecha(),
        "parametros": _rango_fechas(requerido=True),
        "agrupaciones": [{"campo": "empleadoNombre"}],
        "ordenamiento": [{"campo": "horas", "direccion": "desc"}],
        "grafico": {"tipo": "barra_horizontal", "ejeX": "empleadoNombre", "ejeY": ["horas"], "mostrarLeyenda": False},
        "config": {"paginacion": True, "mostrarTotales": True, "exportable": True, "formatos": FORMATOS},
        "compartido": True,
        "orden": 8,
    },
]
