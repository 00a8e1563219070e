"""
Definición normalizada de un informe.

Estructuras inmutables producidas exclusivamente por el validador. Cada
referencia a un campo ya viene resuelta contra el catálogo
(FieldDefinition), de modo que compilador y motor nunca vuelven a buscar
campos por nombre.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple
from uuid import UUID

from erp_informes.modules.informes.catalog import (
    Aggregation, FieldDefinition, ModuloInforme, Operator,
)


class ReportType(str, Enum):
    """Tipo de visualización del informe"""
    TABLA = "tabla"
    GRAFICO = "grafico"
    MIXTO = "mixto"


class Granularity(str, Enum):
    """Granularidad de agrupación para campos fecha"""
    DAY = "day"
    MONTH = "month"
    YEAR = "year"


GRANULARITY_ALIASES = {
    "dia": Granularity.DAY,
    "día": Granularity.DAY,
    "mes": Granularity.MONTH,
    "anio": Granularity.YEAR,
    "año": Granularity.YEAR,
}


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ChartType(str, Enum):
    """Tipos de gráfico soportados por la interfaz"""
    LINEA = "linea"
    BARRA = "barra"
    BARRA_HORIZONTAL = "barra_horizontal"
    AREA = "area"
    CIRCULAR = "circular"
    DONA = "dona"
    COMBINADO = "combinado"


class ParameterType(str, Enum):
    """Tipos de parámetro solicitados al ejecutar"""
    TEXTO = "texto"
    NUMERO = "numero"
    FECHA = "fecha"
    SELECT = "select"
    MULTISELECT = "multiselect"


EXPORT_FORMATS = ("csv", "excel", "pdf")


@dataclass(frozen=True)
class SelectedField:
    """Columna de salida del informe"""
    field: FieldDefinition
    aggregation: Aggregation = Aggregation.NONE
    label: Optional[str] = None
    alias: Optional[str] = None

    @property
    def key(self) -> str:
        return self.alias or self.field.path

    @property
    def is_aggregated(self) -> bool:
        return self.aggregation != Aggregation.NONE

    @property
    def display_label(self) -> str:
        return self.label or self.field.label


@dataclass(frozen=True)
class FilterClause:
    """
    Condición de filtro sobre un campo resuelto.

    values contiene 0 valores para isNull/isNotNull, 2 para between
    (ya ordenados) y N >= 1 para in/notIn.
    """
    field: FieldDefinition
    operator: Operator
    values: Tuple[Any, ...] = ()
    case_sensitive: bool = False
    parameter: Optional[str] = None
    label: Optional[str] = None
    # Límite superior guardado de un between cuyo valor llega como parámetro
    upper_bound: Any = None


@dataclass(frozen=True)
class GroupKey:
    column: SelectedField
    granularity: Optional[Granularity] = None

    @property
    def key(self) -> str:
        return self.column.key


@dataclass(frozen=True)
class SortSpec:
    key: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class ChartConfig:
    type: ChartType
    x_axis: Optional[str] = None
    y_axis: Tuple[str, ...] = ()
    show_legend: bool = True
    show_labels: bool = False


@dataclass(frozen=True)
class ReportParameter:
    name: str
    label: str
    type: ParameterType = ParameterType.TEXTO
    default: Any = None
    options: Tuple[Any, ...] = ()
    required: bool = False


@dataclass(frozen=True)
class ReportConfig:
    limit: Optional[int] = None
    paginate: bool = True
    show_totals: bool = True
    exportable: bool = True
    formats: Tuple[str, ...] = ("csv",)


@dataclass(frozen=True)
class ReportDefinition:
    """Informe validado y listo para compilar"""
    name: str
    module: ModuloInforme
    collection: str
    fields: Tuple[SelectedField, ...]
    report_type: ReportType = ReportType.TABLA
    description: Optional[str] = None
    filters: Tuple[FilterClause, ...] = ()
    group_by: Tuple[GroupKey, ...] = ()
    sort_by: Tuple[SortSpec, ...] = ()
    chart: Optional[ChartConfig] = None
    parameters: Tuple[ReportParameter, ...] = ()
    config: ReportConfig = field(default_factory=ReportConfig)
    id: Optional[UUID] = None
    tenant_id: Optional[UUID] = None
    owner_id: Optional[UUID] = None
    is_template: bool = False
    is_favorite: bool = False
    is_shared: bool = False
    order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def aggregated_fields(self) -> Tuple[SelectedField, ...]:
        return tuple(f for f in self.fields if f.is_aggregated)

    @property
    def is_grouped(self) -> bool:
        return bool(self.group_by) or bool(self.aggregated_fields)

    def column(self, key: str) -> Optional[SelectedField]:
        for selected in self.fields:
            if selected.key == key:
                return selected
        return None
