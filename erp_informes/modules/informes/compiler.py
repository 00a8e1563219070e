"""
Compilador de informes.

Transforma una ReportDefinition validada en un plan de etapas independiente
del almacenamiento: Match -> [Group] -> Sort -> Project -> Paginate.
Cada etapa referencia la forma del registro en ese punto: rutas de campo
antes de agrupar, claves de columna después.

Se generan tres planes a partir de la misma definición:
- rows: la página solicitada (ordenada, proyectada y paginada)
- totals: agregados sobre todo el conjunto filtrado, sin paginar
- count: registros filtrados (o grupos) para la paginación
"""

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from erp_informes.modules.informes.catalog import Aggregation, FieldDefinition, Operator
from erp_informes.modules.informes.definition import (
    FilterClause, Granularity, GroupKey, ReportDefinition, SortDirection,
)


# ============================================
# PREDICADOS
# ============================================

@dataclass(frozen=True)
class Comparison:
    """equals, notEquals, gt, gte, lt, lte"""
    field: FieldDefinition
    operator: Operator
    value: Any


@dataclass(frozen=True)
class Between:
    """Rango inclusivo [low, high]"""
    field: FieldDefinition
    low: Any
    high: Any


@dataclass(frozen=True)
class Membership:
    field: FieldDefinition
    values: Tuple[Any, ...]
    negate: bool = False


@dataclass(frozen=True)
class TextMatch:
    field: FieldDefinition
    mode: Operator
    value: str
    case_sensitive: bool = False


@dataclass(frozen=True)
class Presence:
    field: FieldDefinition
    present: bool


@dataclass(frozen=True)
class And:
    predicates: Tuple["Predicate", ...]


Predicate = Union[Comparison, Between, Membership, TextMatch, Presence, And]


# ============================================
# ETAPAS
# ============================================

@dataclass(frozen=True)
class Match:
    predicate: Predicate


@dataclass(frozen=True)
class Accumulator:
    key: str
    field: FieldDefinition
    function: Aggregation


@dataclass(frozen=True)
class Group:
    """Sin claves produce un único registro con los acumuladores"""
    keys: Tuple[GroupKey, ...]
    accumulators: Tuple[Accumulator, ...]


@dataclass(frozen=True)
class SortKey:
    key: str
    descending: bool = False
    field: Optional[FieldDefinition] = None


@dataclass(frozen=True)
class Sort:
    """
    Orden estable. Sobre documentos sin agrupar la fuente de datos añade su
    identificador como último criterio de desempate.
    """
    keys: Tuple[SortKey, ...]


@dataclass(frozen=True)
class ProjectColumn:
    key: str
    source: str
    field: FieldDefinition
    aggregation: Aggregation = Aggregation.NONE
    granularity: Optional[Granularity] = None


@dataclass(frozen=True)
class Project:
    columns: Tuple[ProjectColumn, ...]


@dataclass(frozen=True)
class Paginate:
    skip: int
    limit: int


Stage = Union[Match, Group, Sort, Project, Paginate]


@dataclass(frozen=True)
class CompiledPlan:
    collection: str
    rows: Tuple[Stage, ...]
    totals: Tuple[Stage, ...]
    count: Tuple[Stage, ...]
    row_cap: Optional[int] = None

    @property
    def has_totals(self) -> bool:
        return bool(self.totals)


# ============================================
# COMPILACIÓN
# ============================================

def compile_predicate(clause: FilterClause) -> Predicate:
    op = clause.operator
    if op == Operator.BETWEEN:
        low, high = clause.values
        return Between(field=clause.field, low=low, high=high)
    if op in (Operator.IN, Operator.NOT_IN):
        return Membership(field=clause.field, values=tuple(clause.values), negate=op == Operator.NOT_IN)
    if op in (Operator.CONTAINS, Operator.STARTS_WITH, Operator.ENDS_WITH):
        return TextMatch(
            field=clause.field,
            mode=op,
            value=clause.values[0],
            case_sensitive=clause.case_sensitive,
        )
    if op == Operator.IS_NULL:
        return Presence(field=clause.field, present=False)
    if op == Operator.IS_NOT_NULL:
        return Presence(field=clause.field, present=True)
    return Comparison(field=clause.field, operator=op, value=clause.values[0])


def _compile_match(definition: ReportDefinition) -> Optional[Match]:
    for clause in definition.filters:
        if clause.parameter and not clause.values and clause.operator not in (Operator.IS_NULL, Operator.IS_NOT_NULL):
            raise ValueError(f"Filtro sin valor para el parámetro '{clause.parameter}'")
    if not definition.filters:
        return None
    return Match(predicate=And(tuple(compile_predicate(c) for c in definition.filters)))


def _accumulators(definition: ReportDefinition) -> Tuple[Accumulator, ...]:
    return tuple(
        Accumulator(key=f.key, field=f.field, function=f.aggregation)
        for f in definition.aggregated_fields
    )


def _compile_sort(definition: ReportDefinition) -> Sort:
    if definition.is_grouped:
        keys = [
            SortKey(key=s.key, descending=s.direction == SortDirection.DESC)
            for s in definition.sort_by
        ]
        used = {s.key for s in definition.sort_by}
        # Las claves de grupo son únicas: el orden de página queda fijado
        keys.extend(SortKey(key=g.key) for g in definition.group_by if g.key not in used)
        return Sort(keys=tuple(keys))

    keys = []
    for spec in definition.sort_by:
        column = definition.column(spec.key)
        keys.append(SortKey(
            key=column.field.path,
            descending=spec.direction == SortDirection.DESC,
            field=column.field,
        ))
    return Sort(keys=tuple(keys))


def _compile_project(definition: ReportDefinition) -> Project:
    granularities = {g.key: g.granularity for g in definition.group_by}
    columns = []
    for selected in definition.fields:
        source = selected.key if definition.is_grouped else selected.field.path
        columns.append(ProjectColumn(
            key=selected.key,
            source=source,
            field=selected.field,
            aggregation=selected.aggregation,
            granularity=granularities.get(selected.key),
        ))
    return Project(columns=tuple(columns))


def compile_definition(definition: ReportDefinition, page: int = 1, limit: int = 100) -> CompiledPlan:
    """
    Compila una definición validada (y con parámetros ya ligados).

    Args:
        definition: Definición normalizada
        page: Página solicitada (desde 1)
        limit: Registros por página

    Returns:
        CompiledPlan con los planes rows, totals y count
    """
    if page < 1:
        raise ValueError("page debe ser >= 1")
    if limit < 1:
        raise ValueError("limit debe ser >= 1")

    match = _compile_match(definition)
    base: Tuple[Stage, ...] = (match,) if match else ()

    shaped = base
    if definition.is_grouped:
        shaped = base + (Group(keys=tuple(definition.group_by), accumulators=_accumulators(definition)),)

    skip = (page - 1) * limit
    take = limit
    cap = definition.config.limit
    if cap is not None:
        take = max(0, min(limit, cap - skip))

    rows = shaped + (
        _compile_sort(definition),
        _compile_project(definition),
        Paginate(skip=skip, limit=take),
    )

    totals: Tuple[Stage, ...] = ()
    accumulators = _accumulators(definition)
    if accumulators and definition.config.show_totals:
        totals = base + (Group(keys=(), accumulators=accumulators),)

    return CompiledPlan(
        collection=definition.collection,
        rows=rows,
        totals=totals,
        count=shaped,
        row_cap=cap,
    )
