"""
Fuente de datos en memoria.

Evalúa los planes compilados sobre listas de documentos por colección. Se
usa en pruebas y como datos de ejemplo en desarrollo; sirve además de
referencia de la semántica que debe reproducir cualquier otra fuente.
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from erp_informes.modules.informes.catalog import Aggregation, Operator
from erp_informes.modules.informes.compiler import (
    And, Between, Comparison, Group, Match, Membership, Paginate, Predicate,
    Presence, Project, Sort, Stage, TextMatch,
)
from erp_informes.modules.informes.definition import Granularity
from erp_informes.modules.informes.values import coerce_stored

logger = logging.getLogger(__name__)

_MISSING = object()

GRANULARITY_FORMATS = {
    Granularity.DAY: "%Y-%m-%d",
    Granularity.MONTH: "%Y-%m",
    Granularity.YEAR: "%Y",
}


def get_path(document: Dict[str, Any], path: str) -> Any:
    """Valor en una ruta con puntos; _MISSING si algún tramo no existe"""
    current: Any = document
    for segment in path.split("."):
        if not isinstance(current, dict) or segment not in current:
            return _MISSING
        current = current[segment]
    return current


def _stored(document, field) -> Any:
    raw = get_path(document, field.path)
    return None if raw is _MISSING else coerce_stored(field, raw)


def evaluate(predicate: Predicate, document: Dict[str, Any]) -> bool:
    if isinstance(predicate, And):
        return all(evaluate(p, document) for p in predicate.predicates)

    if isinstance(predicate, Presence):
        raw = get_path(document, predicate.field.path)
        present = raw is not _MISSING and raw is not None
        return present if predicate.present else not present

    value = _stored(document, predicate.field)

    if isinstance(predicate, Comparison):
        op = predicate.operator
        if op == Operator.NOT_EQUALS:
            return value is None or value != predicate.value
        if value is None:
            return False
        if op == Operator.EQUALS:
            return value == predicate.value
        if op == Operator.GT:
            return value > predicate.value
        if op == Operator.GTE:
            return value >= predicate.value
        if op == Operator.LT:
            return value < predicate.value
        if op == Operator.LTE:
            return value <= predicate.value
        raise ValueError(f"Operador de comparación no soportado: {op}")

    if isinstance(predicate, Between):
        return value is not None and predicate.low <= value <= predicate.high

    if isinstance(predicate, Membership):
        if predicate.negate:
            return value is None or value not in predicate.values
        return value is not None and value in predicate.values

    if isinstance(predicate, TextMatch):
        if value is None:
            return False
        text, needle = str(value), predicate.value
        if not predicate.case_sensitive:
            text, needle = text.lower(), needle.lower()
        if predicate.mode == Operator.CONTAINS:
            return needle in text
        if predicate.mode == Operator.STARTS_WITH:
            return text.startswith(needle)
        return text.endswith(needle)

    raise ValueError(f"Predicado no soportado: {predicate!r}")


def _group_value(document, group_key) -> Any:
    value = _stored(document, group_key.column.field)
    if value is not None and group_key.granularity is not None:
        return value.strftime(GRANULARITY_FORMATS[group_key.granularity])
    return value


def accumulate(function: Aggregation, values: List[Any], row_count: int) -> Any:
    present = [v for v in values if v is not None]
    if function == Aggregation.COUNT:
        return row_count
    if function == Aggregation.SUM:
        return sum(present) if present else 0
    if not present:
        return None
    if function == Aggregation.AVG:
        return sum(present) / len(present)
    if function == Aggregation.MIN:
        return min(present)
    if function == Aggregation.MAX:
        return max(present)
    raise ValueError(f"Agregación no soportada: {function}")


def _apply_group(stage: Group, documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    buckets: Dict[Tuple[Any, ...], List[Dict[str, Any]]] = {}
    for document in documents:
        key = tuple(_group_value(document, g) for g in stage.keys)
        buckets.setdefault(key, []).append(document)

    records = []
    for key, members in buckets.items():
        record = {g.key: value for g, value in zip(stage.keys, key)}
        for acc in stage.accumulators:
            values = [_stored(member, acc.field) for member in members]
            record[acc.key] = accumulate(acc.function, values, len(members))
        records.append(record)
    return records


def _sort_value(record, sort_key) -> Tuple:
    if sort_key.field is not None:
        value = _stored(record, sort_key.field)
    else:
        value = record.get(sort_key.key)
    # Los nulos van primero en orden ascendente
    return (0,) if value is None else (1, value)


def _apply_sort(stage: Sort, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ordered = list(records)
    for sort_key in reversed(stage.keys):
        ordered.sort(key=lambda r, k=sort_key: _sort_value(r, k), reverse=sort_key.descending)
    return ordered


def _apply_project(stage: Project, records: List[Dict[str, Any]], grouped: bool) -> List[Dict[str, Any]]:
    projected = []
    for record in records:
        if grouped:
            projected.append({c.key: record.get(c.source) for c in stage.columns})
        else:
            projected.append({c.key: _stored(record, c.field) for c in stage.columns})
    return projected


class InMemoryDataSource:
    """Fuente de datos de una empresa respaldada por listas de documentos"""

    def __init__(self, collections: Optional[Dict[str, Iterable[Dict[str, Any]]]] = None):
        self._collections: Dict[str, List[Dict[str, Any]]] = {}
        for name, documents in (collections or {}).items():
            self.add(name, documents)

    def add(self, collection: str, documents: Iterable[Dict[str, Any]]) -> None:
        self._collections.setdefault(collection, []).extend(copy.deepcopy(list(documents)))

    def _run(self, collection: str, stages: Sequence[Stage]) -> List[Dict[str, Any]]:
        # Orden de inserción como desempate final de Sort
        records = list(self._collections.get(collection, []))
        grouped = False
        for stage in stages:
            if isinstance(stage, Match):
                records = [r for r in records if evaluate(stage.predicate, r)]
            elif isinstance(stage, Group):
                records = _apply_group(stage, records)
                grouped = True
            elif isinstance(stage, Sort):
                records = _apply_sort(stage, records)
            elif isinstance(stage, Project):
                records = _apply_project(stage, records, grouped)
            elif isinstance(stage, Paginate):
                records = records[stage.skip:stage.skip + stage.limit]
            else:
                raise ValueError(f"Etapa no soportada: {stage!r}")
        return records

    async def aggregate(self, collection: str, stages: Sequence[Stage], timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        return self._run(collection, stages)

    async def count(self, collection: str, stages: Sequence[Stage], timeout: Optional[float] = None) -> int:
        return len(self._run(collection, stages))


class InMemoryDataSourceProvider:
    """Una fuente en memoria por empresa"""

    def __init__(self):
        self._sources: Dict[Any, InMemoryDataSource] = {}

    def for_tenant(self, tenant_id) -> InMemoryDataSource:
        return self._sources.setdefault(tenant_id, InMemoryDataSource())
