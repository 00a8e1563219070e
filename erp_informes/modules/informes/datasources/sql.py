"""
Fuente de datos SQL.

Los documentos de negocio de cada empresa se guardan en la tabla
report_documents (una fila por documento, contenido en una columna JSON).
Los planes compilados se traducen a sentencias select() de SQLAlchemy y se
ejecutan sobre una AsyncSession.

Las fechas se guardan como texto ISO-8601 de ancho fijo, de modo que el
orden y las comparaciones de texto coinciden con el orden cronológico.

Los filtros de texto sin distinguir mayúsculas usan lower(); sobre SQLite
el motor debe pasar por register_sqlite_functions para que lower() trate
Unicode igual que PostgreSQL y la fuente en memoria.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from erp_informes.modules.informes.catalog import (
    CATALOG, Aggregation, FieldDefinition, FieldType, ModuloInforme, Operator,
)
from erp_informes.modules.informes.compiler import (
    And, Between, Comparison, Group, Match, Membership, Paginate, Predicate,
    Presence, Project, ProjectColumn, Sort, Stage, TextMatch,
)
from erp_informes.modules.informes.datasources.base import TransientDataSourceError
from erp_informes.modules.informes.definition import Granularity
from erp_informes.modules.informes.models import ReportDocument
from erp_informes.modules.informes.values import coerce_stored, to_datetime

logger = logging.getLogger(__name__)

GRANULARITY_LENGTH = {
    Granularity.DAY: 10,
    Granularity.MONTH: 7,
    Granularity.YEAR: 4,
}


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _date_paths(collection: str) -> List[str]:
    paths = []
    for module in ModuloInforme:
        for field in CATALOG.fields_for(module, collection):
            if field.type == FieldType.DATE:
                paths.append(field.path)
    return paths


def normalize_document(collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
    """Copia del documento con las fechas del catálogo en ISO de ancho fijo"""
    normalized = dict(document)
    for path in _date_paths(collection):
        segments = path.split(".")
        container = normalized
        for segment in segments[:-1]:
            child = container.get(segment)
            if not isinstance(child, dict):
                container = None
                break
            child = dict(child)
            container[segment] = child
            container = child
        if container is None or container.get(segments[-1]) is None:
            continue
        try:
            container[segments[-1]] = _iso(to_datetime(container[segments[-1]]))
        except ValueError:
            logger.warning(f"Fecha no válida en {collection}.{path}: {container[segments[-1]]!r}")
    return normalized


def _sql_value(field: FieldDefinition, value: Any) -> Any:
    if field.type == FieldType.DATE and isinstance(value, datetime):
        return _iso(value)
    return value


class SqlDataSource:
    """Fuente de datos de una empresa sobre report_documents"""

    def __init__(self, session: AsyncSession, tenant_id: UUID):
        self.session = session
        self.tenant_id = tenant_id

    # ============================================
    # EXPRESIONES
    # ============================================

    def _element(self, field: FieldDefinition):
        segments = field.segments
        return ReportDocument.data[segments if len(segments) > 1 else segments[0]]

    def _expr(self, field: FieldDefinition):
        element = self._element(field)
        if field.type == FieldType.NUMBER:
            return element.as_float()
        if field.type == FieldType.BOOLEAN:
            return element.as_boolean()
        return element.as_string()

    def _predicate(self, predicate: Predicate):
        if isinstance(predicate, And):
            return and_(*(self._predicate(p) for p in predicate.predicates))

        expr = self._expr(predicate.field)

        if isinstance(predicate, Presence):
            return expr.is_not(None) if predicate.present else expr.is_(None)

        if isinstance(predicate, Comparison):
            value = _sql_value(predicate.field, predicate.value)
            op = predicate.operator
            if op == Operator.EQUALS:
                return expr == value
            if op == Operator.NOT_EQUALS:
                return or_(expr.is_(None), expr != value)
            if op == Operator.GT:
                return expr > value
            if op == Operator.GTE:
                return expr >= value
            if op == Operator.LT:
                return expr < value
            if op == Operator.LTE:
                return expr <= value
            raise ValueError(f"Operador de comparación no soportado: {op}")

        if isinstance(predicate, Between):
            return expr.between(
                _sql_value(predicate.field, predicate.low),
                _sql_value(predicate.field, predicate.high),
            )

        if isinstance(predicate, Membership):
            values = [_sql_value(predicate.field, v) for v in predicate.values]
            if predicate.negate:
                return or_(expr.is_(None), expr.not_in(values))
            return expr.in_(values)

        if isinstance(predicate, TextMatch):
            needle = predicate.value
            if not predicate.case_sensitive:
                expr = func.lower(expr)
                needle = needle.lower()
            if predicate.mode == Operator.CONTAINS:
                return expr.contains(needle, autoescape=True)
            if predicate.mode == Operator.STARTS_WITH:
                return expr.startswith(needle, autoescape=True)
            return expr.endswith(needle, autoescape=True)

        raise ValueError(f"Predicado no soportado: {predicate!r}")

    def _group_expr(self, group_key):
        expr = self._expr(group_key.column.field)
        if group_key.granularity is not None:
            return func.substr(expr, 1, GRANULARITY_LENGTH[group_key.granularity])
        return expr

    @staticmethod
    def _accumulator(function: Aggregation, value):
        if function == Aggregation.COUNT:
            return func.count()
        if function == Aggregation.SUM:
            return func.coalesce(func.sum(value), 0)
        if function == Aggregation.AVG:
            return func.avg(value)
        if function == Aggregation.MIN:
            return func.min(value)
        if function == Aggregation.MAX:
            return func.max(value)
        raise ValueError(f"Agregación no soportada: {function}")

    @staticmethod
    def _ordered(column, descending: bool):
        return column.desc().nulls_last() if descending else column.asc().nulls_first()

    # ============================================
    # TRADUCCIÓN DEL PLAN
    # ============================================

    def _build(self, collection: str, stages: Sequence[Stage]):
        match = group = sort = project = paginate = None
        for stage in stages:
            if isinstance(stage, Match):
                match = stage
            elif isinstance(stage, Group):
                group = stage
            elif isinstance(stage, Sort):
                sort = stage
            elif isinstance(stage, Project):
                project = stage
            elif isinstance(stage, Paginate):
                paginate = stage
            else:
                raise ValueError(f"Etapa no soportada: {stage!r}")

        conditions = [
            ReportDocument.tenant_id == self.tenant_id,
            ReportDocument.collection == collection,
        ]
        if match is not None:
            conditions.append(self._predicate(match.predicate))

        if group is not None:
            stmt, shape = self._build_grouped(group, conditions, sort, project)
        else:
            stmt, shape = self._build_documents(conditions, sort, project)

        if paginate is not None:
            stmt = stmt.offset(paginate.skip).limit(paginate.limit)
        return stmt, shape

    def _build_grouped(self, group: Group, conditions, sort: Optional[Sort], project: Optional[Project]):
        # Primero se calculan claves y valores por documento y después se agrupa
        # sobre columnas simples, para que GROUP BY no repita expresiones JSON.
        base = select(
            *(self._group_expr(g).label(f"k{i}") for i, g in enumerate(group.keys)),
            *(self._expr(a.field).label(f"v{i}") for i, a in enumerate(group.accumulators)),
        ).where(*conditions).subquery("base")

        grouped = select(
            *(base.c[f"k{i}"].label(f"g{i}") for i in range(len(group.keys))),
            *(
                self._accumulator(a.function, base.c[f"v{i}"]).label(f"a{i}")
                for i, a in enumerate(group.accumulators)
            ),
            func.count().label("n"),
        )
        if group.keys:
            grouped = grouped.group_by(*(base.c[f"k{i}"] for i in range(len(group.keys))))
        grouped = grouped.subquery("grupos")

        by_key = {g.key: grouped.c[f"g{i}"] for i, g in enumerate(group.keys)}
        by_key.update({a.key: grouped.c[f"a{i}"] for i, a in enumerate(group.accumulators)})

        if project is not None:
            stmt = select(*(by_key[c.source].label(f"c{i}") for i, c in enumerate(project.columns)))
            shape = ("project", project.columns)
        else:
            stmt = select(*(column.label(f"r{i}") for i, column in enumerate(by_key.values())))
            shape = ("group", group)

        # Sin claves, un conjunto vacío no produce ningún grupo
        if not group.keys:
            stmt = stmt.where(grouped.c.n > 0)

        if sort is not None:
            stmt = stmt.order_by(*(self._ordered(by_key[k.key], k.descending) for k in sort.keys))
        return stmt, shape

    def _build_documents(self, conditions, sort: Optional[Sort], project: Optional[Project]):
        if project is not None:
            stmt = select(*(self._expr(c.field).label(f"c{i}") for i, c in enumerate(project.columns)))
            shape = ("project", project.columns)
        else:
            stmt = select(ReportDocument.data)
            shape = ("documents", None)
        stmt = stmt.where(*conditions)

        if sort is not None:
            order = [self._ordered(self._expr(k.field), k.descending) for k in sort.keys if k.field is not None]
            stmt = stmt.order_by(*order, ReportDocument.id)
        return stmt, shape

    # ============================================
    # RESULTADOS
    # ============================================

    @staticmethod
    def _normalize(field: FieldDefinition, aggregation: Aggregation, value: Any, granular: bool = False) -> Any:
        if aggregation == Aggregation.COUNT:
            return int(value or 0)
        if granular or value is None:
            return value
        if aggregation == Aggregation.AVG:
            return float(value)
        return coerce_stored(field, value)

    def _shape(self, shape, rows) -> List[Dict[str, Any]]:
        kind, meta = shape
        if kind == "documents":
            return [dict(row[0]) for row in rows]

        if kind == "project":
            columns: Sequence[ProjectColumn] = meta
            return [
                {
                    c.key: self._normalize(c.field, c.aggregation, row[i], c.granularity is not None)
                    for i, c in enumerate(columns)
                }
                for row in rows
            ]

        group: Group = meta
        result = []
        for row in rows:
            record = {}
            for i, g in enumerate(group.keys):
                record[g.key] = self._normalize(g.column.field, Aggregation.NONE, row[i], g.granularity is not None)
            offset = len(group.keys)
            for i, a in enumerate(group.accumulators):
                record[a.key] = self._normalize(a.field, a.function, row[offset + i])
            result.append(record)
        return result

    async def _execute(self, stmt, timeout: Optional[float]):
        try:
            if timeout is not None:
                return await asyncio.wait_for(self.session.execute(stmt), timeout)
            return await self.session.execute(stmt)
        except DBAPIError as e:
            if e.connection_invalidated:
                raise TransientDataSourceError(str(e)) from e
            raise

    async def aggregate(self, collection: str, stages: Sequence[Stage], timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        stmt, shape = self._build(collection, stages)
        result = await self._execute(stmt, timeout)
        return self._shape(shape, result.all())

    async def count(self, collection: str, stages: Sequence[Stage], timeout: Optional[float] = None) -> int:
        stmt, _ = self._build(collection, stages)
        count_stmt = select(func.count()).select_from(stmt.subquery())
        result = await self._execute(count_stmt, timeout)
        return int(result.scalar() or 0)

    # ============================================
    # CARGA DE DOCUMENTOS
    # ============================================

    async def insert(self, collection: str, documents: Iterable[Dict[str, Any]]) -> int:
        """
        Añade documentos a una colección de la empresa (sin commit).

        Returns:
            int: Número de documentos insertados
        """
        rows = [
            ReportDocument(
                tenant_id=self.tenant_id,
                collection=collection,
                data=normalize_document(collection, document),
            )
            for document in documents
        ]
        self.session.add_all(rows)
        await self.session.flush()
        logger.info(f"{len(rows)} documentos cargados en {collection} para empresa {self.tenant_id}")
        return len(rows)


class SqlDataSourceProvider:
    """Crea la fuente SQL de una empresa sobre una sesión asíncrona"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def for_tenant(self, tenant_id: UUID) -> SqlDataSource:
        return SqlDataSource(self.session, tenant_id)
