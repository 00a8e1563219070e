"""
Motor de ejecución de informes.

Ejecuta los tres planes compilados (filas de la página, totales y conteo)
contra la fuente de datos de la empresa y compone el ExecutionResult.

- Los totales se calculan siempre sobre todo el conjunto filtrado, por lo
  que no dependen de la página solicitada.
- Los errores transitorios de la fuente se reintentan con espera
  exponencial; el resto se convierten en ExecutionError.
- El tiempo máximo cubre la ejecución completa; al agotarse se cancela la
  llamada en curso y se lanza ExecutionTimeoutError sin reintentar.
"""

import asyncio
import logging
import math
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from sqlalchemy.exc import DBAPIError

from erp_informes.common.retry import RetryExhaustedError, run_with_retry
from erp_informes.core.config import settings
from erp_informes.modules.informes.catalog import Aggregation, FieldType
from erp_informes.modules.informes.compiler import CompiledPlan, compile_definition
from erp_informes.modules.informes.datasources.base import TenantDataSource, TransientDataSourceError
from erp_informes.modules.informes.definition import ReportDefinition
from erp_informes.modules.informes.exceptions import (
    ExecutionError, ExecutionTimeoutError, InformeError,
)
from erp_informes.modules.informes.schemas import Column, ExecutionResult, Pagination
from erp_informes.modules.informes.validator import bind_parameters

logger = logging.getLogger(__name__)

IDENTITY_TOTALS = {
    Aggregation.SUM: 0,
    Aggregation.COUNT: 0,
}


def is_transient(exc: BaseException) -> bool:
    """Errores de la fuente de datos que merece la pena reintentar"""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return False
    if isinstance(exc, TransientDataSourceError):
        return True
    if isinstance(exc, DBAPIError):
        return bool(exc.connection_invalidated)
    return isinstance(exc, ConnectionError)


def build_columns(definition: ReportDefinition):
    granularities = {g.key: g.granularity for g in definition.group_by}
    columns = []
    for selected in definition.fields:
        field_type = selected.field.type.value
        field_format = selected.field.format
        if selected.aggregation == Aggregation.COUNT:
            field_type, field_format = FieldType.NUMBER.value, None
        elif granularities.get(selected.key) is not None:
            field_format = granularities[selected.key].value
        columns.append(Column(
            key=selected.key,
            label=selected.display_label,
            type=field_type,
            aggregation=selected.aggregation.value,
            format=field_format,
        ))
    return columns


class ReportExecutor:
    """Ejecuta definiciones validadas contra la fuente de datos de una empresa"""

    def __init__(
        self,
        data_source: TenantDataSource,
        retry_attempts: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        timeout: Optional[float] = None,
        max_page_size: Optional[int] = None,
    ):
        self.data_source = data_source
        self.retry_attempts = retry_attempts if retry_attempts is not None else settings.INFORMES_RETRY_ATTEMPTS
        self.retry_backoff = retry_backoff if retry_backoff is not None else settings.INFORMES_RETRY_BACKOFF
        self.timeout = timeout if timeout is not None else settings.INFORMES_EXECUTION_TIMEOUT
        self.max_page_size = max_page_size or settings.INFORMES_MAX_PAGE_SIZE

    async def _call(self, operation: str, func: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await run_with_retry(
                func,
                max_attempts=self.retry_attempts,
                initial_delay=self.retry_backoff,
                is_retryable=is_transient,
                operation=operation,
            )
        except (asyncio.TimeoutError, TimeoutError, InformeError):
            raise
        except RetryExhaustedError as e:
            logger.error(f"Fuente de datos no disponible tras {e.attempts} intentos ({operation}): {e.last_exception}")
            raise ExecutionError(
                f"La fuente de datos no está disponible: {e.last_exception}",
                attempts=e.attempts,
                cause=e.last_exception,
            ) from e
        except Exception as e:
            logger.error(f"Error ejecutando {operation}: {e}")
            raise ExecutionError(f"Error al ejecutar el informe: {e}", cause=e) from e

    async def _run(self, plan: CompiledPlan, timeout: Optional[float]):
        source = self.data_source
        # Secuencial: la sesión de la fuente no admite consultas concurrentes
        rows = await self._call("rows", lambda: source.aggregate(plan.collection, plan.rows, timeout))
        totals_rows = []
        if plan.has_totals:
            totals_rows = await self._call("totals", lambda: source.aggregate(plan.collection, plan.totals, timeout))
        total = await self._call("count", lambda: source.count(plan.collection, plan.count, timeout))
        return rows, totals_rows, total

    @staticmethod
    def _totals(definition: ReportDefinition, plan: CompiledPlan, totals_rows) -> Dict[str, Any]:
        if not plan.has_totals:
            return {}
        row = totals_rows[0] if totals_rows else {}
        totals = {}
        for selected in definition.aggregated_fields:
            value = row.get(selected.key)
            if value is None:
                value = IDENTITY_TOTALS.get(selected.aggregation)
            totals[selected.key] = value
        return totals

    async def execute(
        self,
        definition: ReportDefinition,
        page: int = 1,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionResult:
        """
        Ejecuta un informe y devuelve la página solicitada con totales.

        Args:
            definition: Definición validada
            page: Página (desde 1)
            limit: Registros por página; por defecto INFORMES_DEFAULT_PAGE_SIZE
            timeout: Segundos máximos para toda la ejecución
            parameters: Valores de los parámetros del informe

        Raises:
            ValidationError: Parámetros no válidos u obligatorios ausentes
            ExecutionError: Fallo de la fuente de datos
            ExecutionTimeoutError: Tiempo máximo agotado
        """
        limit = min(limit or settings.INFORMES_DEFAULT_PAGE_SIZE, self.max_page_size)
        if not definition.config.paginate:
            page, limit = 1, self.max_page_size

        bound = bind_parameters(definition, parameters)
        plan = compile_definition(bound, page=page, limit=limit)
        effective_timeout = timeout if timeout is not None else self.timeout

        started = time.monotonic()
        try:
            rows, totals_rows, total = await asyncio.wait_for(
                self._run(plan, effective_timeout), timeout=effective_timeout
            )
        except (asyncio.TimeoutError, TimeoutError):
            logger.warning(f"Informe '{definition.name}' cancelado por tiempo ({effective_timeout}s)")
            raise ExecutionTimeoutError(effective_timeout)

        if plan.row_cap is not None:
            total = min(total, plan.row_cap)

        elapsed = time.monotonic() - started
        logger.info(
            f"Informe '{definition.name}' ejecutado sobre {plan.collection}: "
            f"{len(rows)} filas de {total} en {elapsed:.3f}s"
        )

        return ExecutionResult(
            rows=rows,
            totals=self._totals(bound, plan, totals_rows),
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit) if total else 0,
            ),
            columns=build_columns(bound),
        )
