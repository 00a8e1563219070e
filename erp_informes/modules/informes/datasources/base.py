"""
Contrato de la fuente de datos de una empresa.

El motor recibe un manejador ya autorizado para una única empresa y nunca
selecciona la empresa por sí mismo.
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable
from uuid import UUID

from erp_informes.modules.informes.compiler import Stage


class TransientDataSourceError(Exception):
    """Fallo pasajero (conexión reiniciada, pool agotado...). Se reintenta."""


@runtime_checkable
class TenantDataSource(Protocol):
    """Ejecuta planes compilados sobre los datos de una empresa"""

    async def aggregate(
        self,
        collection: str,
        stages: Sequence[Stage],
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        ...

    async def count(
        self,
        collection: str,
        stages: Sequence[Stage],
        timeout: Optional[float] = None,
    ) -> int:
        ...


class TenantDataSourceProvider(Protocol):
    """Entrega la fuente de datos de una empresa"""

    def for_tenant(self, tenant_id: UUID) -> TenantDataSource:
        ...
