from erp_informes.modules.informes.datasources.base import (
    TenantDataSource,
    TenantDataSourceProvider,
    TransientDataSourceError,
)
from erp_informes.modules.informes.datasources.memory import InMemoryDataSource, InMemoryDataSourceProvider

__all__ = [
    "TenantDataSource",
    "TenantDataSourceProvider",
    "TransientDataSourceError",
    "InMemoryDataSource",
    "InMemoryDataSourceProvider",
]
