"""
Mixins comunes para modelos multiempresa
"""
from sqlalchemy import Column, DateTime, Uuid
from sqlalchemy.sql import func


class TenantMixin:
    """Añade tenant_id; toda consulta de un modelo con este mixin se filtra por empresa"""

    tenant_id = Column(Uuid(as_uuid=True), nullable=False, index=True)


class TimestampMixin:
    """Fechas de creación y última modificación"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
