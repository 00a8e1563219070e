from erp_informes.database.database import Base
from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from uuid import uuid4
from erp_informes.common.mixins import TenantMixin, TimestampMixin


class Informe(Base, TenantMixin, TimestampMixin):
    """
    Definición de informe guardada.

    `definition` contiene la forma canónica validada; el resto de columnas
    son copias para filtrar y ordenar listados.
    """
    __tablename__ = "informes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    module = Column(String(50), nullable=False, index=True)
    collection = Column(String(100), nullable=False)
    report_type = Column(String(20), nullable=False, default="tabla")
    definition = Column(JSON, nullable=False)

    is_template = Column(Boolean, nullable=False, default=False)
    is_favorite = Column(Boolean, nullable=False, default=False)
    is_shared = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=0)
    owner_id = Column(Uuid(as_uuid=True), nullable=True, index=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "module", "name", name="uq_informe_tenant_module_name"),
    )

    def __repr__(self):
        return f"<Informe(id={self.id}, name='{self.name}', module='{self.module}')>"


class ReportDocument(Base, TenantMixin):
    """Documento de negocio consultable por los informes (fuente SQL)"""
    __tablename__ = "report_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String(100), nullable=False, index=True)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<ReportDocument(id={self.id}, collection='{self.collection}')>"
