"""
Tareas en segundo plano del módulo de informes
"""
from uuid import UUID
import logging

from erp_informes.core.celery import celery_app
from erp_informes.database.database import SessionLocal
from erp_informes.modules.informes.service import InformeService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def seed_informe_templates_task(self, tenant_id: str):
    """
    Siembra las plantillas predefinidas en una empresa recién creada.
    Idempotente: se puede relanzar sin crear duplicados.
    """
    db = SessionLocal()
    try:
        logger.info(f"Sembrando plantillas de informes para empresa {tenant_id}")
        creados = InformeService(db, UUID(tenant_id)).seed_templates()
        return {"status": "success", "tenant_id": tenant_id, "creados": creados}

    except Exception as e:
        db.rollback()
        logger.error(f"Fallo sembrando plantillas para empresa {tenant_id}: {str(e)}")
        raise self.retry(exc=e, countdown=60, max_retries=3)

    finally:
        db.close()
