"""
Configuración de Celery para tareas en segundo plano
"""
from celery import Celery
import logging

logger = logging.getLogger(__name__)

# Configuración con valor por defecto si no se puede cargar
try:
    from erp_informes.core.config import settings
    redis_url = settings.redis_url
except Exception as e:
    logger.warning(f"No se pudo cargar la configuración: {e}")
    # Redis local del entorno de desarrollo
    redis_url = "redis://redis:6379/0"

# Instancia de Celery
celery_app = Celery(
    "erp_informes",
    broker=redis_url,
    backend=redis_url,
    include=[
        "erp_informes.modules.informes.tasks",
    ]
)

# Configuración de Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Resultados
    result_expires=3600,  # 1 hour

    # Cola propia para las tareas de informes
    task_routes={
        "erp_informes.modules.informes.tasks.*": {"queue": "informes"},
    },
)

if __name__ == "__main__":
    celery_app.start()
