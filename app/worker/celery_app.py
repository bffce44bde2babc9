from celery import Celery
from app.config import settings
import logging

logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

log.info(f"Initializing Celery with broker: {settings.redis_url}")

celery = Celery(
    __name__,
    broker=settings.redis_url,
    backend=settings.redis_url
)

celery.conf.update(
    task_track_started=True,
    broker_connection_retry_on_startup=True,
    task_serializer='json',
    result_serializer='json',
    accept_content=['json'],
    task_always_eager=settings.celery_task_always_eager,
    # Eager results are never written to the Redis backend
    task_store_eager_result=False,
    worker_max_tasks_per_child=100,
    task_time_limit=30,
    task_soft_time_limit=20,
)

celery.autodiscover_tasks(['app.worker'])

log.info("Celery instance configured and ready.")
