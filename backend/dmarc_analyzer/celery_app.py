"""
Celery application for re-ingestion and bucket backfills

Live ingestion runs in the queue consumer (dmarc_analyzer.consumer); the
worker only handles tasks queued by operators.
"""

from celery import Celery
from dmarc_analyzer.config import get_settings

settings = get_settings()

# Task results are kept in the application database
result_backend = f"db+{settings.database_url}" if settings.database_url else None

celery_app = Celery(
    "dmarc_analyzer",
    broker=settings.celery_broker_url,
    backend=result_backend,
    include=["dmarc_analyzer.tasks.ingestion"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.celery_task_time_limit,
    # Acknowledge after completion; re-running an ingestion is a no-op
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,
)
