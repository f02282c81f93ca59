"""
Celery worker entrypoint.

This module starts the Celery worker process that executes background tasks.

Usage:
    celery -A celery_worker worker --loglevel=info --concurrency=2

Environment Variables:
    CELERY_BROKER_URL: Redis broker URL (default: redis://redis:6379/1)
    DATABASE_URL: Database connection string, also used for the result backend
    S3_BUCKET_NAME: Bucket used when a task is given no bucket
"""

import logging

from dmarc_analyzer.celery_app import celery_app
from dmarc_analyzer.config import get_settings
from dmarc_analyzer.logging_config import setup_logging

settings = get_settings()
setup_logging(
    log_level=settings.log_level,
    log_dir=settings.log_dir or None,
    app_name="dmarc-worker",
    enable_json=settings.log_json
)

logger = logging.getLogger(__name__)
logger.info("Celery worker starting...")

if __name__ == "__main__":
    # If run directly (not via celery CLI), start worker programmatically
    celery_app.worker_main([
        'worker',
        '--loglevel=info',
        '--concurrency=2'
    ])
