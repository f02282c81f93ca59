"""
Celery tasks for ingesting stored report emails.

ingest_object_task handles a single object; backfill_bucket_task walks a
bucket and ingests every key that has no stored entries yet.
"""

import logging
from celery import Task
from dmarc_analyzer.celery_app import celery_app
from dmarc_analyzer.database import SessionLocal
from dmarc_analyzer.config import get_settings
from dmarc_analyzer.pipeline import build_ingestion_controller
from dmarc_analyzer.services.ingestion import IngestionState
from dmarc_analyzer.services.object_store import ObjectFetchError

logger = logging.getLogger(__name__)


class DatabaseTask(Task):
    """Base task that manages database session lifecycle"""

    _db = None

    def after_return(self, *args, **kwargs):
        """Close database session after task completes"""
        if self._db is not None:
            self._db.close()
            self._db = None


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="dmarc_analyzer.tasks.ingestion.ingest_object_task"
)
def ingest_object_task(self, bucket: str, key: str):
    """
    Ingest one stored email.

    Args:
        bucket: S3 bucket name (empty uses the configured bucket)
        key: Object key, also the message identifier

    Returns:
        dict: Final state and number of entries written
    """
    settings = get_settings()
    bucket = bucket or settings.s3_bucket_name

    db = SessionLocal()
    self._db = db

    result = build_ingestion_controller(db, settings).ingest(bucket, key)
    return {
        "status": result.state.value,
        "message_id": result.message_id,
        "entries": result.entries,
        "error": result.error,
        "task_id": self.request.id
    }


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="dmarc_analyzer.tasks.ingestion.backfill_bucket_task"
)
def backfill_bucket_task(self, bucket: str = "", prefix: str = ""):
    """
    Ingest every stored email in a bucket that is not in the database yet.

    Args:
        bucket: S3 bucket name (empty uses the configured bucket)
        prefix: Only consider keys under this prefix

    Returns:
        dict: Counts of objects per final state
    """
    settings = get_settings()
    bucket = bucket or settings.s3_bucket_name
    logger.info(f"Starting backfill of s3://{bucket}/{prefix}")

    db = SessionLocal()
    self._db = db

    controller = build_ingestion_controller(db, settings)
    stats = {state.value: 0 for state in (IngestionState.DONE, IngestionState.SKIPPED, IngestionState.FAILED)}
    stats["listed"] = 0

    try:
        for key in controller.object_store.list_keys(bucket, prefix):
            stats["listed"] += 1
            result = controller.ingest(bucket, key)
            stats[result.state.value] += 1
    except ObjectFetchError as e:
        logger.error(f"Backfill of s3://{bucket}/{prefix} aborted: {e}")
        return {"status": "failed", "error": str(e), "task_id": self.request.id, **stats}

    logger.info(
        f"Backfill complete: {stats['done']} ingested, {stats['skipped']} skipped, "
        f"{stats['failed']} failed of {stats['listed']} objects"
    )
    return {"status": "success", "task_id": self.request.id, **stats}
