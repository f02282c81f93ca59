"""
Report ingestion pipeline

Drives one stored email through fetch, attachment extraction, XML decoding,
normalization and the database write. Pipeline errors are returned as
FAILED results rather than raised.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from dmarc_analyzer.metrics import record_entries_ingested, record_report_ingested
from dmarc_analyzer.parsers.attachment import AttachmentError, extract_report_attachment
from dmarc_analyzer.parsers.dmarc_parser import ReportDecodeError, decode_report
from dmarc_analyzer.services.normalizer import RecordNormalizer
from dmarc_analyzer.services.object_store import ObjectFetchError, S3ObjectStore
from dmarc_analyzer.services.storage import ReportEntryStore

logger = logging.getLogger(__name__)


class IngestionState(str, Enum):
    """Pipeline stages of one report email"""
    RECEIVED = "received"
    SKIPPED = "skipped"
    EXTRACTING = "extracting"
    DECODING = "decoding"
    NORMALIZING = "normalizing"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


TERMINAL_SUCCESS = frozenset({IngestionState.DONE, IngestionState.SKIPPED})


@dataclass
class IngestionResult:
    """Outcome of ingesting one object"""
    message_id: str
    state: IngestionState
    entries: int = 0
    failed_stage: Optional[IngestionState] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        """True when the queue message for this object may be deleted"""
        return self.state in TERMINAL_SUCCESS


class IngestionController:
    """Idempotent ingestion of one stored report email"""

    def __init__(
        self,
        object_store: S3ObjectStore,
        store: ReportEntryStore,
        normalizer: RecordNormalizer
    ):
        self.object_store = object_store
        self.store = store
        self.normalizer = normalizer

    def ingest(self, bucket: str, key: str) -> IngestionResult:
        """
        Ingest the email stored at s3://bucket/key

        The object key is the message identifier. A message that already has
        stored entries is skipped without being fetched. Any exit other than a
        committed write rolls the session back, so a database error on one
        message leaves the session usable for the next.
        """
        message_id = key
        log_extra = {"message_id": message_id, "bucket": bucket}
        state = IngestionState.RECEIVED
        committed = False

        try:
            if self.store.has_message(message_id):
                logger.info(f"Message {message_id} already processed, skipping", extra=log_extra)
                return self._finish(IngestionResult(message_id, IngestionState.SKIPPED))

            state = IngestionState.EXTRACTING
            raw = self.object_store.fetch(bucket, key)
            attachment = extract_report_attachment(raw)

            state = IngestionState.DECODING
            report = decode_report(attachment)

            state = IngestionState.NORMALIZING
            entries = self.normalizer.normalize(report, message_id)
            if not entries:
                logger.warning(f"No DMARC records found in message {message_id}", extra=log_extra)
                return self._finish(IngestionResult(message_id, IngestionState.DONE))

            state = IngestionState.WRITING
            written = self.store.insert_entries(entries)
            committed = True

        except IntegrityError as e:
            if not self._stored_concurrently(message_id):
                return self._fail(message_id, state, e, log_extra)
            logger.info(f"Message {message_id} was stored concurrently, skipping", extra=log_extra)
            return self._finish(IngestionResult(message_id, IngestionState.SKIPPED))

        except (ObjectFetchError, AttachmentError, ReportDecodeError, SQLAlchemyError) as e:
            return self._fail(message_id, state, e, log_extra)

        finally:
            if not committed:
                self.store.rollback()

        logger.info(
            f"Successfully processed message {message_id}, inserted {written} entries",
            extra={**log_extra, "entries": written}
        )
        record_entries_ingested(written)
        return self._finish(IngestionResult(message_id, IngestionState.DONE, entries=written))

    def _stored_concurrently(self, message_id: str) -> bool:
        """After a rejected write, whether another writer now holds this message"""
        self.store.rollback()
        try:
            return self.store.has_message(message_id)
        except SQLAlchemyError:
            return False

    def _fail(self, message_id: str, stage: IngestionState, error: Exception, log_extra: dict) -> IngestionResult:
        logger.error(
            f"Failed to ingest message {message_id} while {stage.value}: {error}",
            extra={**log_extra, "state": stage.value, "error": type(error).__name__}
        )
        return self._finish(IngestionResult(
            message_id,
            IngestionState.FAILED,
            failed_stage=stage,
            error=str(error)
        ))

    def _finish(self, result: IngestionResult) -> IngestionResult:
        record_report_ingested(result.state.value)
        return result
