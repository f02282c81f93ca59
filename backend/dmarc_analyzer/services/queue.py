"""
SQS notification consumer

S3 publishes an event to SQS for every stored email. The consumer long-polls
the queue, ingests the objects named by each event and deletes a message only
once all of its objects reached DONE or SKIPPED; anything else is left for
the queue's redelivery policy.
"""
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import unquote_plus

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from dmarc_analyzer.metrics import record_queue_message
from dmarc_analyzer.services.ingestion import IngestionController

logger = logging.getLogger(__name__)

INGESTED_EVENTS = frozenset({"ObjectCreated:Put", "ObjectCreated:Post"})


class NotificationError(ValueError):
    """Raised when a queue message body is not an S3 event"""
    pass


@dataclass
class ObjectEvent:
    """One record of an S3 event notification"""
    event_name: str
    bucket: str
    key: str


def parse_notification(body: str) -> List[ObjectEvent]:
    """
    Parse an S3 event notification body

    Object keys are URL-decoded as S3 encodes them in events.

    Raises:
        NotificationError: If the body is not valid JSON
    """
    try:
        payload = json.loads(body)
    except (TypeError, ValueError) as e:
        raise NotificationError(f"Invalid notification body: {str(e)}")
    if not isinstance(payload, dict):
        raise NotificationError("Notification body is not a JSON object")

    events = []
    for record in payload.get("Records") or []:
        s3 = record.get("s3") or {}
        events.append(ObjectEvent(
            event_name=record.get("eventName", ""),
            bucket=(s3.get("bucket") or {}).get("name", ""),
            key=unquote_plus((s3.get("object") or {}).get("key", "")),
        ))
    return events


class SQSQueue:
    """Thin boto3 wrapper around one SQS queue"""

    def __init__(
        self,
        queue_url: str,
        client=None,
        region_name: Optional[str] = None,
        max_messages: int = 10,
        wait_seconds: int = 20,
        visibility_timeout: int = 30
    ):
        self.queue_url = queue_url
        self.client = client or boto3.client("sqs", region_name=region_name)
        self.max_messages = max_messages
        self.wait_seconds = wait_seconds
        self.visibility_timeout = visibility_timeout

    def receive(self) -> List[Dict[str, Any]]:
        response = self.client.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=self.max_messages,
            WaitTimeSeconds=self.wait_seconds,
            VisibilityTimeout=self.visibility_timeout,
        )
        return response.get("Messages", [])

    def delete(self, receipt_handle: str) -> None:
        self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=receipt_handle)


class QueueConsumer:
    """Sequential consumer loop feeding the ingestion controller"""

    def __init__(
        self,
        queue: SQSQueue,
        controller: IngestionController,
        default_bucket: str = "",
        error_backoff_seconds: float = 5.0
    ):
        self.queue = queue
        self.controller = controller
        self.default_bucket = default_bucket
        self.error_backoff_seconds = error_backoff_seconds

    def run(self, stop_event: threading.Event) -> None:
        """Poll until stop_event is set; the current batch always completes"""
        logger.info(f"Starting SQS consumer on {self.queue.queue_url}")
        while not stop_event.is_set():
            self.poll_once(stop_event)
        logger.info("SQS consumer stopped")

    def poll_once(self, stop_event: Optional[threading.Event] = None) -> int:
        """
        Receive and process one batch

        Returns:
            Number of messages deleted
        """
        try:
            messages = self.queue.receive()
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to receive messages: {e}")
            if stop_event is not None:
                stop_event.wait(self.error_backoff_seconds)
            return 0

        if not messages:
            logger.debug("No messages received, continuing to poll")
            return 0

        deleted = 0
        for message in messages:
            if self.process_message(message):
                deleted += 1
        return deleted

    def process_message(self, message: Dict[str, Any]) -> bool:
        """
        Ingest every object named by one message

        Returns:
            True if the message was deleted from the queue
        """
        sqs_id = message.get("MessageId", "")
        try:
            events = parse_notification(message.get("Body", ""))
        except NotificationError as e:
            logger.error(f"Failed to process message {sqs_id}: {e}")
            record_queue_message("retained")
            return False

        all_succeeded = True
        for event in events:
            if event.event_name not in INGESTED_EVENTS:
                logger.info(f"Skipping event {event.event_name} for object {event.key}")
                continue
            bucket = event.bucket or self.default_bucket
            try:
                result = self.controller.ingest(bucket, event.key)
            except Exception:
                logger.exception(f"Unexpected error ingesting {event.key}")
                all_succeeded = False
                continue
            if not result.succeeded:
                all_succeeded = False

        if not all_succeeded:
            logger.warning(f"Leaving message {sqs_id} on the queue for redelivery")
            record_queue_message("retained")
            return False

        try:
            self.queue.delete(message["ReceiptHandle"])
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete message {sqs_id}: {e}")
            record_queue_message("retained")
            return False

        logger.info(f"Successfully deleted message: {sqs_id}")
        record_queue_message("deleted")
        return True
