"""
Composition root

Builds the ingestion and query collaborators from settings. Nothing in the
service modules creates AWS or DNS clients on import; they are constructed
here and passed in.
"""
from typing import Optional

from sqlalchemy.orm import Session

from dmarc_analyzer.config import Settings, get_settings
from dmarc_analyzer.services.chart import ChartBucketer
from dmarc_analyzer.services.detail import DetailQuery
from dmarc_analyzer.services.ingestion import IngestionController
from dmarc_analyzer.services.normalizer import RecordNormalizer
from dmarc_analyzer.services.object_store import S3ObjectStore
from dmarc_analyzer.services.queue import QueueConsumer, SQSQueue
from dmarc_analyzer.services.reverse_dns import ReverseDNSResolver, build_resolver
from dmarc_analyzer.services.senderbase import SenderBaseClient
from dmarc_analyzer.services.source_classifier import SourceClassifier
from dmarc_analyzer.services.storage import ReportEntryStore
from dmarc_analyzer.services.summary import SummaryAggregator


def build_normalizer(settings: Settings) -> RecordNormalizer:
    resolver = build_resolver(
        timeout=settings.dns_timeout,
        nameservers=settings.dns_nameserver_list or None,
    )
    return RecordNormalizer(
        senderbase=SenderBaseClient(resolver=resolver, zone=settings.senderbase_zone),
        reverse_dns=ReverseDNSResolver(resolver=resolver),
    )


def build_object_store(settings: Settings) -> S3ObjectStore:
    return S3ObjectStore(region_name=settings.aws_region)


def build_ingestion_controller(
    db: Session,
    settings: Optional[Settings] = None,
    object_store: Optional[S3ObjectStore] = None,
    normalizer: Optional[RecordNormalizer] = None
) -> IngestionController:
    """Wire an IngestionController to a database session"""
    settings = settings or get_settings()
    return IngestionController(
        object_store=object_store or build_object_store(settings),
        store=ReportEntryStore(db),
        normalizer=normalizer or build_normalizer(settings),
    )


def build_queue_consumer(db: Session, settings: Optional[Settings] = None) -> QueueConsumer:
    """Wire the SQS consumer loop"""
    settings = settings or get_settings()
    queue = SQSQueue(
        settings.sqs_queue_url,
        region_name=settings.aws_region,
        max_messages=settings.sqs_max_messages,
        wait_seconds=settings.sqs_wait_seconds,
        visibility_timeout=settings.sqs_visibility_timeout,
    )
    return QueueConsumer(
        queue=queue,
        controller=build_ingestion_controller(db, settings),
        default_bucket=settings.s3_bucket_name,
        error_backoff_seconds=settings.sqs_error_backoff_seconds,
    )


def build_summary_aggregator(db: Session) -> SummaryAggregator:
    return SummaryAggregator(ReportEntryStore(db), SourceClassifier())


def build_chart_bucketer(db: Session) -> ChartBucketer:
    return ChartBucketer(ReportEntryStore(db))


def build_detail_query(db: Session) -> DetailQuery:
    return DetailQuery(ReportEntryStore(db), SourceClassifier())
