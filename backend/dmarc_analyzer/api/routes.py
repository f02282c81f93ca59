"""
API routes for DMARC summaries, detail rows and charts

Every window is given as optional RFC 3339 `start`/`end` query parameters;
missing or unparseable values fall back to the last 30 days.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from dmarc_analyzer.database import get_db
from dmarc_analyzer.pipeline import build_chart_bucketer, build_detail_query, build_summary_aggregator
from dmarc_analyzer.services.chart import ChartBucketer
from dmarc_analyzer.services.detail import DetailQuery
from dmarc_analyzer.services.source_classifier import SOURCE_KINDS
from dmarc_analyzer.services.storage import ReportEntryStore
from dmarc_analyzer.services.summary import SummaryAggregator
from dmarc_analyzer.error_handlers import BadRequestError
from dmarc_analyzer.schemas import (
    ChartResponse,
    ChartSeries,
    ChartVolume,
    DetailResponse,
    DetailRow,
    DomainSummaryCountsResponse,
    DomainSummaryResponse,
    SourceSummaryResponse,
)
from dmarc_analyzer.utils.dates import format_rfc3339, parse_date_range

router = APIRouter(prefix="/api", tags=["dmarc"])
logger = logging.getLogger(__name__)


def get_summary_aggregator(db: Session = Depends(get_db)) -> SummaryAggregator:
    return build_summary_aggregator(db)


def get_chart_bucketer(db: Session = Depends(get_db)) -> ChartBucketer:
    return build_chart_bucketer(db)


def get_detail_query(db: Session = Depends(get_db)) -> DetailQuery:
    return build_detail_query(db)


@router.get("/domains", response_model=List[str])
async def list_domains(db: Session = Depends(get_db)):
    """List every domain with stored report entries"""
    return ReportEntryStore(db).list_domains()


@router.get("/domains/{domain}/report", response_model=DomainSummaryResponse)
async def domain_summary(
    domain: str,
    start: Optional[str] = Query(None, description="Window start (RFC 3339)"),
    end: Optional[str] = Query(None, description="Window end (RFC 3339)"),
    aggregator: SummaryAggregator = Depends(get_summary_aggregator)
):
    """
    Per-source summary for a domain

    Sources are labeled by ESP, SenderBase domain or host name, reverse DNS
    organizational domain, or IP, and sorted by message volume.
    """
    start_ts, end_ts = parse_date_range(start, end)
    summary = aggregator.summarize(domain, start_ts, end_ts)

    return DomainSummaryResponse(
        domain=domain,
        summary=[SourceSummaryResponse.model_validate(s) for s in summary.sources],
        domain_summary_counts=DomainSummaryCountsResponse.model_validate(summary.counts),
        start_date=format_rfc3339(start_ts),
        end_date=format_rfc3339(end_ts),
    )


@router.get("/domains/{domain}/report/detail", response_model=DetailResponse)
async def domain_detail(
    domain: str,
    source: str = Query(..., min_length=1, description="Source label from the summary"),
    source_type: Optional[str] = Query(None, description="Source kind from the summary"),
    start: Optional[str] = Query(None, description="Window start (RFC 3339)"),
    end: Optional[str] = Query(None, description="Window end (RFC 3339)"),
    detail: DetailQuery = Depends(get_detail_query)
):
    """Grouped detail rows for one summary source"""
    if source_type and source_type not in SOURCE_KINDS:
        raise BadRequestError(f"Unknown source_type: {source_type}")

    start_ts, end_ts = parse_date_range(start, end)
    rows = detail.rows(domain, start_ts, end_ts, source, source_type)
    return DetailResponse(detail_rows=[DetailRow(**row) for row in rows])


@router.get("/domains/{domain}/chart/dmarc", response_model=ChartResponse)
async def domain_chart(
    domain: str,
    start: Optional[str] = Query(None, description="Window start (RFC 3339)"),
    end: Optional[str] = Query(None, description="Window end (RFC 3339)"),
    bucketer: ChartBucketer = Depends(get_chart_bucketer)
):
    """Daily pass/fail message volumes"""
    start_ts, end_ts = parse_date_range(start, end)
    chart = bucketer.chart(domain, start_ts, end_ts)

    return ChartResponse(
        domain=domain,
        chartdata=[
            ChartSeries(
                name="pass",
                series=[ChartVolume(name=ts, value=value) for ts, value in chart.passed],
            ),
            ChartSeries(
                name="fail",
                series=[ChartVolume(name=ts, value=value) for ts, value in chart.failed],
            ),
        ],
    )
