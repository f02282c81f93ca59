"""Persistence and grouped read queries for DMARC report entries"""
from typing import Any, List, Sequence
import logging

from sqlalchemy import case, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dmarc_analyzer.models import DmarcReportEntry

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

# Grouping key for per-source summaries
SUMMARY_COLUMNS = (
    DmarcReportEntry.source_ip,
    DmarcReportEntry.esp,
    DmarcReportEntry.domain_name,
    DmarcReportEntry.host_name,
    DmarcReportEntry.reverse_lookup,
    DmarcReportEntry.country,
    DmarcReportEntry.disposition,
    DmarcReportEntry.eval_dkim,
    DmarcReportEntry.eval_spf,
)

# Grouping key for the detail table
DETAIL_COLUMNS = SUMMARY_COLUMNS + (
    DmarcReportEntry.header_from,
    DmarcReportEntry.envelope_from,
    DmarcReportEntry.envelope_to,
    DmarcReportEntry.auth_dkim_domain,
    DmarcReportEntry.auth_dkim_selector,
    DmarcReportEntry.auth_dkim_result,
    DmarcReportEntry.auth_spf_domain,
    DmarcReportEntry.auth_spf_scope,
    DmarcReportEntry.auth_spf_result,
    DmarcReportEntry.po_reason,
    DmarcReportEntry.po_comment,
)


class ReportEntryStore:
    """Reads and writes DmarcReportEntry rows through a SQLAlchemy session"""

    def __init__(self, db: Session):
        self.db = db

    def has_message(self, message_id: str) -> bool:
        """Check whether any entry exists for a message"""
        existing = self.db.query(DmarcReportEntry.message_id).filter(
            DmarcReportEntry.message_id == message_id
        ).first()
        return existing is not None

    def insert_entries(self, entries: Sequence[DmarcReportEntry]) -> int:
        """
        Insert all entries of one message in a single transaction

        Raises:
            IntegrityError: If any (message_id, record_number) already exists
            SQLAlchemyError: On any other database failure

        The session is rolled back before either error propagates.
        """
        if not entries:
            return 0
        try:
            self.db.add_all(entries)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return len(entries)

    def rollback(self):
        """
        End the open transaction without writing

        Also clears an invalidated connection so the next query can reconnect.
        A rollback that itself fails is logged, not raised.
        """
        try:
            self.db.rollback()
        except SQLAlchemyError as e:
            logger.warning(f"Rollback failed: {e}")

    def _window(self, query, domain: str, start: int, end: int):
        return query.filter(
            DmarcReportEntry.domain == domain,
            DmarcReportEntry.end_date >= start,
            DmarcReportEntry.end_date <= end,
        )

    def summary_rows(self, domain: str, start: int, end: int) -> List[Any]:
        """
        Message counts grouped by source identity and evaluation results

        Each row has the SUMMARY_COLUMNS attributes plus message_count.
        """
        query = self.db.query(
            *SUMMARY_COLUMNS,
            func.sum(DmarcReportEntry.message_count).label("message_count"),
        )
        return self._window(query, domain, start, end).group_by(*SUMMARY_COLUMNS).all()

    def report_count(self, domain: str, start: int, end: int) -> int:
        """Number of distinct report emails in the window"""
        query = self.db.query(func.count(func.distinct(DmarcReportEntry.message_id)))
        return self._window(query, domain, start, end).scalar() or 0

    def daily_buckets(self, domain: str, start: int, end: int) -> List[Any]:
        """
        Pass/fail message totals per day for start <= end_date < end

        Rows carry day (0-based index from start), passing and failing, in
        ascending day order. A row passes when DKIM or SPF evaluated to pass.
        """
        day = ((DmarcReportEntry.end_date - start) // SECONDS_PER_DAY).label("day")
        passed = or_(DmarcReportEntry.eval_dkim == "pass", DmarcReportEntry.eval_spf == "pass")

        return self.db.query(
            day,
            func.sum(case((passed, DmarcReportEntry.message_count), else_=0)).label("passing"),
            func.sum(case((passed, 0), else_=DmarcReportEntry.message_count)).label("failing"),
        ).filter(
            DmarcReportEntry.domain == domain,
            DmarcReportEntry.end_date >= start,
            DmarcReportEntry.end_date < end,
        ).group_by(day).order_by(day).all()

    def detail_rows(self, domain: str, start: int, end: int) -> List[Any]:
        """
        Message counts grouped by the full detail key

        Each row has the DETAIL_COLUMNS attributes plus message_count.
        """
        query = self.db.query(
            *DETAIL_COLUMNS,
            func.sum(DmarcReportEntry.message_count).label("message_count"),
        )
        return self._window(query, domain, start, end).group_by(*DETAIL_COLUMNS).all()

    def list_domains(self) -> List[str]:
        """Distinct reported domains, sorted"""
        rows = self.db.query(DmarcReportEntry.domain).distinct().order_by(
            DmarcReportEntry.domain
        ).all()
        return [row.domain for row in rows]
