"""Flatten decoded reports into enriched, storage-ready entries"""
import logging
from typing import List, Optional

from dmarc_analyzer.models import DmarcReportEntry
from dmarc_analyzer.parsers.dmarc_parser import AggregateReport, ReportRecord
from dmarc_analyzer.services.reverse_dns import ReverseDNSResolver
from dmarc_analyzer.services.senderbase import SenderBaseClient, SenderInfo

logger = logging.getLogger(__name__)


def _host_name_matches_ip(host_name: str, reverse_lookup: List[str]) -> str:
    """'true' when the SenderBase host name is among the PTR names of the address"""
    if not host_name:
        return ""
    names = {name.rstrip(".").lower() for name in reverse_lookup}
    return "true" if host_name.lower() in names else "false"


class RecordNormalizer:
    """Builds one DmarcReportEntry per report record"""

    def __init__(self, senderbase: SenderBaseClient, reverse_dns: ReverseDNSResolver):
        self.senderbase = senderbase
        self.reverse_dns = reverse_dns

    def normalize(self, report: AggregateReport, message_id: str) -> List[DmarcReportEntry]:
        """
        Normalize a report

        Args:
            report: Decoded aggregate report
            message_id: Identifier of the source email (its object key)

        Returns:
            Entries numbered by record position, starting at 0
        """
        entries = []
        for record_number, record in enumerate(report.records):
            entries.append(self._normalize_record(report, record, message_id, record_number))
        logger.debug(f"Normalized {len(entries)} records", extra={"message_id": message_id})
        return entries

    def _enrich(self, ip: str) -> SenderInfo:
        try:
            info: Optional[SenderInfo] = self.senderbase.lookup(ip)
        except Exception as e:
            # Enrichment is best effort
            logger.warning(f"Sender lookup raised for {ip}: {e}")
            info = None
        return info or SenderInfo()

    def _reverse_lookup(self, ip: str) -> List[str]:
        try:
            return list(self.reverse_dns.lookup(ip))
        except Exception as e:
            logger.warning(f"Reverse lookup raised for {ip}: {e}")
            return []

    def _normalize_record(
        self,
        report: AggregateReport,
        record: ReportRecord,
        message_id: str,
        record_number: int
    ) -> DmarcReportEntry:
        reverse_lookup = self._reverse_lookup(record.source_ip) if record.source_ip else []
        info = self._enrich(record.source_ip) if record.source_ip else SenderInfo()

        return DmarcReportEntry(
            message_id=message_id,
            record_number=record_number,
            report_org_name=report.organization,
            domain=report.domain,
            policy=report.policy,
            subdomain_policy=report.subdomain_policy,
            align_dkim=report.align_dkim,
            align_spf=report.align_spf,
            pct=report.percentage,
            start_date=report.date_range_begin,
            end_date=report.date_range_end,
            source_ip=record.source_ip,
            reverse_lookup=reverse_lookup,
            esp=info.esp,
            org_name=info.org_name,
            org_id=info.org_id,
            host_name=info.host_name,
            domain_name=info.domain_name,
            host_name_matches_ip=_host_name_matches_ip(info.host_name, reverse_lookup),
            city=info.city,
            state=info.state,
            country=info.country,
            longitude=info.longitude,
            latitude=info.latitude,
            message_count=record.count,
            disposition=record.disposition,
            eval_dkim=record.eval_dkim,
            eval_spf=record.eval_spf,
            header_from=record.header_from,
            envelope_from=record.envelope_from,
            envelope_to=record.envelope_to,
            auth_dkim_domain=[d.domain for d in record.auth_dkim],
            auth_dkim_selector=[d.selector for d in record.auth_dkim],
            auth_dkim_result=[d.result for d in record.auth_dkim],
            auth_spf_domain=[s.domain for s in record.auth_spf],
            auth_spf_scope=[s.scope for s in record.auth_spf],
            auth_spf_result=[s.result for s in record.auth_spf],
            po_reason=[po.reason for po in record.po_reasons],
            po_comment=[po.comment for po in record.po_reasons],
        )
