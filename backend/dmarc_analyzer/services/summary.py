"""
Per-source DMARC summary

Rows grouped by source identity are labeled with SourceClassifier and
accumulated per label. Alignment counters are additive: a group where both
DKIM and SPF pass increments the DKIM, SPF and fully aligned counters.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List

from dmarc_analyzer.services.source_classifier import SourceClassifier
from dmarc_analyzer.services.storage import ReportEntryStore

logger = logging.getLogger(__name__)

SUMMARY_ROW_MAX = 1000
PASS = "pass"


@dataclass
class SourceSummary:
    """Counters for one labeled source"""
    source: str
    source_type: str
    total_count: int = 0
    pass_count: int = 0
    dkim_aligned_count: int = 0
    spf_aligned_count: int = 0
    fully_aligned_count: int = 0


@dataclass
class DomainSummaryCounts:
    """Domain-wide totals across every source"""
    report_count: int = 0
    message_count: int = 0
    dkim_aligned_count: int = 0
    spf_aligned_count: int = 0
    fully_aligned_count: int = 0


@dataclass
class DomainSummary:
    domain: str
    start: int
    end: int
    sources: List[SourceSummary] = field(default_factory=list)
    counts: DomainSummaryCounts = field(default_factory=DomainSummaryCounts)


def accumulate(summary: SourceSummary, count: int, eval_dkim: str, eval_spf: str) -> None:
    """Add one group's message count to a source's counters"""
    dkim_pass = eval_dkim == PASS
    spf_pass = eval_spf == PASS

    summary.total_count += count
    if dkim_pass:
        summary.dkim_aligned_count += count
    if spf_pass:
        summary.spf_aligned_count += count
    if dkim_pass and spf_pass:
        summary.fully_aligned_count += count
    if dkim_pass or spf_pass:
        summary.pass_count += count


class SummaryAggregator:
    """Builds the per-source summary for a domain and time window"""

    def __init__(self, store: ReportEntryStore, classifier: SourceClassifier):
        self.store = store
        self.classifier = classifier

    def summarize(self, domain: str, start: int, end: int) -> DomainSummary:
        """
        Summarize entries with start <= end_date <= end

        Sources are sorted by total message count, highest first, and
        truncated to SUMMARY_ROW_MAX.
        """
        by_label: Dict[str, SourceSummary] = {}

        for row in self.store.summary_rows(domain, start, end):
            label, kind = self.classifier.classify(row)
            summary = by_label.get(label)
            if summary is None:
                summary = by_label[label] = SourceSummary(source=label, source_type=kind)
            accumulate(summary, int(row.message_count or 0), row.eval_dkim, row.eval_spf)

        counts = DomainSummaryCounts()
        for summary in by_label.values():
            counts.message_count += summary.total_count
            counts.dkim_aligned_count += summary.dkim_aligned_count
            counts.spf_aligned_count += summary.spf_aligned_count
            counts.fully_aligned_count += summary.fully_aligned_count
        if by_label:
            counts.report_count = self.store.report_count(domain, start, end)

        sources = sorted(by_label.values(), key=lambda s: s.total_count, reverse=True)

        logger.debug(f"Summarized {len(sources)} sources for {domain}")
        return DomainSummary(
            domain=domain,
            start=start,
            end=end,
            sources=sources[:SUMMARY_ROW_MAX],
            counts=counts,
        )
