"""
Source labeling

Every report row is attributed to a single sending source. The label is
picked from the most specific identity available: the ESP name, then the
SenderBase domain and host names, then the organizational domain of the
first PTR name, and finally the bare IP address.
"""
import logging
from typing import Any, Callable, NamedTuple, Sequence

from dmarc_analyzer.utils.domain import OrgDomainError, get_org_domain

logger = logging.getLogger(__name__)

KIND_ESP = "ESP"
KIND_DOMAIN_NAME = "DomainName"
KIND_HOST_NAME = "HostName"
KIND_REVERSE_LOOKUP = "ReverseLookup"
KIND_IP = "IP"

SOURCE_KINDS = (KIND_ESP, KIND_DOMAIN_NAME, KIND_HOST_NAME, KIND_REVERSE_LOOKUP, KIND_IP)


class SourceLabel(NamedTuple):
    label: str
    kind: str


class SourceClassifier:
    """Deterministic (label, kind) attribution for a report row"""

    def __init__(self, org_domain: Callable[[str], str] = get_org_domain):
        self.org_domain = org_domain

    def classify(self, row: Any) -> SourceLabel:
        """
        Classify a row

        Args:
            row: Any object with esp, domain_name, host_name, reverse_lookup
                and source_ip attributes (a DmarcReportEntry or a grouped
                query row)
        """
        if row.esp:
            return SourceLabel(row.esp, KIND_ESP)
        if row.domain_name:
            return SourceLabel(row.domain_name, KIND_DOMAIN_NAME)
        if row.host_name:
            return SourceLabel(row.host_name, KIND_HOST_NAME)

        label = self._reverse_lookup_label(row.reverse_lookup or [])
        if label:
            return SourceLabel(label, KIND_REVERSE_LOOKUP)

        return SourceLabel(row.source_ip, KIND_IP)

    def _reverse_lookup_label(self, names: Sequence[str]) -> str:
        if not names or not names[0]:
            return ""
        try:
            org_domain = self.org_domain(names[0])
        except OrgDomainError:
            logger.debug(f"No organizational domain for {names[0]!r}")
            return ""
        return org_domain.rstrip(".")
