"""
SenderBase reputation and geolocation lookups

SenderBase publishes per-address data as DNS TXT records under
<reversed-ipv4>.query.senderbase.org. The record body is a list of
"key=value" fields separated by "|"; long bodies are split across several
TXT strings, each prefixed with its sequence digit and a dash.
"""
import ipaddress
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import dns.exception
import dns.resolver
import dns.reversename

from dmarc_analyzer.metrics import record_enrichment_failure
from dmarc_analyzer.services.reverse_dns import build_resolver

logger = logging.getLogger(__name__)

DEFAULT_ZONE = "query.senderbase.org"

# SenderBase field keys
FIELD_ORG_NAME = "1"
FIELD_ORG_ID = "4"
FIELD_ORG_CATEGORY = "5"
FIELD_HOSTNAME = "20"
FIELD_DOMAIN_NAME = "21"
FIELD_CITY = "50"
FIELD_STATE = "51"
FIELD_COUNTRY = "53"
FIELD_LONGITUDE = "54"
FIELD_LATITUDE = "55"

# Organization name fragments that identify an email service provider
ESP_PATTERNS = (
    (("google", "gmail"), "Google Mail"),
    (("amazon", "aws"), "Amazon SES"),
    (("mailchimp",), "MailChimp"),
)

OUTLOOK_DOMAIN = "outlook.com"


@dataclass
class SenderInfo:
    """Reputation and location data for a sending address"""
    org_name: str = ""
    org_id: str = ""
    org_category: str = ""
    esp: str = ""
    host_name: str = ""
    domain_name: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    longitude: str = ""
    latitude: str = ""


def detect_esp(org_name: str) -> str:
    """Map a SenderBase organization name to a known ESP, or ''"""
    lowered = org_name.lower()
    for fragments, esp in ESP_PATTERNS:
        if any(fragment in lowered for fragment in fragments):
            return esp
    return ""


def join_txt_records(records: List[str]) -> str:
    """
    Reassemble a SenderBase body split across several TXT strings

    A single record is used as-is. Several records are ordered by their
    leading sequence digit and concatenated with the two-character
    "N-" prefix removed.
    """
    if len(records) == 1:
        return records[0]
    ordered = sorted(records, key=lambda r: r[:1])
    return "".join(r[2:] for r in ordered)


def parse_fields(body: str) -> Dict[str, str]:
    """Split a SenderBase body into its numbered fields"""
    fields = {}
    for item in body.split("|"):
        key, sep, value = item.partition("=")
        if sep:
            fields[key] = value
    return fields


class SenderBaseClient:
    """DNS client for SenderBase lookups; lookup() never raises"""

    def __init__(
        self,
        resolver: Optional[dns.resolver.Resolver] = None,
        zone: str = DEFAULT_ZONE
    ):
        self.resolver = resolver or build_resolver()
        self.zone = zone.strip(".")

    def lookup(self, ip: str) -> Optional[SenderInfo]:
        """
        Look up sender data for an address

        IPv4 addresses are queried against SenderBase. IPv6 addresses are not
        covered by SenderBase, so their PTR name is used instead.

        Returns:
            SenderInfo, or None when the address is invalid or nothing was found
        """
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            logger.warning(f"Invalid source address: {ip!r}")
            return None

        if address.version == 6:
            return self._lookup_ipv6(str(address))
        return self._lookup_ipv4(address)

    def _query_name(self, address: ipaddress.IPv4Address) -> str:
        return ".".join(reversed(str(address).split("."))) + "." + self.zone

    def _lookup_ipv4(self, address: ipaddress.IPv4Address) -> Optional[SenderInfo]:
        name = self._query_name(address)
        try:
            answers = self.resolver.resolve(name, "TXT")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            logger.debug(f"No SenderBase data for {address}")
            return None
        except dns.exception.DNSException as e:
            logger.warning(f"SenderBase lookup failed for {address}: {e}")
            record_enrichment_failure("senderbase")
            return None

        records = [
            b"".join(rdata.strings).decode("utf-8", errors="replace")
            for rdata in answers
        ]
        records = [r for r in records if r]
        if not records:
            return None

        fields = parse_fields(join_txt_records(records))
        info = SenderInfo(
            org_name=fields.get(FIELD_ORG_NAME, ""),
            org_id=fields.get(FIELD_ORG_ID, ""),
            org_category=fields.get(FIELD_ORG_CATEGORY, ""),
            host_name=fields.get(FIELD_HOSTNAME, "").lower(),
            domain_name=fields.get(FIELD_DOMAIN_NAME, "").lower(),
            city=fields.get(FIELD_CITY, ""),
            state=fields.get(FIELD_STATE, ""),
            country=fields.get(FIELD_COUNTRY, ""),
            longitude=fields.get(FIELD_LONGITUDE, ""),
            latitude=fields.get(FIELD_LATITUDE, ""),
        )
        if info.org_name:
            info.esp = detect_esp(info.org_name)
        return info

    def _lookup_ipv6(self, ip: str) -> Optional[SenderInfo]:
        info = SenderInfo()
        try:
            answers = self.resolver.resolve(dns.reversename.from_address(ip), "PTR")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return info
        except dns.exception.DNSException as e:
            logger.warning(f"PTR lookup failed for {ip}: {e}")
            record_enrichment_failure("senderbase")
            return info

        hostnames = [rdata.target.to_text() for rdata in answers]
        if hostnames:
            info.host_name = hostnames[0].rstrip(".")
            if info.host_name.endswith(OUTLOOK_DOMAIN):
                info.domain_name = OUTLOOK_DOMAIN
                info.esp = "Outlook"
        return info
