"""Reverse DNS lookups for report source addresses"""
import logging
from typing import List, Optional, Sequence

import dns.exception
import dns.resolver
import dns.reversename

from dmarc_analyzer.metrics import record_enrichment_failure

logger = logging.getLogger(__name__)


def build_resolver(
    timeout: float = 2.0,
    nameservers: Optional[Sequence[str]] = None
) -> dns.resolver.Resolver:
    """Create a dnspython resolver with the given timeout and nameservers"""
    resolver = dns.resolver.Resolver()
    if nameservers:
        resolver.nameservers = list(nameservers)
    resolver.timeout = timeout
    resolver.lifetime = timeout
    return resolver


class ReverseDNSResolver:
    """Resolves the PTR names of an IP address"""

    def __init__(self, resolver: Optional[dns.resolver.Resolver] = None):
        self.resolver = resolver or build_resolver()

    def lookup(self, ip: str) -> List[str]:
        """
        Get the PTR names for an address

        Names keep their trailing dot and the order returned by the resolver.
        Any failure yields an empty list.
        """
        try:
            address = dns.reversename.from_address(ip)
        except (dns.exception.SyntaxError, ValueError):
            logger.debug(f"Not an IP address, skipping reverse lookup: {ip!r}")
            return []

        try:
            answers = self.resolver.resolve(address, "PTR")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except dns.exception.DNSException as e:
            logger.debug(f"Reverse lookup failed for {ip}: {e}")
            record_enrichment_failure("reverse_dns")
            return []

        return [rdata.target.to_text() for rdata in answers]
