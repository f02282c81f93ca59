"""Unit tests for reverse DNS lookups"""
from types import SimpleNamespace
from unittest.mock import MagicMock

import dns.exception
import dns.resolver
import dns.reversename
import pytest

from dmarc_analyzer.metrics import ENRICHMENT_FAILURES
from dmarc_analyzer.services.reverse_dns import ReverseDNSResolver, build_resolver


def ptr_answer(*names):
    return [SimpleNamespace(target=SimpleNamespace(to_text=lambda n=n: n)) for n in names]


@pytest.mark.unit
class TestReverseDNSResolver:

    def test_names_keep_trailing_dot_and_order(self):
        resolver = MagicMock()
        resolver.resolve.return_value = ptr_answer("b.example.com.", "a.example.com.")

        names = ReverseDNSResolver(resolver).lookup("192.0.2.1")

        assert names == ["b.example.com.", "a.example.com."]
        resolver.resolve.assert_called_once_with(
            dns.reversename.from_address("192.0.2.1"), "PTR"
        )

    def test_nxdomain_is_empty(self):
        resolver = MagicMock()
        resolver.resolve.side_effect = dns.resolver.NXDOMAIN()
        assert ReverseDNSResolver(resolver).lookup("192.0.2.1") == []

    def test_failure_is_empty_and_counted(self):
        resolver = MagicMock()
        resolver.resolve.side_effect = dns.exception.Timeout()
        before = ENRICHMENT_FAILURES.labels(source="reverse_dns")._value.get()

        assert ReverseDNSResolver(resolver).lookup("2001:db8::1") == []
        assert ENRICHMENT_FAILURES.labels(source="reverse_dns")._value.get() == before + 1

    def test_invalid_address(self):
        resolver = MagicMock()
        assert ReverseDNSResolver(resolver).lookup("999.1.1") == []
        resolver.resolve.assert_not_called()


@pytest.mark.unit
def test_build_resolver_settings():
    resolver = build_resolver(timeout=1.5, nameservers=["192.0.2.53"])
    assert len(resolver.nameservers) == 1
    assert resolver.timeout == 1.5
    assert resolver.lifetime == 1.5
