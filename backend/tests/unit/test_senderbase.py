"""Unit tests for SenderBase enrichment"""
from types import SimpleNamespace
from unittest.mock import MagicMock

import dns.exception
import dns.resolver
import pytest

from dmarc_analyzer.metrics import ENRICHMENT_FAILURES
from dmarc_analyzer.services.senderbase import (
    SenderBaseClient,
    SenderInfo,
    detect_esp,
    join_txt_records,
    parse_fields,
)

GOOGLE_BODY = (
    "0-0=1|1=Google LLC|2=3.0|3=3.0|4=649|5=Internet Services|"
    "20=mail-sor-f41.google.com|21=google.com|50=Mountain View|51=CA|"
    "53=US|54=-122.0574|55=37.4192"
)


def txt_answer(*strings):
    return [SimpleNamespace(strings=(s.encode(),)) for s in strings]


def ptr_answer(*names):
    return [SimpleNamespace(target=SimpleNamespace(to_text=lambda n=n: n)) for n in names]


@pytest.fixture
def resolver():
    return MagicMock()


@pytest.fixture
def client(resolver):
    return SenderBaseClient(resolver=resolver, zone="query.senderbase.org")


@pytest.mark.unit
class TestHelpers:

    @pytest.mark.parametrize("org_name,expected", [
        ("Google LLC", "Google Mail"),
        ("GMAIL Infrastructure", "Google Mail"),
        ("Amazon.com, Inc.", "Amazon SES"),
        ("AWS Outbound", "Amazon SES"),
        ("The Rocket Science Group (MailChimp)", "MailChimp"),
        ("Example Hosting", ""),
    ])
    def test_detect_esp(self, org_name, expected):
        assert detect_esp(org_name) == expected

    def test_join_single_record(self):
        assert join_txt_records(["0-0=1|1=Org"]) == "0-0=1|1=Org"

    def test_join_split_records_by_sequence(self):
        records = ["1-|20=host.example.com", "0-0=1|1=Example Org"]
        assert join_txt_records(records) == "0=1|1=Example Org|20=host.example.com"

    def test_parse_fields(self):
        fields = parse_fields("1=Example|20=mx.example.com|junk|53=US")
        assert fields == {"1": "Example", "20": "mx.example.com", "53": "US"}


@pytest.mark.unit
class TestIPv4Lookup:

    def test_query_name_is_reversed(self, client, resolver):
        resolver.resolve.return_value = txt_answer(GOOGLE_BODY)
        client.lookup("209.85.220.41")
        resolver.resolve.assert_called_once_with("41.220.85.209.query.senderbase.org", "TXT")

    def test_fields_mapped(self, client, resolver):
        resolver.resolve.return_value = txt_answer(GOOGLE_BODY)
        info = client.lookup("209.85.220.41")

        assert info.org_name == "Google LLC"
        assert info.org_id == "649"
        assert info.org_category == "Internet Services"
        assert info.esp == "Google Mail"
        assert info.host_name == "mail-sor-f41.google.com"
        assert info.domain_name == "google.com"
        assert info.city == "Mountain View"
        assert info.state == "CA"
        assert info.country == "US"
        assert info.longitude == "-122.0574"
        assert info.latitude == "37.4192"

    def test_names_lowercased(self, client, resolver):
        resolver.resolve.return_value = txt_answer("1=Example|20=MX.Example.COM|21=Example.COM")
        info = client.lookup("192.0.2.1")
        assert info.host_name == "mx.example.com"
        assert info.domain_name == "example.com"

    def test_no_org_name_means_no_esp(self, client, resolver):
        resolver.resolve.return_value = txt_answer("20=mx.example.com")
        info = client.lookup("192.0.2.1")
        assert info.org_name == ""
        assert info.esp == ""

    def test_nxdomain(self, client, resolver):
        resolver.resolve.side_effect = dns.resolver.NXDOMAIN()
        assert client.lookup("192.0.2.1") is None

    def test_timeout_recorded(self, client, resolver):
        resolver.resolve.side_effect = dns.exception.Timeout()
        before = ENRICHMENT_FAILURES.labels(source="senderbase")._value.get()

        assert client.lookup("192.0.2.1") is None
        assert ENRICHMENT_FAILURES.labels(source="senderbase")._value.get() == before + 1

    def test_invalid_address(self, client, resolver):
        assert client.lookup("not-an-ip") is None
        resolver.resolve.assert_not_called()


@pytest.mark.unit
class TestIPv6Lookup:

    def test_outlook_host(self, client, resolver):
        resolver.resolve.return_value = ptr_answer("mail-db3eur04on0701.outbound.protection.outlook.com.")
        info = client.lookup("2a01:111:f400:fe0c::701")

        assert info.host_name == "mail-db3eur04on0701.outbound.protection.outlook.com"
        assert info.domain_name == "outlook.com"
        assert info.esp == "Outlook"

    def test_other_host(self, client, resolver):
        resolver.resolve.return_value = ptr_answer("mx.example.net.")
        info = client.lookup("2001:db8::1")

        assert info.host_name == "mx.example.net"
        assert info.domain_name == ""
        assert info.esp == ""

    def test_no_ptr_returns_empty_info(self, client, resolver):
        resolver.resolve.side_effect = dns.resolver.NoAnswer()
        assert client.lookup("2001:db8::1") == SenderInfo()

    def test_ptr_query_type(self, client, resolver):
        resolver.resolve.return_value = []
        client.lookup("2001:db8::1")
        args, _ = resolver.resolve.call_args
        assert args[1] == "PTR"
