"""Unit tests for source labeling"""
from types import SimpleNamespace

import pytest

from dmarc_analyzer.services.source_classifier import (
    KIND_DOMAIN_NAME,
    KIND_ESP,
    KIND_HOST_NAME,
    KIND_IP,
    KIND_REVERSE_LOOKUP,
    SourceClassifier,
    SourceLabel,
)
from dmarc_analyzer.utils.domain import OrgDomainError


def make_row(**overrides):
    values = dict(
        source_ip="192.0.2.1",
        esp="",
        domain_name="",
        host_name="",
        reverse_lookup=[],
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def classifier():
    return SourceClassifier()


@pytest.mark.unit
class TestSourcePrecedence:
    """ESP > DomainName > HostName > ReverseLookup > IP"""

    def test_esp_wins(self, classifier):
        row = make_row(
            esp="Google Mail",
            domain_name="google.com",
            host_name="mail-io1.google.com",
            reverse_lookup=["mail-io1.google.com."],
        )
        assert classifier.classify(row) == SourceLabel("Google Mail", KIND_ESP)

    def test_domain_name(self, classifier):
        row = make_row(domain_name="sendgrid.net", host_name="o1.sendgrid.net")
        assert classifier.classify(row) == SourceLabel("sendgrid.net", KIND_DOMAIN_NAME)

    def test_host_name(self, classifier):
        row = make_row(host_name="mx.example.org", reverse_lookup=["mx.example.org."])
        assert classifier.classify(row) == SourceLabel("mx.example.org", KIND_HOST_NAME)

    def test_reverse_lookup_org_domain(self, classifier):
        row = make_row(reverse_lookup=["mail.outbound.example.co.uk.", "other.example.net."])
        assert classifier.classify(row) == SourceLabel("example.co.uk", KIND_REVERSE_LOOKUP)

    def test_ip_fallback(self, classifier):
        assert classifier.classify(make_row()) == SourceLabel("192.0.2.1", KIND_IP)

    def test_unresolvable_ptr_falls_back_to_ip(self, classifier):
        row = make_row(reverse_lookup=["host.internal-not-a-tld."])
        assert classifier.classify(row) == SourceLabel("192.0.2.1", KIND_IP)

    def test_empty_first_ptr_falls_back_to_ip(self, classifier):
        row = make_row(reverse_lookup=[""])
        assert classifier.classify(row).kind == KIND_IP

    def test_none_reverse_lookup(self, classifier):
        row = make_row(reverse_lookup=None)
        assert classifier.classify(row).kind == KIND_IP


@pytest.mark.unit
class TestInjectedOrgDomain:

    def test_custom_org_domain_function(self):
        classifier = SourceClassifier(org_domain=lambda name: "custom.test.")
        row = make_row(reverse_lookup=["anything."])
        assert classifier.classify(row) == SourceLabel("custom.test", KIND_REVERSE_LOOKUP)

    def test_org_domain_error_handled(self):
        def failing(name):
            raise OrgDomainError("bad organizational domain")

        classifier = SourceClassifier(org_domain=failing)
        row = make_row(reverse_lookup=["anything."])
        assert classifier.classify(row) == SourceLabel("192.0.2.1", KIND_IP)

    def test_classifies_model_entries(self, make_entry):
        entry = make_entry(esp="", domain_name="", host_name="", reverse_lookup=["a.mail.example.com."])
        assert SourceClassifier().classify(entry) == SourceLabel("example.com", KIND_REVERSE_LOOKUP)


@pytest.mark.unit
@pytest.mark.parametrize("fields,expected", [
    (dict(esp="MailChimp", domain_name="x.com"), SourceLabel("MailChimp", KIND_ESP)),
    (dict(esp="", domain_name="x.com"), SourceLabel("x.com", KIND_DOMAIN_NAME)),
    (dict(reverse_lookup=["a.mail.example.com."]), SourceLabel("example.com", KIND_REVERSE_LOOKUP)),
    (dict(source_ip="1.2.3.4"), SourceLabel("1.2.3.4", KIND_IP)),
])
def test_classification_table(fields, expected):
    assert SourceClassifier().classify(make_row(**fields)) == expected
