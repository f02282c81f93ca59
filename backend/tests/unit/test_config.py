"""Unit tests for settings"""
import pytest

from dmarc_analyzer.config import Settings


@pytest.mark.unit
class TestSettings:

    def test_csv_lists(self):
        settings = Settings(dns_nameservers="192.0.2.53, 198.51.100.53,", cors_origins="https://a.example")

        assert settings.dns_nameserver_list == ["192.0.2.53", "198.51.100.53"]
        assert settings.cors_origin_list == ["https://a.example"]

    def test_empty_lists(self):
        settings = Settings(dns_nameservers="", cors_origins="")

        assert settings.dns_nameserver_list == []
        assert settings.cors_origin_list == []

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("SQS_WAIT_SECONDS", "5")
        monkeypatch.setenv("SENDERBASE_ZONE", "sb.example.test")

        settings = Settings()

        assert settings.sqs_wait_seconds == 5
        assert settings.senderbase_zone == "sb.example.test"
