"""
Test Configuration and Fixtures

Uses a fresh in-memory SQLite database per test. The application engine is
pointed at SQLite too, before any application module is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")

import base64
import gzip
import io
import zipfile
from email.mime.application import MIMEApplication
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email import encoders
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dmarc_analyzer.database import Base
from dmarc_analyzer.models import DmarcReportEntry


FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(scope="function")
def db_engine():
    """Create an isolated in-memory database with all tables"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Create a database session bound to the test engine"""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def fixtures_dir():
    """Get fixtures directory path"""
    return FIXTURES_DIR


@pytest.fixture
def sample_xml():
    """Sample DMARC XML content with two records"""
    return (FIXTURES_DIR / "valid_report.xml").read_bytes()


@pytest.fixture
def sample_gzip(sample_xml):
    """Sample gzipped DMARC report"""
    return gzip.compress(sample_xml)


@pytest.fixture
def sample_zip(sample_xml):
    """Sample zipped DMARC report"""
    zip_buffer = io.BytesIO()
    with zipfile.ZipFile(zip_buffer, 'w', zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("report.xml", sample_xml)
    return zip_buffer.getvalue()


def attachment_part(content: bytes, content_type: str, filename: str = None) -> MIMEBase:
    """Base64-encoded MIME part with an arbitrary content type"""
    maintype, subtype = content_type.split("/", 1)
    part = MIMEBase(maintype, subtype)
    part.set_payload(content)
    encoders.encode_base64(part)
    if filename:
        part.add_header("Content-Disposition", "attachment", filename=filename)
    return part


def multipart_email(*parts) -> bytes:
    """Multipart report email built from the given parts, in order"""
    msg = MIMEMultipart()
    msg["From"] = "noreply-dmarc-support@google.com"
    msg["To"] = "dmarc@example.com"
    msg["Subject"] = "Report domain: example.com Submitter: google.com"
    for part in parts:
        msg.attach(part)
    return msg.as_bytes()


def single_part_email(content: bytes, content_type: str) -> bytes:
    """Non-multipart email whose whole body is the base64-encoded report"""
    maintype, subtype = content_type.split("/", 1)
    msg = MIMEBase(maintype, subtype)
    msg["From"] = "dmarc@yahoo.com"
    msg["To"] = "dmarc@example.com"
    msg["Subject"] = "Report domain: example.com"
    msg.set_payload(content)
    encoders.encode_base64(msg)
    return msg.as_bytes()


@pytest.fixture
def make_email():
    """Factory fixtures for building report emails"""
    class _Factory:
        part = staticmethod(attachment_part)
        multipart = staticmethod(multipart_email)
        single = staticmethod(single_part_email)

        @staticmethod
        def text(body: str = "This is an aggregate report.") -> MIMEText:
            return MIMEText(body)

        @staticmethod
        def application(content: bytes, subtype: str, filename: str = None) -> MIMEApplication:
            part = MIMEApplication(content, _subtype=subtype)
            if filename:
                part.add_header("Content-Disposition", "attachment", filename=filename)
            return part

        @staticmethod
        def double_encoded(content: bytes, content_type: str, filename: str = None) -> MIMEBase:
            """Part whose payload is base64 text that is base64-encoded again"""
            return attachment_part(base64.b64encode(content), content_type, filename)

    return _Factory()


@pytest.fixture
def make_entry():
    """Factory for DmarcReportEntry rows with sensible defaults"""
    def _make(**overrides):
        values = dict(
            message_id="reports/msg-1",
            record_number=0,
            report_org_name="google.com",
            domain="example.com",
            policy="none",
            subdomain_policy="none",
            align_dkim="r",
            align_spf="r",
            pct=100,
            start_date=1704067200,
            end_date=1704153599,
            source_ip="192.0.2.1",
            reverse_lookup=[],
            esp="",
            domain_name="",
            host_name="",
            country="",
            message_count=1,
            disposition="none",
            eval_dkim="pass",
            eval_spf="pass",
            header_from="example.com",
        )
        values.update(overrides)
        return DmarcReportEntry(**values)

    return _make
