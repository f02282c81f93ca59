from sqlalchemy import Column, Integer, BigInteger, String, DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime, timezone
from dmarc_analyzer.database import Base

# Ordered string lists. JSONB on PostgreSQL so the columns can appear in GROUP BY.
StringList = JSON().with_variant(JSONB(), "postgresql")


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class DmarcReportEntry(Base):
    """One enriched DMARC record, keyed by (message_id, record_number)"""
    __tablename__ = "dmarc_report_entries"

    # Identity: the S3 key of the source email plus the record's position
    message_id = Column(String(1024), primary_key=True)
    record_number = Column(Integer, primary_key=True)

    # Report-level fields, copied onto every record
    report_org_name = Column(String(255), nullable=False, default="")
    domain = Column(String(255), nullable=False, default="", index=True)
    policy = Column(String(20), nullable=False, default="")
    subdomain_policy = Column(String(20), nullable=False, default="")
    align_dkim = Column(String(20), nullable=False, default="")
    align_spf = Column(String(20), nullable=False, default="")
    pct = Column(Integer, nullable=False, default=0)
    start_date = Column(BigInteger, nullable=False, default=0)  # Epoch seconds
    end_date = Column(BigInteger, nullable=False, default=0, index=True)  # Epoch seconds

    # Source information
    source_ip = Column(String(45), nullable=False, default="", index=True)  # IPv4 or IPv6
    reverse_lookup = Column(StringList, nullable=False, default=list)

    # SenderBase enrichment (empty when the lookup fails)
    esp = Column(String(255), nullable=False, default="")
    org_name = Column(String(255), nullable=False, default="")
    org_id = Column(String(64), nullable=False, default="")
    host_name = Column(String(255), nullable=False, default="")
    domain_name = Column(String(255), nullable=False, default="")
    host_name_matches_ip = Column(String(16), nullable=False, default="")
    city = Column(String(255), nullable=False, default="")
    state = Column(String(255), nullable=False, default="")
    country = Column(String(64), nullable=False, default="")
    longitude = Column(String(32), nullable=False, default="")
    latitude = Column(String(32), nullable=False, default="")

    # Policy evaluated
    message_count = Column(BigInteger, nullable=False, default=0)
    disposition = Column(String(20), nullable=False, default="")  # none, quarantine, reject
    eval_dkim = Column(String(20), nullable=False, default="")     # pass, fail
    eval_spf = Column(String(20), nullable=False, default="")      # pass, fail

    # Identifiers
    header_from = Column(String(255), nullable=False, default="")
    envelope_from = Column(String(255), nullable=False, default="")
    envelope_to = Column(String(255), nullable=False, default="")

    # Auth results as parallel lists; index i of each list belongs to the same result
    auth_dkim_domain = Column(StringList, nullable=False, default=list)
    auth_dkim_selector = Column(StringList, nullable=False, default=list)
    auth_dkim_result = Column(StringList, nullable=False, default=list)
    auth_spf_domain = Column(StringList, nullable=False, default=list)
    auth_spf_scope = Column(StringList, nullable=False, default=list)
    auth_spf_result = Column(StringList, nullable=False, default=list)

    # Policy override reasons, parallel lists
    po_reason = Column(StringList, nullable=False, default=list)
    po_comment = Column(StringList, nullable=False, default=list)

    last_update = Column(DateTime, default=_utcnow, nullable=False)

    def __repr__(self):
        return (
            f"<DmarcReportEntry(message_id={self.message_id}, "
            f"record_number={self.record_number}, source_ip={self.source_ip})>"
        )
