"""Integration tests for the report entry store"""
import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from dmarc_analyzer.models import DmarcReportEntry
from dmarc_analyzer.services.storage import ReportEntryStore

DAY = 86400
START = 1704067200  # 2024-01-01T00:00:00Z


@pytest.fixture
def store(db_session):
    return ReportEntryStore(db_session)


@pytest.mark.integration
class TestWrites:

    def test_insert_and_has_message(self, store, make_entry):
        entries = [make_entry(record_number=0), make_entry(record_number=1)]

        assert store.insert_entries(entries) == 2
        assert store.has_message("reports/msg-1")
        assert not store.has_message("reports/other")

    def test_insert_nothing(self, store):
        assert store.insert_entries([]) == 0

    def test_lists_round_trip(self, store, db_session, make_entry):
        store.insert_entries([make_entry(
            reverse_lookup=["b.example.com.", "a.example.com."],
            auth_dkim_domain=["example.com", "esp.example.org"],
            auth_dkim_result=["pass", "fail"],
        )])

        entry = db_session.query(DmarcReportEntry).one()
        assert entry.reverse_lookup == ["b.example.com.", "a.example.com."]
        assert entry.auth_dkim_domain == ["example.com", "esp.example.org"]
        assert entry.auth_dkim_result == ["pass", "fail"]
        assert entry.auth_spf_domain == []

    def test_duplicate_key_rejected(self, db_engine, make_entry):
        Session = sessionmaker(bind=db_engine)
        first, second = Session(), Session()
        try:
            ReportEntryStore(first).insert_entries([make_entry()])

            with pytest.raises(IntegrityError):
                ReportEntryStore(second).insert_entries([make_entry()])

            # The failed write leaves the session usable
            assert ReportEntryStore(second).has_message("reports/msg-1")
        finally:
            first.close()
            second.close()


@pytest.mark.integration
class TestSummaryQueries:

    def test_grouped_counts(self, store, make_entry):
        store.insert_entries([
            make_entry(message_id="m1", record_number=0, message_count=5),
            make_entry(message_id="m2", record_number=0, message_count=3),
            make_entry(message_id="m2", record_number=1, message_count=2, eval_dkim="fail"),
        ])

        rows = store.summary_rows("example.com", START, START + DAY)

        counts = sorted((r.eval_dkim, int(r.message_count)) for r in rows)
        assert counts == [("fail", 2), ("pass", 8)]

    def test_window_is_inclusive(self, store, make_entry):
        store.insert_entries([
            make_entry(message_id="m1", end_date=START),
            make_entry(message_id="m2", end_date=START + DAY),
            make_entry(message_id="m3", end_date=START + DAY + 1),
        ])

        rows = store.summary_rows("example.com", START, START + DAY)

        assert sum(int(r.message_count) for r in rows) == 2

    def test_other_domains_excluded(self, store, make_entry):
        store.insert_entries([
            make_entry(message_id="m1"),
            make_entry(message_id="m2", domain="example.org"),
        ])

        assert store.report_count("example.com", 0, START + DAY) == 1
        assert store.list_domains() == ["example.com", "example.org"]

    def test_report_count_distinct_messages(self, store, make_entry):
        store.insert_entries([
            make_entry(message_id="m1", record_number=0),
            make_entry(message_id="m1", record_number=1),
            make_entry(message_id="m2", record_number=0),
        ])

        assert store.report_count("example.com", 0, START + DAY) == 2

    def test_detail_rows_grouping(self, store, make_entry):
        store.insert_entries([
            make_entry(message_id="m1", message_count=4, header_from="a.example.com"),
            make_entry(message_id="m2", message_count=6, header_from="a.example.com"),
            make_entry(message_id="m3", message_count=1, header_from="b.example.com"),
        ])

        rows = store.detail_rows("example.com", 0, START + DAY)

        by_header = {r.header_from: int(r.message_count) for r in rows}
        assert by_header == {"a.example.com": 10, "b.example.com": 1}


@pytest.mark.integration
class TestDailyBuckets:

    def test_days_and_pass_fail(self, store, make_entry):
        store.insert_entries([
            make_entry(message_id="m1", end_date=START + 10, message_count=3),
            make_entry(message_id="m2", end_date=START + 2 * DAY + 5, message_count=4, eval_dkim="fail"),
            make_entry(
                message_id="m3", end_date=START + 2 * DAY + 7, message_count=2,
                eval_dkim="fail", eval_spf="fail",
            ),
        ])

        buckets = store.daily_buckets("example.com", START, START + 5 * DAY)

        assert [(int(b.day), int(b.passing), int(b.failing)) for b in buckets] == [
            (0, 3, 0),
            (2, 4, 2),
        ]

    def test_end_is_exclusive(self, store, make_entry):
        store.insert_entries([make_entry(message_id="m1", end_date=START + DAY)])

        assert store.daily_buckets("example.com", START, START + DAY) == []
