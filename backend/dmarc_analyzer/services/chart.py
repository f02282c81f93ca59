"""
Daily pass/fail chart series

The window is cut into whole days anchored at the start time. Days without
traffic are filled with zeros so every day in the window has one point,
up to the normalized end.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Tuple

from dmarc_analyzer.services.storage import SECONDS_PER_DAY, ReportEntryStore

logger = logging.getLogger(__name__)

# (timestamp in milliseconds, value)
ChartPoint = Tuple[int, int]


@dataclass
class DmarcChart:
    full: List[ChartPoint] = field(default_factory=list)
    passed: List[ChartPoint] = field(default_factory=list)
    failed: List[ChartPoint] = field(default_factory=list)

    def add(self, timestamp: int, passing: int, failing: int) -> None:
        self.full.append((timestamp, passing + failing))
        self.passed.append((timestamp, passing))
        self.failed.append((timestamp, failing))


def normalize_end(start: int, end: int) -> int:
    """Clamp end down to a whole number of days after start"""
    days = (end - start) // SECONDS_PER_DAY
    return start + days * SECONDS_PER_DAY


def day_timestamp(start: int, day: int) -> int:
    """Millisecond timestamp of a day index"""
    return (start + day * SECONDS_PER_DAY) * 1000


class ChartBucketer:
    """Builds daily series for a domain and time window"""

    def __init__(self, store: ReportEntryStore):
        self.store = store

    def chart(self, domain: str, start: int, end: int) -> DmarcChart:
        chart = DmarcChart()
        end = normalize_end(start, end)
        if end <= start:
            return chart

        buckets = self.store.daily_buckets(domain, start, end)
        if not buckets:
            logger.debug(f"No chart data for {domain}")
            return chart

        last_day = -1
        for bucket in buckets:
            day = int(bucket.day)
            for missing in range(last_day + 1, day):
                chart.add(day_timestamp(start, missing), 0, 0)
            chart.add(day_timestamp(start, day), int(bucket.passing or 0), int(bucket.failing or 0))
            last_day = day

        day = last_day + 1
        while start + day * SECONDS_PER_DAY < end:
            chart.add(day_timestamp(start, day), 0, 0)
            day += 1

        return chart
