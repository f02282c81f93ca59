"""Detail rows behind one summary source"""
import logging
from typing import Any, Dict, List, Optional

from dmarc_analyzer.services.source_classifier import SourceClassifier
from dmarc_analyzer.services.storage import DETAIL_COLUMNS, ReportEntryStore

logger = logging.getLogger(__name__)

DETAIL_ROW_MAX = 2500

_DETAIL_FIELDS = tuple(column.key for column in DETAIL_COLUMNS)


class DetailQuery:
    """Grouped rows whose classified source matches a summary label"""

    def __init__(self, store: ReportEntryStore, classifier: SourceClassifier):
        self.store = store
        self.classifier = classifier

    def rows(
        self,
        domain: str,
        start: int,
        end: int,
        source: str,
        source_type: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Rows labeled `source` (and of kind `source_type` when given)

        Returns dicts with the detail columns plus count, largest count first,
        at most DETAIL_ROW_MAX of them.
        """
        matched = []
        for row in self.store.detail_rows(domain, start, end):
            label, kind = self.classifier.classify(row)
            if label != source:
                continue
            if source_type and kind != source_type:
                continue
            detail = {name: getattr(row, name) for name in _DETAIL_FIELDS}
            detail["count"] = int(row.message_count or 0)
            matched.append(detail)

        matched.sort(key=lambda d: d["count"], reverse=True)
        return matched[:DETAIL_ROW_MAX]
