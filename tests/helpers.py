"""Test doubles and payload builders shared by the test modules."""

from datetime import datetime, timezone
from typing import Any, Dict, List

from brand_monitor.models import TrademarkRecord

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeRegistry:
    """Stands in for RegistryClient in detector and scheduler tests."""

    def __init__(self) -> None:
        self.new_applications: List[TrademarkRecord] = []
        self.similar_marks: List[TrademarkRecord] = []
        self.calls: List[tuple] = []

    async def monitor_new_applications(self, keywords, since):
        self.calls.append(("monitor_new_applications", list(keywords), since))
        return list(self.new_applications)

    async def find_similar_marks(self, target_mark, include_variations=True):
        self.calls.append(("find_similar_marks", target_mark, include_variations))
        return list(self.similar_marks)


class StaticSource:
    """Scan source returning the same raw items for every call."""

    def __init__(self, items: List[Dict[str, Any]]) -> None:
        self.items = items
        self.calls: List[tuple] = []

    async def scan(self, keyword: str, target: str) -> List[Dict[str, Any]]:
        self.calls.append((keyword, target))
        return [dict(item) for item in self.items]


def search_payload(*docs: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap documents the way the registry search endpoint does."""
    return {"response": {"numFound": len(docs), "docs": [
        {key: [value] for key, value in doc.items()} for doc in docs
    ]}}
