"""
Pluggable sources for the domain, marketplace and social media detectors.

A scan source answers ``scan(keyword, target)`` with raw records (plain
dicts). ``target`` is a TLD such as ``".com"`` for domains and a platform
name for marketplaces and social media. The synthetic implementations here
stand in for vendor integrations (WHOIS feeds, marketplace and social APIs);
they are deterministic for a given clock so checks can be tested.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Protocol

from brand_monitor.models import utcnow

RawItem = Dict[str, Any]
Clock = Callable[[], datetime]


class ScanSource(Protocol):
    async def scan(self, keyword: str, target: str) -> List[RawItem]:
        """Return the raw records found for ``keyword`` on ``target``."""
        ...


def _slug(keyword: str) -> str:
    return "".join(ch for ch in keyword.lower() if ch.isalnum() or ch == "-")


class SyntheticDomainSource:
    """Recently registered domains built around the keyword."""

    PATTERNS = ("{kw}shop", "{kw}-store", "{kw}plus", "buy{kw}", "{kw}online")

    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock

    async def scan(self, keyword: str, target: str) -> List[RawItem]:
        now = self._clock()
        slug = _slug(keyword)
        extension = target if target.startswith(".") else f".{target}"
        return [
            {
                "name": f"{pattern.format(kw=slug)}{extension}",
                "registration_date": (now - timedelta(days=index + 1)).isoformat(),
                "registrant": "Private Registration",
                "status": "active",
            }
            for index, pattern in enumerate(self.PATTERNS)
        ]


class SyntheticMarketplaceSource:
    """Two listings per platform that mention the keyword."""

    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock

    async def scan(self, keyword: str, target: str) -> List[RawItem]:
        detected_at = self._clock().isoformat()
        slug = _slug(keyword)
        return [
            {
                "id": f"{target}-{slug}-1",
                "title": f"{keyword} Compatible Accessories",
                "description": f"High quality accessories for {keyword} products",
                "price": "$29.99",
                "seller": "TechAccessories123",
                "platform": target,
                "url": f"https://{target}.com/listing/123",
                "detected_at": detected_at,
            },
            {
                "id": f"{target}-{slug}-2",
                "title": f"Genuine {keyword} Replacement Parts",
                "description": f"Original {keyword} parts and components",
                "price": "$49.99",
                "seller": "PartsSupplier",
                "platform": target,
                "url": f"https://{target}.com/listing/456",
                "detected_at": detected_at,
            },
        ]


class SyntheticSocialSource:
    """One positive and one negative post per platform."""

    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock

    async def scan(self, keyword: str, target: str) -> List[RawItem]:
        detected_at = self._clock().isoformat()
        slug = _slug(keyword)
        return [
            {
                "id": f"{target}-{slug}-1",
                "content": f"Just got my new {keyword} product and loving it! #{slug} #tech",
                "author": "@happycustomer",
                "platform": target,
                "type": "post",
                "sentiment": "positive",
                "engagement": {"likes": 45, "shares": 12, "comments": 8},
                "url": f"https://{target}.com/post/123",
                "detected_at": detected_at,
            },
            {
                "id": f"{target}-{slug}-2",
                "content": f"Has anyone had issues with {keyword}? Mine stopped working after a week...",
                "author": "@techreviewer",
                "platform": target,
                "type": "post",
                "sentiment": "negative",
                "engagement": {"likes": 23, "shares": 5, "comments": 15},
                "url": f"https://{target}.com/post/456",
                "detected_at": detected_at,
            },
        ]
