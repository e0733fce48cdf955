"""
What the registry client returns when the registry cannot be reached.

``EmptyFallback`` is the production default: a failed call simply yields no
records. ``SyntheticFallback`` returns canned records so development setups
without registry access still produce alerts; it is selected explicitly
through ``REGISTRY_FALLBACK=synthetic``.
"""

from typing import List, Optional, Protocol

from brand_monitor.config import Settings
from brand_monitor.models import TrademarkRecord


class FallbackProvider(Protocol):
    def search_results(self, keyword: str) -> List[TrademarkRecord]:
        ...

    def details(self, serial_number: str) -> Optional[TrademarkRecord]:
        ...


class EmptyFallback:
    """No records on failure."""

    def search_results(self, keyword: str) -> List[TrademarkRecord]:
        return []

    def details(self, serial_number: str) -> Optional[TrademarkRecord]:
        return None


class SyntheticFallback:
    """Canned records shaped like real registry results."""

    def search_results(self, keyword: str) -> List[TrademarkRecord]:
        return [
            TrademarkRecord(
                serial_number="97000001",
                mark_description=f"{keyword.upper()} TECH",
                applicant_name="Tech Innovations LLC",
                application_date="2024-01-15",
                status="1A",
                status_date="2024-01-15",
                mark_type="TRADEMARK",
                goods_and_services="Computer software; Technology services",
                drawing_code="4",
            ),
            TrademarkRecord(
                serial_number="97000002",
                registration_number="7123456",
                mark_description=f"{keyword[:1].upper()}{keyword[1:].lower()}Plus",
                applicant_name="Innovation Corp",
                application_date="2023-06-10",
                registration_date="2024-02-20",
                status="6",
                status_date="2024-02-20",
                mark_type="TRADEMARK",
                goods_and_services="Business services; Consulting",
                drawing_code="4",
            ),
        ]

    def details(self, serial_number: str) -> Optional[TrademarkRecord]:
        return TrademarkRecord(
            serial_number=serial_number,
            mark_description="SAMPLE TRADEMARK",
            applicant_name="Sample Company LLC",
            application_date="2024-01-15",
            status="1A",
            status_description="Use Claimed In Application",
            status_date="2024-01-15",
            mark_type="TRADEMARK",
            goods_and_services="Sample goods and services",
        )


def build_fallback(settings: Settings) -> FallbackProvider:
    if settings.registry_fallback == "synthetic":
        return SyntheticFallback()
    return EmptyFallback()
