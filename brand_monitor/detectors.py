"""
Conflict detectors, one per monitoring surface.

Each detector turns a MonitoringItem into a DetectionResult: the raw records
that matched and one ConflictAlert per match. Detectors read from the
registry client or a scan source and score what they find with the
similarity engine; they never write to the store.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from brand_monitor.config import Settings
from brand_monitor.errors import RegistryError, UnsupportedTypeError, ValidationError
from brand_monitor.frequency import schedule_next
from brand_monitor.logger import warning
from brand_monitor.models import (
    AlertType,
    ConflictAlert,
    DetectionResult,
    MonitoringItem,
    MonitoringType,
    Severity,
    TrademarkRecord,
)
from brand_monitor.registry import RegistryClient
from brand_monitor.scan_sources import (
    RawItem,
    ScanSource,
    SyntheticDomainSource,
    SyntheticMarketplaceSource,
    SyntheticSocialSource,
)
from brand_monitor.similarity import (
    HIGH_SIMILARITY,
    MEDIUM_SIMILARITY,
    severity_for,
    similarity,
)

_TLD = re.compile(r"\.[a-z]+$")

# Typo-squats look like the brand without being it
TYPOSQUAT_MIN = 0.7
TYPOSQUAT_MAX = 0.95

ScanOutput = Tuple[List[Dict[str, Any]], List[ConflictAlert]]


class ConflictDetector(ABC):
    """
    Contract shared by every detector.

    Subclasses implement ``_scan`` for their surface. Source failures
    (TransportError/ParseError) are absorbed per call and logged; an item
    without keywords raises ValidationError.
    """

    monitoring_type: MonitoringType

    async def detect(self, item: MonitoringItem, now: datetime) -> DetectionResult:
        keywords = item.usable_keywords()
        if not keywords:
            raise ValidationError(f"Monitoring item '{item.name}' has no keywords")

        results, alerts = await self._scan(item, keywords, now)
        return DetectionResult(
            success=True,
            type=self.monitoring_type,
            results=results,
            alerts=alerts,
            checked_at=now,
            next_check=schedule_next(item.frequency, now),
        )

    @abstractmethod
    async def _scan(
        self, item: MonitoringItem, keywords: List[str], now: datetime
    ) -> ScanOutput:
        ...

    @staticmethod
    def _alert(
        item: MonitoringItem,
        now: datetime,
        *,
        alert_type: AlertType,
        source_key: str,
        keyword: str,
        title: str,
        description: str,
        data: Dict[str, Any],
        severity: Severity,
        action_required: str,
        platform: Optional[str] = None,
    ) -> ConflictAlert:
        return ConflictAlert(
            monitoring_item_id=item.id,
            monitoring_item_name=item.name,
            type=alert_type,
            keyword=keyword,
            platform=platform,
            title=title,
            description=description,
            data=data,
            severity=severity,
            detected_at=now,
            action_required=action_required,
            detection_key=ConflictAlert.make_detection_key(alert_type, source_key, keyword),
        )


class _ScanSourceDetector(ConflictDetector):
    """Detectors fed by a ScanSource rather than the registry."""

    def __init__(self, source: ScanSource) -> None:
        self.source = source

    async def _safe_scan(self, keyword: str, target: str) -> List[RawItem]:
        try:
            return await self.source.scan(keyword, target)
        except RegistryError as e:
            warning(
                "Scan source failed, continuing without its results",
                monitoring_type=self.monitoring_type,
                keyword=keyword,
                target=target,
                error_type=type(e).__name__,
                error=str(e),
            )
            return []


def trademark_action(score: float) -> str:
    if score > HIGH_SIMILARITY:
        return "Consider filing opposition - high similarity detected"
    if score > MEDIUM_SIMILARITY:
        return "Review application details and assess conflict potential"
    return "Monitor for status changes"


def similar_mark_action(score: float) -> str:
    if score > HIGH_SIMILARITY:
        return "High similarity - consider legal review"
    if score > 0.8:
        return "Moderate similarity - monitor closely"
    return "Low risk - periodic monitoring sufficient"


class TrademarkDetector(ConflictDetector):
    """New applications and look-alike marks in the trademark registry."""

    monitoring_type = "trademark"

    def __init__(self, registry: RegistryClient, lookback_days: int = 30) -> None:
        self.registry = registry
        self.lookback = timedelta(days=lookback_days)

    async def _scan(
        self, item: MonitoringItem, keywords: List[str], now: datetime
    ) -> ScanOutput:
        since = item.last_checked or (now - self.lookback)
        results: List[Dict[str, Any]] = []
        alerts: List[ConflictAlert] = []

        for keyword in keywords:
            new_applications = await self.registry.monitor_new_applications([keyword], since)
            similar_marks = await self.registry.find_similar_marks(
                keyword, include_variations=item.include_variations
            )

            for record in new_applications:
                score = similarity(keyword, record.mark_description)
                data = record.model_dump(mode="json")
                alerts.append(self._alert(
                    item, now,
                    alert_type="new_application",
                    source_key=record.serial_number or record.mark_description,
                    keyword=keyword,
                    title=f"New Trademark Application: {record.mark_description}",
                    description=f"New application filed by {record.applicant_name or 'unknown applicant'}",
                    data=data,
                    severity=severity_for(score),
                    action_required=trademark_action(score),
                ))
                results.append(data)

            for record in similar_marks:
                score = self._score(keyword, record)
                if score <= MEDIUM_SIMILARITY:
                    continue
                data = record.model_dump(mode="json")
                alerts.append(self._alert(
                    item, now,
                    alert_type="similar_mark",
                    source_key=record.serial_number or record.mark_description,
                    keyword=keyword,
                    title=f"Similar Trademark Found: {record.mark_description}",
                    description=f"{round(score * 100)}% similar to your brand",
                    data=data,
                    severity="high" if score > HIGH_SIMILARITY else "medium",
                    action_required=similar_mark_action(score),
                ))
                results.append(data)

        return results, alerts

    @staticmethod
    def _score(keyword: str, record: TrademarkRecord) -> float:
        # Records from find_similar_marks carry the score against the same keyword
        if record.similarity is not None:
            return record.similarity
        return similarity(keyword, record.mark_description)


def strip_tld(domain_name: str) -> str:
    return _TLD.sub("", domain_name.lower())


def is_typosquatting(keyword: str, domain_name: str) -> bool:
    score = similarity(keyword.lower(), strip_tld(domain_name))
    return TYPOSQUAT_MIN < score < TYPOSQUAT_MAX


def is_domain_suspicious(keyword: str, domain_name: str) -> bool:
    return keyword.lower() in domain_name.lower() or is_typosquatting(keyword, domain_name)


def domain_severity(keyword: str, domain_name: str) -> Severity:
    if keyword.lower() in domain_name.lower():
        return "high"
    return "medium"


class DomainDetector(_ScanSourceDetector):
    """Newly registered domains containing or imitating the brand."""

    monitoring_type = "domain"

    async def _scan(
        self, item: MonitoringItem, keywords: List[str], now: datetime
    ) -> ScanOutput:
        results: List[Dict[str, Any]] = []
        alerts: List[ConflictAlert] = []

        for keyword in keywords:
            for extension in item.extensions:
                for domain in await self._safe_scan(keyword, extension):
                    name = str(domain.get("name") or "")
                    if not name or not is_domain_suspicious(keyword, name):
                        continue
                    alerts.append(self._alert(
                        item, now,
                        alert_type="domain_registration",
                        source_key=name.lower(),
                        keyword=keyword,
                        title=f"Suspicious Domain Registered: {name}",
                        description=f"Domain registered on {domain.get('registration_date', 'unknown date')}",
                        data=domain,
                        severity=domain_severity(keyword, name),
                        action_required="Review domain and consider action if trademark infringement",
                    ))
                    results.append(domain)

        return results, alerts


def mentions(keyword: str, *texts: Optional[str]) -> bool:
    """Case-insensitive substring test over any of ``texts``."""
    needle = keyword.lower()
    return any(needle in (text or "").lower() for text in texts)


class MarketplaceDetector(_ScanSourceDetector):
    """Marketplace listings using the brand in their title or description."""

    monitoring_type = "marketplace"

    async def _scan(
        self, item: MonitoringItem, keywords: List[str], now: datetime
    ) -> ScanOutput:
        results: List[Dict[str, Any]] = []
        alerts: List[ConflictAlert] = []

        for keyword in keywords:
            for platform in item.platforms:
                for listing in await self._safe_scan(keyword, platform):
                    title = listing.get("title")
                    if not mentions(keyword, title, listing.get("description")):
                        continue
                    alerts.append(self._alert(
                        item, now,
                        alert_type="suspicious_listing",
                        source_key=f"{platform}/{listing.get('id') or title}",
                        keyword=keyword,
                        platform=platform,
                        title=f"Suspicious Listing on {platform}: {title}",
                        description="Potential trademark infringement detected",
                        data=listing,
                        severity="medium",
                        action_required="Review listing and consider takedown request",
                    ))
                    results.append(listing)

        return results, alerts


class SocialDetector(_ScanSourceDetector):
    """Social media posts mentioning the brand."""

    monitoring_type = "social"

    async def _scan(
        self, item: MonitoringItem, keywords: List[str], now: datetime
    ) -> ScanOutput:
        results: List[Dict[str, Any]] = []
        alerts: List[ConflictAlert] = []

        for keyword in keywords:
            for platform in item.social_platforms:
                for post in await self._safe_scan(keyword, platform):
                    if not mentions(keyword, post.get("content")):
                        continue
                    negative = post.get("sentiment") == "negative"
                    alerts.append(self._alert(
                        item, now,
                        alert_type="brand_mention",
                        source_key=f"{platform}/{post.get('id') or post.get('url')}",
                        keyword=keyword,
                        platform=platform,
                        title=f"Brand Mention on {platform}",
                        description=f"Your brand was mentioned in a {post.get('type', 'post')}",
                        data=post,
                        severity="high" if negative else "low",
                        action_required=(
                            "Consider response to negative mention" if negative
                            else "Monitor for engagement"
                        ),
                    ))
                    results.append(post)

        return results, alerts


def build_detectors(
    registry: RegistryClient,
    settings: Settings,
    domain_source: Optional[ScanSource] = None,
    marketplace_source: Optional[ScanSource] = None,
    social_source: Optional[ScanSource] = None,
) -> Dict[str, ConflictDetector]:
    """Map each monitoring type to its detector, using synthetic sources by default."""
    return {
        "trademark": TrademarkDetector(registry, lookback_days=settings.lookback_days),
        "domain": DomainDetector(domain_source or SyntheticDomainSource()),
        "marketplace": MarketplaceDetector(marketplace_source or SyntheticMarketplaceSource()),
        "social": SocialDetector(social_source or SyntheticSocialSource()),
    }


def get_detector(detectors: Dict[str, ConflictDetector], monitoring_type: str) -> ConflictDetector:
    try:
        return detectors[monitoring_type]
    except KeyError:
        raise UnsupportedTypeError(f"Unsupported monitoring type: {monitoring_type}") from None
