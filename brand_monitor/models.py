"""
Single source of truth for the data models of the brand monitoring core.

Monitoring items and conflict alerts are persisted through a RecordStore as
plain dicts (``model_dump(mode="json")``) and validated back on load.
Trademark records are transient values passed between the registry client
and the detectors.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


MonitoringType = Literal["trademark", "domain", "marketplace", "social"]
ItemStatus = Literal["active", "checking", "error"]
Severity = Literal["low", "medium", "high"]
AlertType = Literal[
    "new_application",
    "similar_mark",
    "domain_registration",
    "suspicious_listing",
    "brand_mention",
]

MONITORING_TYPES = ("trademark", "domain", "marketplace", "social")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class MonitoringItem(BaseModel):
    """A tracked brand and the keywords watched for it on one surface."""

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., description="Display name of the tracked brand.")
    type: str = Field(..., description="One of trademark, domain, marketplace, social.")
    keywords: List[str] = Field(default_factory=list, description="Keywords to watch, in order.")
    frequency: str = Field(default="daily", description="hourly, daily, weekly or monthly; anything else runs daily.")
    status: ItemStatus = "active"
    last_checked: Optional[datetime] = None
    next_check: Optional[datetime] = None
    alert_count: int = Field(default=0, ge=0)
    last_error: Optional[str] = None

    # Type-specific settings
    extensions: List[str] = Field(default_factory=lambda: [".com", ".net", ".org"])
    platforms: List[str] = Field(default_factory=lambda: ["amazon", "ebay"])
    social_platforms: List[str] = Field(
        default_factory=lambda: ["instagram", "twitter", "facebook"]
    )
    include_variations: bool = True

    client_id: Optional[str] = None
    notifications: bool = True
    last_results: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def usable_keywords(self) -> List[str]:
        """Keywords with surrounding whitespace removed, blanks dropped."""
        return [kw.strip() for kw in self.keywords if kw and kw.strip()]


class ConflictAlert(BaseModel):
    """
    One detected potential conflict, owned by a monitoring item.

    ``detection_key`` identifies the underlying conflict (type, source record
    and keyword) and stays stable across runs, unlike ``id``.
    """

    id: str = Field(default_factory=_new_id)
    monitoring_item_id: str
    monitoring_item_name: Optional[str] = None
    type: AlertType
    keyword: str
    platform: Optional[str] = None
    title: str
    description: str
    data: Dict[str, Any] = Field(default_factory=dict)
    severity: Severity
    detected_at: datetime = Field(default_factory=utcnow)
    action_required: str
    detection_key: str

    @staticmethod
    def make_detection_key(alert_type: str, source_key: str, keyword: str) -> str:
        return f"{alert_type}:{source_key}:{keyword}".lower()


class TrademarkRecord(BaseModel):
    """A normalized trademark registry search or detail result."""

    serial_number: Optional[str] = Field(default=None, description="Primary identity within the registry.")
    registration_number: Optional[str] = None
    mark_description: str = "N/A"
    applicant_name: Optional[str] = None
    application_date: Optional[str] = None
    registration_date: Optional[str] = None
    status: Optional[str] = None
    status_date: Optional[str] = None
    mark_type: Optional[str] = None
    goods_and_services: Optional[str] = None
    drawing_code: Optional[str] = None

    # Only populated by the case-status (detail) endpoint
    status_description: Optional[str] = None
    attorney: Optional[Any] = None
    correspondent: Optional[Any] = None
    events: List[Any] = Field(default_factory=list)

    similarity: Optional[float] = None

    @property
    def filed_at(self) -> Optional[datetime]:
        """The application date as an aware UTC datetime, if it can be read."""
        return parse_registry_date(self.application_date)


class MonitoredApplication(BaseModel):
    """A registry application whose status we already know."""

    serial_number: str
    last_known_status: Optional[str] = None


class StatusChange(BaseModel):
    """A monitored application whose registry status moved."""

    record: TrademarkRecord
    previous_status: Optional[str] = None
    change_detected: datetime = Field(default_factory=utcnow)


class DetectionResult(BaseModel):
    """What a detector found for one monitoring item."""

    success: bool = True
    type: str = Field(..., description="One of trademark, domain, marketplace, social.")
    results: List[Dict[str, Any]] = Field(default_factory=list)
    alerts: List[ConflictAlert] = Field(default_factory=list)
    checked_at: datetime
    next_check: datetime
    error: Optional[str] = None


class CheckOutcome(BaseModel):
    """The persisted state of an item after a check, plus what it stored."""

    item: MonitoringItem
    new_alerts: List[ConflictAlert] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class MonitoringStats(BaseModel):
    trademarks: int = 0
    domains: int = 0
    marketplaces: int = 0
    social: int = 0
    total: int = 0
    total_alerts: int = 0
    active_monitoring: int = 0


def parse_registry_date(value: Optional[str]) -> Optional[datetime]:
    """
    Read a registry date string into an aware UTC datetime.

    Accepts ISO dates/datetimes (``2024-01-15``, ``2024-01-15T10:00:00Z``)
    and the compact ``YYYYMMDD`` form. Returns None for anything else.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(text, "%Y%m%d")
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
