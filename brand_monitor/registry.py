"""
Client for an external trademark registry (USPTO-style search + TSDR).

Every network call passes through a shared RateLimiter. Public methods
never raise registry failures: transport errors, non-2xx answers and
malformed payloads are logged and replaced by the configured
FallbackProvider's result, so detectors always receive well-typed values.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx
from pydantic import ValidationError as PydanticValidationError

from brand_monitor.config import Settings
from brand_monitor.errors import ParseError, RegistryError, TransportError
from brand_monitor.fallback import FallbackProvider, build_fallback
from brand_monitor.logger import debug, warning
from brand_monitor.models import (
    MonitoredApplication,
    StatusChange,
    TrademarkRecord,
    utcnow,
)
from brand_monitor.rate_limit import RateLimiter
from brand_monitor.similarity import MEDIUM_SIMILARITY, generate_variations, similarity

SEARCH_PATH = "/trademark/search"
SEARCH_FIELDS = (
    "serialNumber,registrationNumber,markDrawingCode,typeOfMark,markDescription,"
    "goodsAndServices,applicantName,applicationDate,registrationDate,statusCode,statusDate"
)

# Search document field -> TrademarkRecord field
_DOC_FIELDS = {
    "serialNumber": "serial_number",
    "registrationNumber": "registration_number",
    "markDescription": "mark_description",
    "applicantName": "applicant_name",
    "applicationDate": "application_date",
    "registrationDate": "registration_date",
    "statusCode": "status",
    "statusDate": "status_date",
    "typeOfMark": "mark_type",
    "goodsAndServices": "goods_and_services",
    "markDrawingCode": "drawing_code",
}


def _first(value: Any) -> Any:
    """Registry search fields come back as single-element lists."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def dedupe_by_serial(records: Iterable[TrademarkRecord]) -> List[TrademarkRecord]:
    """Drop repeated serial numbers, keeping the first occurrence in order."""
    seen = set()
    unique: List[TrademarkRecord] = []
    for record in records:
        if record.serial_number in seen:
            continue
        seen.add(record.serial_number)
        unique.append(record)
    return unique


def parse_search_results(data: Any) -> List[TrademarkRecord]:
    """
    Normalize a search response into TrademarkRecords.

    Args:
        data: Decoded JSON body of a search call.

    Returns:
        The records found, or an empty list when the body has no documents.

    Raises:
        ParseError: If the body is not shaped like a search response.
    """
    if not isinstance(data, dict):
        raise ParseError("Search response is not a JSON object")

    response = data.get("response")
    if not isinstance(response, dict) or not response.get("docs"):
        return []

    docs = response["docs"]
    if not isinstance(docs, list):
        raise ParseError("Search response 'docs' is not a list")

    records: List[TrademarkRecord] = []
    for doc in docs:
        if not isinstance(doc, dict):
            raise ParseError("Search document is not a JSON object")
        fields = {
            target: _as_text(_first(doc.get(source)))
            for source, target in _DOC_FIELDS.items()
        }
        fields["mark_description"] = fields["mark_description"] or "N/A"
        try:
            records.append(TrademarkRecord(**fields))
        except PydanticValidationError as e:
            raise ParseError(f"Search document has unexpected field types: {e}") from e
    return records


def parse_trademark_details(data: Any) -> TrademarkRecord:
    """
    Normalize a case-status response into a TrademarkRecord.

    Raises:
        ParseError: If the body is not shaped like a case-status response.
    """
    if not isinstance(data, dict):
        raise ParseError("Case status response is not a JSON object")

    trademark = data.get("trademark") or {}
    if not isinstance(trademark, dict):
        raise ParseError("Case status 'trademark' is not a JSON object")

    applicant = _first(trademark.get("applicant")) or {}
    prosecution = _first(trademark.get("prosecution")) or {}
    if not isinstance(applicant, dict) or not isinstance(prosecution, dict):
        raise ParseError("Case status applicant/prosecution entries are malformed")

    try:
        return TrademarkRecord(
            serial_number=_as_text(trademark.get("serialNumber")),
            registration_number=_as_text(trademark.get("registrationNumber")),
            mark_description=_as_text(trademark.get("markDescription")) or "N/A",
            applicant_name=_as_text(applicant.get("applicantName")),
            application_date=_as_text(trademark.get("applicationDate")),
            registration_date=_as_text(trademark.get("registrationDate")),
            status=_as_text(prosecution.get("statusCode")),
            status_description=_as_text(prosecution.get("statusDescription")),
            status_date=_as_text(prosecution.get("statusDate")),
            mark_type=_as_text(trademark.get("typeOfMark")),
            goods_and_services=_as_text(trademark.get("goodsAndServices")),
            attorney=_first(trademark.get("attorney")),
            correspondent=_first(trademark.get("correspondent")),
            events=trademark.get("prosecutionEvent") or [],
        )
    except PydanticValidationError as e:
        raise ParseError(f"Case status record has unexpected field types: {e}") from e


class RegistryClient:
    """
    Rate-limited access to the trademark registry.

    Build one per process and share it: the rate limiter it holds is what
    serializes registry traffic across concurrently running checks.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        fallback: Optional[FallbackProvider] = None,
    ) -> None:
        self.settings = settings
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=settings.request_timeout_seconds,
        )
        self.rate_limiter = rate_limiter or RateLimiter.from_milliseconds(
            settings.rate_limit_delay_ms
        )
        self.fallback = fallback or build_fallback(settings)

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def rate_limit(self) -> None:
        await self.rate_limiter.wait()

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        """
        Perform one rate-limited GET and decode its JSON body.

        Raises:
            TransportError: On network failure, timeout or non-2xx status.
            ParseError: If the body is not valid JSON.
        """
        await self.rate_limit()
        try:
            response = await self._client.get(
                url,
                params=params,
                headers={
                    "Accept": "application/json",
                    "User-Agent": self.settings.registry_user_agent,
                },
                timeout=self.settings.request_timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Registry request timed out: {url}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Registry request failed: {e}") from e

        if not response.is_success:
            raise TransportError(
                f"Registry error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"Registry returned malformed JSON: {e}") from e

    async def search(
        self,
        keyword: str,
        sort: str = "score desc",
        offset: int = 0,
        limit: int = 50,
    ) -> List[TrademarkRecord]:
        """
        Search the registry by keyword.

        Args:
            keyword: Text to search for.
            sort: Registry sort expression, e.g. ``"applicationDate desc"``.
            offset: Index of the first result.
            limit: Maximum number of results.

        Returns:
            Normalized records, or the fallback's records if the call failed.
        """
        params = {
            "q": keyword,
            "f": "json",
            "s": offset,
            "rows": limit,
            "sort": sort,
            "fl": SEARCH_FIELDS,
        }
        url = f"{self.settings.registry_search_url.rstrip('/')}{SEARCH_PATH}"
        try:
            data = await self._get_json(url, params)
            records = parse_search_results(data)
        except RegistryError as e:
            warning(
                "Registry search failed, using fallback results",
                keyword=keyword,
                error_type=type(e).__name__,
                error=str(e),
            )
            return self.fallback.search_results(keyword)

        debug("Registry search complete", keyword=keyword, sort=sort, count=len(records))
        return records

    async def get_details(self, serial_number: str) -> Optional[TrademarkRecord]:
        """Fetch one case record by serial number, or the fallback's on failure."""
        url = (
            f"{self.settings.registry_status_url.rstrip('/')}"
            f"/casestatus/{serial_number}/info"
        )
        try:
            data = await self._get_json(url, {"format": "json"})
            return parse_trademark_details(data)
        except RegistryError as e:
            warning(
                "Registry details lookup failed, using fallback record",
                serial_number=serial_number,
                error_type=type(e).__name__,
                error=str(e),
            )
            return self.fallback.details(serial_number)

    async def monitor_new_applications(
        self, keywords: Sequence[str], since: datetime
    ) -> List[TrademarkRecord]:
        """
        Find applications filed after ``since`` for any of the keywords.

        Records whose application date is missing or unreadable are skipped.
        The result holds each serial number at most once.
        """
        found: List[TrademarkRecord] = []
        for keyword in keywords:
            results = await self.search(keyword, sort="applicationDate desc", limit=20)
            for record in results:
                filed_at = record.filed_at
                if filed_at is not None and filed_at > since:
                    found.append(record)
        return dedupe_by_serial(found)

    async def find_similar_marks(
        self, target_mark: str, include_variations: bool = True
    ) -> List[TrademarkRecord]:
        """
        Find registered or pending marks that look like ``target_mark``.

        Each spelling variation is searched separately; a record qualifies
        when it is not the target itself and scores above the medium
        similarity threshold. The returned records carry their score.
        """
        variations = generate_variations(target_mark) if include_variations else [target_mark]

        similar: List[TrademarkRecord] = []
        for variation in variations:
            results = await self.search(variation, sort="score desc", limit=10)
            for record in results:
                if record.mark_description == target_mark:
                    continue
                score = similarity(target_mark, record.mark_description)
                if score > MEDIUM_SIMILARITY:
                    similar.append(record.model_copy(update={"similarity": score}))
        return dedupe_by_serial(similar)

    async def check_status_changes(
        self, applications: Iterable[MonitoredApplication]
    ) -> List[StatusChange]:
        """Report monitored applications whose registry status has moved."""
        changes: List[StatusChange] = []
        for application in applications:
            current = await self.get_details(application.serial_number)
            if current is None:
                continue
            if current.status != application.last_known_status:
                changes.append(
                    StatusChange(
                        record=current,
                        previous_status=application.last_known_status,
                        change_detected=utcnow(),
                    )
                )
        return changes
