"""
Runs monitoring checks and keeps their results in the record store.

A check moves an item through ``checking`` to ``active`` (success) or
``error`` (failure). The in-flight state is written before the detector
runs so other readers can see it, and every run ends in a terminal status.
Alerts created by a failed run are removed again, so callers only ever see
a complete alert set.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from brand_monitor.config import Settings
from brand_monitor.detectors import ConflictDetector, build_detectors, get_detector
from brand_monitor.errors import (
    ItemNotFoundError,
    MonitoringError,
    ValidationError,
)
from brand_monitor.frequency import schedule_next
from brand_monitor.logger import exception, info, warning
from brand_monitor.models import (
    MONITORING_TYPES,
    CheckOutcome,
    ConflictAlert,
    MonitoringItem,
    MonitoringStats,
    utcnow,
)
from brand_monitor.registry import RegistryClient
from brand_monitor.store import Record, RecordStore, build_store

__all__ = ["MonitoringScheduler", "schedule_next"]

# Fields a user may change on an existing item
EDITABLE_FIELDS = frozenset([
    "name",
    "keywords",
    "frequency",
    "status",
    "extensions",
    "platforms",
    "social_platforms",
    "include_variations",
    "client_id",
    "notifications",
])

# Statuses a user may set; "checking" belongs to a running check
USER_STATUSES = frozenset(["active", "error"])


class MonitoringScheduler:
    """
    Dispatches monitoring items to their detectors and persists the outcome.

    Args:
        store: Where items and alerts live.
        detectors: Monitoring type -> detector.
        settings: Collection names and the alert de-duplication switch.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        store: RecordStore,
        detectors: Dict[str, ConflictDetector],
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.detectors = detectors
        self.settings = settings
        self.clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings, registry: RegistryClient, store: Optional[RecordStore] = None
    ) -> "MonitoringScheduler":
        """Wire a scheduler with the default detectors and the configured store."""
        return cls(
            store=store or build_store(settings),
            detectors=build_detectors(registry, settings),
            settings=settings,
        )

    @property
    def items_collection(self) -> str:
        return self.settings.items_table

    @property
    def alerts_collection(self) -> str:
        return self.settings.alerts_table

    def _lock_for(self, item_id: str) -> asyncio.Lock:
        return self._locks.setdefault(item_id, asyncio.Lock())

    # --- Items ---

    async def list_items(self) -> List[MonitoringItem]:
        records = await self.store.list(self.items_collection, order_by="created_at")
        return [MonitoringItem.model_validate(record) for record in records]

    async def _get_record(self, collection: str, record_id: str) -> Record:
        records = await self.store.list(collection, filters={"id": record_id})
        if not records:
            raise ItemNotFoundError(f"No record '{record_id}' in {collection}")
        return records[0]

    async def get_item(self, item_id: str) -> MonitoringItem:
        return MonitoringItem.model_validate(
            await self._get_record(self.items_collection, item_id)
        )

    def validate_item(self, item: MonitoringItem) -> None:
        """
        Raises:
            UnsupportedTypeError: If no detector handles ``item.type``.
            ValidationError: If the item has no usable keywords.
        """
        get_detector(self.detectors, item.type)
        if not item.usable_keywords():
            raise ValidationError(f"Monitoring item '{item.name}' has no keywords")

    async def add_item(self, item: MonitoringItem, run_initial_check: bool = True) -> MonitoringItem:
        """
        Store a new monitoring item.

        Trademark items are checked right away when ``run_initial_check``
        is set; the returned item reflects that first check.
        """
        self.validate_item(item)
        now = self.clock()
        item = item.model_copy(update={
            "status": "active",
            "keywords": item.usable_keywords(),
            "created_at": now,
            "updated_at": now,
        })
        stored = MonitoringItem.model_validate(
            await self.store.insert(self.items_collection, item.model_dump(mode="json"))
        )
        info("Monitoring item created", item_id=stored.id, monitoring_type=stored.type)

        if run_initial_check and stored.type == "trademark":
            outcome = await self.run_check(stored.id)
            return outcome.item
        return stored

    async def update_item(self, item_id: str, changes: Dict[str, Any]) -> MonitoringItem:
        """Apply user edits to an item; fields the scheduler owns are ignored."""
        current = await self.get_item(item_id)
        patch = {key: value for key, value in changes.items() if key in EDITABLE_FIELDS}
        if "status" in patch and patch["status"] not in USER_STATUSES:
            raise ValidationError(
                f"Status of monitoring item '{item_id}' cannot be set to '{patch['status']}'"
            )
        try:
            updated = MonitoringItem.model_validate({**current.model_dump(), **patch})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid changes for monitoring item '{item_id}': {e}") from e
        if "keywords" in patch:
            updated.keywords = updated.usable_keywords()
            if not updated.keywords:
                raise ValidationError(f"Monitoring item '{updated.name}' has no keywords")
        updated.updated_at = self.clock()

        dumped = updated.model_dump(mode="json")
        record = await self.store.update(
            self.items_collection,
            item_id,
            {key: dumped[key] for key in list(patch) + ["updated_at"]},
        )
        return MonitoringItem.model_validate(record)

    async def delete_item(self, item_id: str) -> None:
        """Delete an item together with every alert it owns."""
        await self._get_record(self.items_collection, item_id)
        for alert in await self.store.list(
            self.alerts_collection, filters={"monitoring_item_id": item_id}
        ):
            await self.store.delete(self.alerts_collection, alert["id"])
        await self.store.delete(self.items_collection, item_id)
        self._locks.pop(item_id, None)
        info("Monitoring item deleted", item_id=item_id)

    # --- Alerts ---

    async def list_alerts(self, item_id: Optional[str] = None) -> List[ConflictAlert]:
        """
        Alerts newest first, optionally for one item.

        Alerts written by a check that is still running are left out until
        that check commits, so readers never see a partial set.
        """
        filters = {"monitoring_item_id": item_id} if item_id else None
        records = await self.store.list(
            self.alerts_collection, order_by="detected_at", filters=filters
        )
        # Item id -> start of its in-flight check
        running = {
            item.id: item.updated_at
            for item in await self.list_items()
            if item.status == "checking"
        }
        alerts = [ConflictAlert.model_validate(record) for record in records]
        return [
            alert for alert in alerts
            if alert.monitoring_item_id not in running
            or alert.detected_at < running[alert.monitoring_item_id]
        ]

    async def dismiss_alert(self, alert_id: str) -> None:
        await self._get_record(self.alerts_collection, alert_id)
        await self.store.delete(self.alerts_collection, alert_id)

    async def _store_alerts(
        self, item: MonitoringItem, alerts: Iterable[ConflictAlert], inserted: List[ConflictAlert]
    ) -> None:
        """Insert ``alerts``, appending each stored one to ``inserted`` as it lands."""
        known = set()
        if self.settings.deduplicate_alerts:
            known = {
                record.get("detection_key")
                for record in await self.store.list(
                    self.alerts_collection, filters={"monitoring_item_id": item.id}
                )
            }

        for alert in alerts:
            if self.settings.deduplicate_alerts:
                if alert.detection_key in known:
                    continue
                known.add(alert.detection_key)
            record = await self.store.insert(self.alerts_collection, alert.model_dump(mode="json"))
            inserted.append(ConflictAlert.model_validate(record))

    async def _discard_alerts(self, alerts: List[ConflictAlert]) -> None:
        for alert in alerts:
            await self.store.delete(self.alerts_collection, alert.id)

    # --- Checks ---

    async def _record_failure(
        self, item_id: str, inserted: List[ConflictAlert], message: str, now: datetime
    ) -> Record:
        await self._discard_alerts(inserted)
        return await self.store.update(
            self.items_collection,
            item_id,
            {
                "status": "error",
                "last_error": message,
                "updated_at": now.isoformat(),
            },
        )

    async def run_check(self, item_id: str) -> CheckOutcome:
        """
        Check one monitoring item now.

        Failures are recorded on the item (``status = error``,
        ``last_error``) and reported in the outcome rather than raised.
        A cancelled run is recorded the same way before the cancellation
        propagates.

        Raises:
            ItemNotFoundError: If the item does not exist.
        """
        async with self._lock_for(item_id):
            record = await self._get_record(self.items_collection, item_id)
            now = self.clock()
            await self.store.update(
                self.items_collection,
                item_id,
                {"status": "checking", "updated_at": now.isoformat()},
            )

            inserted: List[ConflictAlert] = []
            try:
                item = MonitoringItem.model_validate(record)
                info("Running monitoring check", item_id=item_id, monitoring_type=item.type)
                detector = get_detector(self.detectors, item.type)
                result = await detector.detect(item, now)
                if not result.success:
                    raise MonitoringError(result.error or "Detector reported failure")

                await self._store_alerts(item, result.alerts, inserted)
                updated = await self.store.update(
                    self.items_collection,
                    item_id,
                    {
                        "status": "active",
                        "last_checked": result.checked_at.isoformat(),
                        "next_check": result.next_check.isoformat(),
                        "alert_count": item.alert_count + len(inserted),
                        "last_results": result.results,
                        "last_error": None,
                        "updated_at": now.isoformat(),
                    },
                )
            except asyncio.CancelledError:
                warning("Monitoring check cancelled", item_id=item_id)
                await asyncio.shield(self._record_failure(item_id, inserted, "cancelled", now))
                raise
            except Exception as e:
                message = str(e) or type(e).__name__
                exception("Monitoring check failed", exc=e, item_id=item_id)
                updated = await self._record_failure(item_id, inserted, message, now)
                return CheckOutcome(item=MonitoringItem.model_validate(updated), error=message)

            info("Monitoring check complete", item_id=item_id, new_alerts=len(inserted))
            return CheckOutcome(item=MonitoringItem.model_validate(updated), new_alerts=inserted)

    def is_due(self, item: MonitoringItem, now: datetime) -> bool:
        if item.status == "checking":
            # A run that died without resolving its status is retried
            return now - item.updated_at > timedelta(seconds=self.settings.stale_check_seconds)
        return item.next_check is None or item.next_check <= now

    async def run_due_checks(self, now: Optional[datetime] = None) -> List[CheckOutcome]:
        """Check every item that is due, concurrently; one failure does not affect the others."""
        now = now or self.clock()
        due = [item for item in await self.list_items() if self.is_due(item, now)]
        if not due:
            return []
        info("Running due monitoring checks", count=len(due))
        outcomes = await asyncio.gather(
            *(self.run_check(item.id) for item in due), return_exceptions=True
        )
        completed: List[CheckOutcome] = []
        for item, outcome in zip(due, outcomes):
            if isinstance(outcome, BaseException):
                # Only raised when the item vanished or the store itself failed
                exception("Scheduled check could not run", exc=outcome, item_id=item.id)
                continue
            completed.append(outcome)
        return completed

    async def run_forever(self, poll_interval: float, stop_event: asyncio.Event) -> None:
        """Run due checks every ``poll_interval`` seconds until ``stop_event`` is set."""
        while not stop_event.is_set():
            await self.run_due_checks()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                continue

    async def stats(self) -> MonitoringStats:
        items = await self.list_items()
        alerts = await self.store.list(self.alerts_collection)
        by_type = {kind: sum(1 for item in items if item.type == kind) for kind in MONITORING_TYPES}
        return MonitoringStats(
            trademarks=by_type["trademark"],
            domains=by_type["domain"],
            marketplaces=by_type["marketplace"],
            social=by_type["social"],
            total=len(items),
            total_alerts=len(alerts),
            active_monitoring=sum(1 for item in items if item.status == "active"),
        )
