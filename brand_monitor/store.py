"""
Record store used to persist monitoring items and their alerts.

The core only needs four operations (list, insert, update, delete) over
named collections of JSON-compatible dicts, each keyed by an ``id`` field.
``SupabaseStore`` backs them with a Supabase project; ``InMemoryStore``
keeps everything in process for tests and local runs.

Required Environment Variables (SupabaseStore):
    SUPABASE_URL: The Supabase project URL.
    SUPABASE_KEY: The Supabase API key (service role key recommended for backend).
"""

import asyncio
import copy
import uuid
from typing import Any, Dict, List, Optional, Protocol

from supabase import Client, create_client

from brand_monitor.config import Settings
from brand_monitor.errors import ItemNotFoundError
from brand_monitor.logger import error, exception, get_logger, warning

logger = get_logger(__name__)

Record = Dict[str, Any]


class RecordStore(Protocol):
    async def list(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = True,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        ...

    async def insert(self, collection: str, record: Record) -> Record:
        ...

    async def update(self, collection: str, record_id: str, patch: Record) -> Record:
        ...

    async def delete(self, collection: str, record_id: str) -> None:
        ...


def _sort_key(value: Any) -> tuple:
    # None sorts before any real value
    return (value is not None, value if value is not None else "")


class InMemoryStore:
    """Dict-backed store. Records are copied in and out."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Record]] = {}

    def _table(self, collection: str) -> Dict[str, Record]:
        return self._collections.setdefault(collection, {})

    async def list(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = True,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        records = [
            copy.deepcopy(record)
            for record in self._table(collection).values()
            if all(record.get(key) == value for key, value in (filters or {}).items())
        ]
        if order_by:
            records.sort(key=lambda r: _sort_key(r.get(order_by)), reverse=descending)
        return records

    async def insert(self, collection: str, record: Record) -> Record:
        stored = copy.deepcopy(record)
        stored.setdefault("id", str(uuid.uuid4()))
        self._table(collection)[stored["id"]] = stored
        return copy.deepcopy(stored)

    async def update(self, collection: str, record_id: str, patch: Record) -> Record:
        table = self._table(collection)
        if record_id not in table:
            raise ItemNotFoundError(f"No record '{record_id}' in {collection}")
        table[record_id].update(copy.deepcopy(patch))
        return copy.deepcopy(table[record_id])

    async def delete(self, collection: str, record_id: str) -> None:
        self._table(collection).pop(record_id, None)


class SupabaseStore:
    """
    Store backed by Supabase tables.

    The supabase client is synchronous, so every call runs in a worker
    thread to keep the event loop free.
    """

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseStore":
        """
        Create a store from the Supabase credentials in ``settings``.

        Raises:
            ValueError: If SUPABASE_URL or SUPABASE_KEY is missing.
        """
        if not settings.has_supabase:
            error_msg = "Missing required Supabase environment variables: SUPABASE_URL, SUPABASE_KEY"
            error(error_msg, missing=["SUPABASE_URL", "SUPABASE_KEY"])
            raise ValueError(error_msg)

        try:
            client = create_client(settings.supabase_url, settings.supabase_key)
        except Exception as e:
            exception("Failed to create Supabase client", exc=e)
            raise
        logger.info("Successfully created Supabase client")
        return cls(client)

    async def list(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = True,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        def _run() -> List[Record]:
            query = self._client.table(collection).select("*")
            for key, value in (filters or {}).items():
                query = query.eq(key, value)
            if order_by:
                query = query.order(order_by, desc=descending)
            return query.execute().data or []

        return await asyncio.to_thread(_run)

    async def insert(self, collection: str, record: Record) -> Record:
        def _run() -> Record:
            response = self._client.table(collection).insert(record).execute()
            return response.data[0] if response.data else dict(record)

        return await asyncio.to_thread(_run)

    async def update(self, collection: str, record_id: str, patch: Record) -> Record:
        def _run() -> Record:
            response = (
                self._client.table(collection).update(patch).eq("id", record_id).execute()
            )
            if not response.data:
                raise ItemNotFoundError(f"No record '{record_id}' in {collection}")
            return response.data[0]

        return await asyncio.to_thread(_run)

    async def delete(self, collection: str, record_id: str) -> None:
        def _run() -> None:
            self._client.table(collection).delete().eq("id", record_id).execute()

        await asyncio.to_thread(_run)


def build_store(settings: Settings) -> RecordStore:
    """Supabase when credentials are configured, otherwise an in-memory store."""
    if settings.has_supabase:
        return SupabaseStore.from_settings(settings)
    warning("Supabase credentials not set, monitoring data will not be persisted")
    return InMemoryStore()
