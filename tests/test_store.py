from unittest.mock import MagicMock, patch

import pytest

from brand_monitor.config import Settings
from brand_monitor.errors import ItemNotFoundError
from brand_monitor.store import InMemoryStore, SupabaseStore, build_store


@pytest.mark.asyncio
async def test_insert_assigns_id_and_copies():
    store = InMemoryStore()
    record = {"name": "Acme", "tags": ["a"]}

    stored = await store.insert("items", record)
    stored["tags"].append("b")

    assert stored["id"]
    assert "id" not in record
    listed = await store.list("items")
    assert listed == [{"name": "Acme", "tags": ["a"], "id": stored["id"]}]


@pytest.mark.asyncio
async def test_list_filters_and_orders():
    store = InMemoryStore()
    await store.insert("alerts", {"id": "1", "owner": "a", "detected_at": "2024-01-02"})
    await store.insert("alerts", {"id": "2", "owner": "b", "detected_at": "2024-01-03"})
    await store.insert("alerts", {"id": "3", "owner": "a", "detected_at": "2024-01-01"})

    newest_first = await store.list("alerts", order_by="detected_at")
    oldest_a = await store.list("alerts", order_by="detected_at", descending=False, filters={"owner": "a"})

    assert [r["id"] for r in newest_first] == ["2", "1", "3"]
    assert [r["id"] for r in oldest_a] == ["3", "1"]
    assert await store.list("other") == []


@pytest.mark.asyncio
async def test_update_and_delete():
    store = InMemoryStore()
    await store.insert("items", {"id": "1", "status": "active"})

    updated = await store.update("items", "1", {"status": "error"})
    await store.delete("items", "missing")

    assert updated == {"id": "1", "status": "error"}
    with pytest.raises(ItemNotFoundError):
        await store.update("items", "missing", {"status": "error"})
    await store.delete("items", "1")
    assert await store.list("items") == []


@pytest.mark.asyncio
async def test_supabase_list_builds_query():
    client = MagicMock()
    query = client.table.return_value.select.return_value
    query.eq.return_value = query
    query.order.return_value = query
    query.execute.return_value.data = [{"id": "1"}]

    records = await SupabaseStore(client).list(
        "monitoring_alerts", order_by="detected_at", filters={"monitoring_item_id": "item-1"}
    )

    assert records == [{"id": "1"}]
    client.table.assert_called_with("monitoring_alerts")
    client.table.return_value.select.assert_called_with("*")
    query.eq.assert_called_with("monitoring_item_id", "item-1")
    query.order.assert_called_with("detected_at", desc=True)


@pytest.mark.asyncio
async def test_supabase_update_missing_record():
    client = MagicMock()
    client.table.return_value.update.return_value.eq.return_value.execute.return_value.data = []

    with pytest.raises(ItemNotFoundError):
        await SupabaseStore(client).update("monitoring_items", "missing", {"status": "error"})


def test_supabase_requires_credentials():
    with pytest.raises(ValueError):
        SupabaseStore.from_settings(Settings())


def test_build_store_selects_backend():
    assert isinstance(build_store(Settings()), InMemoryStore)

    with patch("brand_monitor.store.create_client") as create_client:
        store = build_store(Settings(supabase_url="https://example.supabase.co", supabase_key="key"))

    assert isinstance(store, SupabaseStore)
    create_client.assert_called_once_with("https://example.supabase.co", "key")
