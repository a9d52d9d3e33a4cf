import asyncio
import json
import sqlite3

import pytest

from pos_dal.errors import InvalidParameterType, NoFieldsToUpdate
from pos_dal.predicates import UNSET


async def _seed_orders(client, totals=(10, 20, 30)):
    orders = client.model("order")
    for index, total in enumerate(totals, start=1):
        await orders.create({"id": f"o{index}", "status": "PENDING", "total": total})
    return orders


@pytest.mark.asyncio
async def test_create_then_find_unique_round_trips_fields(client):
    orders = client.model("order")

    created = await orders.create(
        {"id": "o1", "status": "PENDING", "total": 12.5, "tableId": "t1", "notes": None}
    )
    found = await orders.find_unique({"id": "o1"})

    assert created == found
    assert found["status"] == "PENDING"
    assert found["total"] == 12.5
    assert found["tableId"] == "t1"
    assert found["notes"] is None


@pytest.mark.asyncio
async def test_create_generates_missing_id(client):
    created = await client.model("user").create({"name": "Ana", "role": UNSET})

    assert isinstance(created["id"], str)
    assert len(created["id"]) >= 10
    assert created["role"] is None


@pytest.mark.asyncio
async def test_create_coerces_write_values(client):
    item = await client.model("menuItem").create(
        {"id": "m1", "name": "Pho", "available": True, "ingredients": ["noodles", "beef"]}
    )

    assert item["available"] == 1
    assert json.loads(item["ingredients"]) == ["noodles", "beef"]


@pytest.mark.asyncio
async def test_create_rejects_unbindable_value_before_sql(client, store):
    with pytest.raises(InvalidParameterType):
        await client.model("order").create({"id": "o1", "status": object()})

    assert await store.fetchval("SELECT COUNT(*) FROM orders") == 0


@pytest.mark.asyncio
async def test_find_unique_missing_returns_none(client):
    assert await client.model("order").find_unique({"id": "nope"}) is None


@pytest.mark.asyncio
async def test_find_many_in_list_ordered(client):
    orders = client.model("orders")
    await orders.create({"id": "o2", "status": "DONE"})
    await orders.create({"id": "o1", "status": "PENDING"})
    await orders.create({"id": "o3", "status": "VOID"})

    rows = await orders.find_many(
        {"status": {"in": ["PENDING", "DONE"]}}, order_by={"id": "asc"}
    )

    assert [row["id"] for row in rows] == ["o1", "o2"]


@pytest.mark.asyncio
async def test_find_many_paginates(client):
    orders = await _seed_orders(client, totals=(1, 2, 3, 4, 5))

    page = await orders.find_many(order_by={"total": "desc"}, take=2, skip=1)
    tail = await orders.find_many(order_by={"total": "asc"}, skip=3)

    assert [row["total"] for row in page] == [4, 3]
    assert [row["total"] for row in tail] == [4, 5]
    assert await orders.find_many({"status": "UNKNOWN"}) == []


@pytest.mark.asyncio
async def test_find_first_honours_order(client):
    orders = await _seed_orders(client)

    first = await orders.find_first({"status": "PENDING"}, order_by={"total": "desc"})

    assert first["id"] == "o3"
    assert await orders.find_first({"status": "DONE"}) is None


@pytest.mark.asyncio
async def test_find_many_select_narrows_rows(client):
    orders = await _seed_orders(client)

    rows = await orders.find_many(select={"id": True}, order_by={"id": "asc"})

    assert rows == [{"id": "o1"}, {"id": "o2"}, {"id": "o3"}]


@pytest.mark.asyncio
async def test_update_changes_only_given_fields(client):
    orders = client.model("order")
    await orders.create({"id": "o1", "status": "PENDING", "total": 10, "notes": "window"})

    updated = await orders.update({"id": "o1"}, {"status": "DONE", "id": "ignored"})

    assert updated["id"] == "o1"
    assert updated["status"] == "DONE"
    assert updated["total"] == 10
    assert updated["notes"] == "window"


@pytest.mark.asyncio
async def test_update_without_fields_raises(client):
    orders = await _seed_orders(client)

    with pytest.raises(NoFieldsToUpdate):
        await orders.update({"id": "o1"}, {"id": "o9", "notes": UNSET})


@pytest.mark.asyncio
async def test_update_many_counts_rows(client):
    orders = await _seed_orders(client)

    result = await orders.update_many({"total": {"gte": 20}}, {"status": "DONE"})

    assert result == {"count": 2}
    assert await orders.count({"status": "DONE"}) == 2
    assert await orders.update_many({"total": {"gte": 20}}, {}) == {"count": 0}


@pytest.mark.asyncio
async def test_delete_returns_snapshot(client):
    orders = await _seed_orders(client)

    deleted = await orders.delete({"id": "o2"})

    assert deleted["id"] == "o2"
    assert deleted["total"] == 20
    assert await orders.find_unique({"id": "o2"}) is None
    assert await orders.delete({"id": "o2"}) is None
    assert await orders.count() == 2


@pytest.mark.asyncio
async def test_delete_many_without_where_clears_table(client):
    orders = await _seed_orders(client)
    before = await orders.count()

    result = await orders.delete_many({})

    assert result == {"count": before}
    assert await orders.count() == 0


@pytest.mark.asyncio
async def test_create_many_is_atomic(client, store):
    users = client.model("user")

    assert await users.create_many([{"id": "u1", "name": "Ana"}, {"id": "u2", "name": "Bo"}]) == {
        "count": 2
    }
    with pytest.raises(sqlite3.IntegrityError):
        await users.create_many([{"id": "u3", "name": "Cy"}, {"id": "u1", "name": "Dup"}])

    assert await users.count() == 2
    assert await users.create_many([]) == {"count": 0}


@pytest.mark.asyncio
async def test_concurrent_create_many_batches_each_commit(client):
    users = client.model("user")
    first = [{"id": f"a{i}", "name": "A"} for i in range(3)]
    second = [{"id": f"b{i}", "name": "B"} for i in range(3)]

    results = await asyncio.gather(users.create_many(first), users.create_many(second))

    assert results == [{"count": 3}, {"count": 3}]
    assert await users.count() == 6
    assert client.store.in_transaction is False


@pytest.mark.asyncio
async def test_failed_batch_keeps_concurrent_write(client):
    """A rolled-back batch must not take an unrelated write from another task with it."""
    orders = client.model("order")
    payments = client.model("payment")
    batch = [
        {"id": "o1", "status": "OPEN"},
        {"id": "o2", "status": "OPEN"},
        {"id": "o1", "status": "DUP"},
    ]

    results = await asyncio.gather(
        orders.create_many(batch),
        payments.create({"id": "p1", "orderId": "o9", "amount": 5}),
        return_exceptions=True,
    )

    assert isinstance(results[0], sqlite3.IntegrityError)
    assert results[1]["id"] == "p1"
    assert await orders.count() == 0
    assert [row["id"] for row in await payments.find_many()] == ["p1"]


@pytest.mark.asyncio
async def test_upsert_creates_with_where_fields(client):
    settings = client.model("setting")

    created = await settings.upsert(
        {"key": "currency"},
        create={"key": "other", "value": "USD"},
        update={"value": "EUR"},
    )

    assert created["key"] == "currency"
    assert created["value"] == "USD"


@pytest.mark.asyncio
async def test_upsert_updates_existing_row(client):
    settings = client.model("setting")
    await settings.create({"id": "s1", "key": "currency", "value": "USD"})

    updated = await settings.upsert(
        {"key": "currency"}, create={"value": "GBP"}, update={"value": "EUR"}
    )

    assert updated["id"] == "s1"
    assert updated["value"] == "EUR"
    assert await settings.count() == 1


@pytest.mark.asyncio
async def test_count_with_and_without_where(client):
    orders = await _seed_orders(client)

    assert await orders.count() == 3
    assert await orders.count({"total": {"lt": 25}}) == 2


@pytest.mark.asyncio
async def test_aggregate_sum_and_count(client):
    orders = await _seed_orders(client)

    result = await orders.aggregate(_sum={"total": True}, _count=True)

    assert result == {"_count": 3, "_sum": {"total": 60}}


@pytest.mark.asyncio
async def test_aggregate_per_field_functions(client):
    orders = await _seed_orders(client)
    await orders.create({"id": "o4", "status": "VOID", "total": None})

    result = await orders.aggregate(
        {"status": "PENDING"},
        _count={"total": True},
        _avg={"total": True},
        _min={"total": True},
        _max={"total": True},
    )

    assert result == {
        "_count": {"total": 3},
        "_avg": {"total": 20},
        "_min": {"total": 10},
        "_max": {"total": 30},
    }
    assert await orders.aggregate() == {}
