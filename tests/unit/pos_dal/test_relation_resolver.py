import logging
from unittest.mock import patch

import pytest

from pos_dal.client import PosClient
from pos_dal.config import DalSettings
from pos_dal.errors import IncludeDepthExceeded, InvalidQueryArgument


async def _seed(client):
    await client.model("table").create({"id": "t1", "number": 4})
    await client.model("user").create({"id": "u1", "name": "Ana"})
    await client.model("menuItem").create({"id": "m1", "name": "Pho", "price": 9.5})
    await client.model("menuItem").create({"id": "m2", "name": "Tea", "price": 2.0})

    orders = client.model("order")
    await orders.create({"id": "o1", "status": "OPEN", "tableId": "t1", "userId": "u1"})
    await orders.create({"id": "o2", "status": "OPEN", "tableId": "t1"})
    await orders.create({"id": "o3", "status": "DONE"})

    items = client.model("orderItem")
    await items.create({"id": "i1", "orderId": "o1", "menuItemId": "m1", "quantity": 1})
    await items.create({"id": "i2", "orderId": "o1", "menuItemId": "m2", "quantity": 2})
    await items.create({"id": "i3", "orderId": "o1", "menuItemId": "m2", "quantity": 3})
    await items.create({"id": "i4", "orderId": "o2", "menuItemId": "m1", "quantity": 1})
    return orders


@pytest.mark.asyncio
async def test_one_to_many_issues_one_query_for_all_parents(client, store):
    """N parents sharing a relation edge cost one batched relation query."""
    orders = await _seed(client)

    with patch.object(store, "fetch", wraps=store.fetch) as fetch:
        rows = await orders.find_many(include={"items": True}, order_by={"id": "asc"})

    assert fetch.call_count == 2
    relation_sql = fetch.call_args_list[1].args[0]
    assert relation_sql == "SELECT * FROM order_items WHERE orderId IN (?, ?, ?)"
    assert [len(row["items"]) for row in rows] == [3, 1, 0]
    assert rows[2]["items"] == []


@pytest.mark.asyncio
async def test_nested_include_costs_one_query_per_level(client, store):
    orders = await _seed(client)

    with patch.object(store, "fetch", wraps=store.fetch) as fetch:
        rows = await orders.find_many(
            {"status": "OPEN"},
            include={"items": {"include": {"menuItem": True}}, "table": True},
            order_by={"id": "asc"},
        )

    assert fetch.call_count == 4
    assert rows[0]["table"]["number"] == 4
    assert {item["menuItem"]["name"] for item in rows[0]["items"]} == {"Pho", "Tea"}
    assert rows[1]["items"][0]["menuItem"]["id"] == "m1"


@pytest.mark.asyncio
async def test_many_to_one_without_foreign_key_attaches_none(client, store):
    orders = await _seed(client)

    with patch.object(store, "fetch", wraps=store.fetch) as fetch:
        order = await orders.find_unique({"id": "o3"}, include={"user": True, "table": True})

    assert fetch.call_count == 1
    assert order["user"] is None
    assert order["table"] is None


@pytest.mark.asyncio
async def test_many_to_one_mixes_matches_and_nulls(client):
    orders = await _seed(client)

    rows = await orders.find_many(include={"user": True}, order_by={"id": "asc"})

    assert rows[0]["user"] == {"id": "u1", "name": "Ana", "role": None}
    assert rows[1]["user"] is None


@pytest.mark.asyncio
async def test_relation_scoped_arguments(client):
    orders = await _seed(client)

    order = await orders.find_unique(
        {"id": "o1"},
        include={
            "items": {
                "where": {"quantity": {"gte": 2}},
                "orderBy": {"quantity": "desc"},
                "take": 1,
                "select": {"id": True, "quantity": True},
            }
        },
    )

    assert order["items"] == [{"id": "i3", "quantity": 3}]


@pytest.mark.asyncio
async def test_take_and_skip_apply_per_parent(client):
    orders = await _seed(client)

    rows = await orders.find_many(
        {"status": "OPEN"},
        include={"items": {"orderBy": {"id": "asc"}, "skip": 1, "take": 1}},
        order_by={"id": "asc"},
    )

    assert [item["id"] for item in rows[0]["items"]] == ["i2"]
    assert rows[1]["items"] == []


@pytest.mark.asyncio
async def test_select_loads_relations(client):
    orders = await _seed(client)

    order = await orders.find_unique(
        {"id": "o2"}, select={"id": True, "items": {"select": {"menuItemId": True}}}
    )

    assert order == {"id": "o2", "items": [{"menuItemId": "m1"}]}


@pytest.mark.asyncio
async def test_select_true_loads_whole_relation(client):
    orders = await _seed(client)

    order = await orders.find_unique({"id": "o1"}, select={"id": True, "items": True})

    assert set(order) == {"id", "items"}
    assert sorted(item["id"] for item in order["items"]) == ["i1", "i2", "i3"]
    assert all(item["orderId"] == "o1" for item in order["items"])


@pytest.mark.parametrize(
    "page",
    [{"take": -1}, {"take": "2"}, {"skip": -2}, {"skip": 1.5}, {"take": True}],
)
@pytest.mark.asyncio
async def test_relation_pagination_is_validated(client, page):
    orders = await _seed(client)

    with pytest.raises(InvalidQueryArgument):
        await orders.find_unique({"id": "o1"}, include={"items": page})


@pytest.mark.asyncio
async def test_unknown_relation_is_skipped(client, caplog):
    orders = await _seed(client)

    with caplog.at_level(logging.DEBUG, logger="pos_dal.resolver"):
        order = await orders.find_unique({"id": "o1"}, include={"kitchenTickets": True})

    assert "kitchenTickets" not in order
    assert "No relationship defined for orders.kitchenTickets" in caplog.text


@pytest.mark.asyncio
async def test_include_depth_guard(store):
    client = PosClient(
        store=store, settings=DalSettings(journal_mode="MEMORY", max_include_depth=2)
    )
    orders = await _seed(client)

    shallow = await orders.find_unique(
        {"id": "o1"}, include={"items": {"include": {"order": True}}}
    )
    assert shallow["items"][0]["order"]["id"] == "o1"

    with pytest.raises(IncludeDepthExceeded):
        await orders.find_unique(
            {"id": "o1"},
            include={"items": {"include": {"order": {"include": {"items": True}}}}},
        )


@pytest.mark.asyncio
async def test_self_referential_include_is_stopped(client):
    orders = await _seed(client)
    include = {}
    include["items"] = {"include": {"order": {"include": include}}}

    with pytest.raises(IncludeDepthExceeded):
        await orders.find_many(include=include)
