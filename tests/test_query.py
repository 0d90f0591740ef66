# tests/test_query.py
import asyncio

import pytest

from fizzpan.errors import BackendError, NotFoundError, SessionExpired
from fizzpan.query import Column, Embed, Query, TableQuery, compact_select, matches, parse_select


def test_parse_plain_columns():
    assert parse_select("id, quantity") == [Column("id"), Column("quantity")]
    assert parse_select("") == [Column("*")]


def test_parse_nested_embeds():
    items = parse_select("""
        id, status,
        items:order_items (id, price, product:product_id (id, name))
    """)
    assert items[:2] == [Column("id"), Column("status")]
    embed = items[2]
    assert isinstance(embed, Embed)
    assert embed.alias == "items"
    assert embed.relation == "order_items"
    assert embed.fields[2] == Embed("product", "product_id", [Column("id"), Column("name")])


def test_parse_rejects_unbalanced():
    with pytest.raises(ValueError):
        parse_select("id, product:product_id (id, name")


def test_compact_select():
    assert compact_select("id, product:product_id (id, name)") == "id,product:product_id(id,name)"


def test_table_query_builds_description():
    captured = {}

    async def runner(query):
        captured["query"] = query

    tq = TableQuery("carts", runner).insert({"user_id": "u1", "product_id": 1}).select().single()
    asyncio.run(tq.execute())
    q = captured["query"]
    assert q.action == "insert"
    assert q.values == [{"user_id": "u1", "product_id": 1}]
    assert q.single is True
    # select() after a write only shapes the returned row
    assert q.count is None


def test_matches_compares_ids_loosely():
    row = {"id": 3, "status": "pending"}
    assert matches(row, [("id", "eq", "3")])
    assert not matches(row, [("status", "neq", "pending")])
    assert matches(row, [("status", "in", ["completed", "pending"])])


# ---------------------------
# Memory backend
# ---------------------------
def _run(db, query, token=None):
    return asyncio.run(db.execute(query, token))


def test_embeds_many_to_one_and_one_to_many(db):
    _run(db, Query(table="orders", action="insert", values=[{"user_id": "u1", "total_amount": 30000}]))
    _run(db, Query(table="order_items", action="insert",
                   values=[{"order_id": 1, "product_id": 1, "quantity": 2, "price": 15000}]))

    res = _run(db, Query(table="orders", columns="id, items:order_items (quantity, product:product_id (name))"))
    assert res.data == [{"id": 1, "items": [{"quantity": 2, "product": {"name": "Taiyaki Cokelat"}}]}]


def test_exact_count_with_head(db):
    res = _run(db, Query(table="products", count="exact", head=True))
    assert res.count == 5
    assert res.data is None


def test_order_and_limit(db):
    res = _run(db, Query(table="products", columns="price", orders=[("price", False)], limit=2))
    assert [r["price"] for r in res.data] == [19000, 18000]


def test_single_without_row_is_not_found(db):
    with pytest.raises(NotFoundError):
        _run(db, Query(table="products", filters=[("id", "eq", 99)], single=True))
    res = _run(db, Query(table="products", filters=[("id", "eq", 99)], maybe_single=True))
    assert res.data is None


def test_unfiltered_delete_is_refused(db):
    with pytest.raises(BackendError) as exc:
        _run(db, Query(table="carts", action="delete"))
    assert exc.value.code == "21000"


def test_missing_required_column(db):
    with pytest.raises(BackendError) as exc:
        _run(db, Query(table="products", action="insert", values=[{"name": "No price"}]))
    assert exc.value.code == "23502"


def test_unknown_token_is_rejected(db):
    with pytest.raises(SessionExpired):
        _run(db, Query(table="products"), token="forged")
