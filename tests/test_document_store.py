"""Tests for the query matcher and both store backends."""

import asyncio
import re
from datetime import datetime, timezone

import pytest

from booklog.services.document_store import apply_query, matches
from booklog.services.memory_store import MemoryDocumentStore
from booklog.services.sqlite_store import SQLiteDocumentStore


def test_equality_and_missing_field():
    doc = {"title": "Dune", "author": "Frank Herbert"}
    assert matches(doc, {"title": "Dune"})
    assert not matches(doc, {"title": "Emma"})
    # None matches an absent field (legacy records without owner)
    assert matches(doc, {"username": None})
    assert not matches({"username": "alice"}, {"username": None})


def test_regex_case_insensitive():
    doc = {"title": "The Left Hand of Darkness"}
    assert matches(doc, {"title": {"$regex": "left hand", "$options": "i"}})
    assert not matches(doc, {"title": {"$regex": "left hand"}})
    assert matches(doc, {"title": re.compile("darkness", re.IGNORECASE)})
    assert not matches({"title": None}, {"title": {"$regex": "x", "$options": "i"}})


def test_in_exists_ne_and_or():
    doc = {"key": "/works/OL1W", "review": "Loved it"}
    assert matches(doc, {"key": {"$in": ["/works/OL1W", "/works/OL2W"]}})
    assert not matches(doc, {"key": {"$in": []}})
    assert matches(doc, {"review": {"$exists": True, "$ne": ""}})
    assert not matches({"review": ""}, {"review": {"$exists": True, "$ne": ""}})
    assert not matches({}, {"review": {"$exists": True, "$ne": ""}})
    assert matches(doc, {"$or": [{"key": "nope"}, {"review": "Loved it"}]})
    assert not matches(doc, {"$or": [{"key": "nope"}, {"review": "nope"}]})


def test_unknown_operator_rejected():
    with pytest.raises(ValueError):
        matches({"a": 1}, {"a": {"$gt": 0}})


def test_apply_query_sorts_and_limits():
    docs = [
        {"title": "b", "rating": 3},
        {"title": "A", "rating": None},
        {"title": "c", "rating": 5},
    ]
    by_title = apply_query(docs, sort=[("title", 1)])
    assert [d["title"] for d in by_title] == ["A", "b", "c"]

    by_rating = apply_query(docs, sort=[("rating", -1)], limit=2)
    assert [d["rating"] for d in by_rating] == [5, 3]


def test_memory_store_crud_returns_copies():
    store = MemoryDocumentStore("books")

    async def run():
        doc = await store.insert({"title": "Dune", "tags": ["sf"]})
        doc["tags"].append("mutated")
        fetched = await store.find_by_id(doc["_id"])
        assert fetched["tags"] == ["sf"]

        updated = await store.update_by_id(doc["_id"], {"title": "Dune Messiah", "_id": "x"})
        assert updated["_id"] == doc["_id"]
        assert updated["title"] == "Dune Messiah"

        assert await store.update_by_id("missing", {"title": "x"}) is None
        assert await store.find_one({"title": "Dune Messiah"}) is not None
        assert await store.remove_by_id(doc["_id"]) is True
        assert await store.remove_by_id(doc["_id"]) is False

    asyncio.run(run())


def test_sqlite_store_round_trips_documents(tmp_path):
    store = SQLiteDocumentStore("books", str(tmp_path / "db" / "booklog.db"))
    created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    async def run():
        doc = await store.insert({"title": "Emma", "username": "alice", "createdAt": created})
        await store.insert({"title": "Persuasion", "username": "bob", "createdAt": created})

        fetched = await store.find_by_id(doc["_id"])
        assert fetched["createdAt"] == created
        assert fetched["title"] == "Emma"

        mine = await store.find({"username": "alice"})
        assert [d["title"] for d in mine] == ["Emma"]

        await store.update_by_id(doc["_id"], {"rating": 4})
        assert (await store.find_by_id(doc["_id"]))["rating"] == 4

        assert await store.remove_by_id(doc["_id"]) is True
        assert await store.find_by_id(doc["_id"]) is None

        await store.clear()
        assert await store.find() == []

    asyncio.run(run())


def test_sqlite_collections_are_isolated(tmp_path):
    path = str(tmp_path / "booklog.db")
    books = SQLiteDocumentStore("books", path)
    searches = SQLiteDocumentStore("searches", path)

    async def run():
        await books.insert({"title": "Dune"})
        await searches.insert({"term": "dune"})
        assert len(await books.find()) == 1
        assert (await searches.find())[0]["term"] == "dune"

    asyncio.run(run())


def test_sqlite_concurrent_updates_keep_disjoint_fields(tmp_path):
    store = SQLiteDocumentStore("books", str(tmp_path / "booklog.db"))

    async def run():
        ids = [(await store.insert({"title": f"Book {i}"}))["_id"] for i in range(50)]
        for doc_id in ids:
            await asyncio.gather(
                store.update_by_id(doc_id, {"publishYear": 1965}),
                store.update_by_id(doc_id, {"coverMimeType": "image/png"}),
                store.update_by_id(doc_id, {"review": "Loved it"}),
            )
        return await store.find()

    for doc in asyncio.run(run()):
        assert doc["publishYear"] == 1965
        assert doc["coverMimeType"] == "image/png"
        assert doc["review"] == "Loved it"


def test_sqlite_update_missing_document(tmp_path):
    store = SQLiteDocumentStore("books", str(tmp_path / "booklog.db"))
    assert asyncio.run(store.update_by_id("missing", {"rating": 3})) is None
