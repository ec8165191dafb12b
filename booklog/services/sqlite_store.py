import asyncio
import json
import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from booklog.errors import StoreUnavailable
from booklog.services.document_store import (
    Document,
    DocumentStore,
    Query,
    Sort,
    apply_query,
)

logger = logging.getLogger("booklog.store")


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode_object(obj: Dict[str, Any]) -> Any:
    if len(obj) == 1 and "$date" in obj:
        return datetime.fromisoformat(obj["$date"])
    return obj


def _dumps(doc: Document) -> str:
    return json.dumps(doc, default=_encode_value)


def _loads(body: str) -> Document:
    return json.loads(body, object_hook=_decode_object)


class SQLiteDocumentStore(DocumentStore):
    """A document store persisted as JSON rows in SQLite.

    All collections share one database file. Queries are evaluated in
    Python over the collection's rows, which is fine for a personal
    library of a few thousand books.

    Each operation opens its own connection on a worker thread so that the
    event loop is never blocked on disk I/O.
    """

    def __init__(self, collection: str, db_path: str) -> None:
        self.collection = collection
        self.db_path = db_path
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Autocommit connection, closed on exit."""
        conn = sqlite3.connect(self.db_path, timeout=5, isolation_level=None)
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the write lock from the first read until commit."""
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _init_db(self) -> None:
        """Create the documents table if it doesn't exist."""
        try:
            directory = os.path.dirname(self.db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with self._connect() as conn:
                conn.execute(
                    "CREATE TABLE IF NOT EXISTS documents ("
                    "collection TEXT NOT NULL, id TEXT NOT NULL, body TEXT NOT NULL, "
                    "PRIMARY KEY (collection, id))"
                )
        except (OSError, sqlite3.Error) as e:
            logger.error(f"Failed to initialise document store at {self.db_path}: {e}")
            raise StoreUnavailable(f"Document store unavailable: {e}") from e

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as e:
            logger.error(f"Document store error on '{self.collection}': {e}")
            raise StoreUnavailable(f"Document store unavailable: {e}") from e

    def _load_all(self) -> List[Document]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT body FROM documents WHERE collection = ?", (self.collection,)
            ).fetchall()
        return [_loads(row[0]) for row in rows]

    def _load_one(self, doc_id: str) -> Optional[Document]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT body FROM documents WHERE collection = ? AND id = ?",
                (self.collection, doc_id),
            ).fetchone()
        return _loads(row[0]) if row else None

    def _write(self, doc: Document) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO documents (collection, id, body) VALUES (?, ?, ?)",
                (self.collection, doc["_id"], _dumps(doc)),
            )

    def _update(self, doc_id: str, patch: Document) -> Optional[Document]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT body FROM documents WHERE collection = ? AND id = ?",
                (self.collection, doc_id),
            ).fetchone()
            if row is None:
                return None
            doc = _loads(row[0])
            doc.update({k: v for k, v in patch.items() if k != "_id"})
            conn.execute(
                "UPDATE documents SET body = ? WHERE collection = ? AND id = ?",
                (_dumps(doc), self.collection, doc_id),
            )
        return doc

    def _delete(self, doc_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (self.collection, doc_id),
            )
            return cursor.rowcount > 0

    def _delete_all(self) -> None:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ?", (self.collection,)
            )
            logger.info(f"Removed {cursor.rowcount} documents from '{self.collection}'")

    async def find(
        self,
        query: Optional[Query] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> List[Document]:
        docs = await self._run(self._load_all)
        return apply_query(docs, query, sort, limit)

    async def find_by_id(self, doc_id: str) -> Optional[Document]:
        return await self._run(self._load_one, doc_id)

    async def insert(self, doc: Document) -> Document:
        stored = dict(doc)
        stored["_id"] = uuid.uuid4().hex
        await self._run(self._write, stored)
        return stored

    async def update_by_id(self, doc_id: str, patch: Document) -> Optional[Document]:
        return await self._run(self._update, doc_id, patch)

    async def remove_by_id(self, doc_id: str) -> bool:
        return await self._run(self._delete, doc_id)

    async def clear(self) -> None:
        await self._run(self._delete_all)
