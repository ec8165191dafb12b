import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Tuple

import click
from flask import Flask, Response, jsonify, request

from booklog import config
from booklog.errors import BooklogError, ValidationError
from booklog.models import RequestContext, serialize_all
from booklog.services.covers import CoverImageResolver
from booklog.services.document_store import DocumentStore
from booklog.services.events import EventBus
from booklog.services.library import BOOK_UPDATED, LibraryCatalog
from booklog.services.memory_store import MemoryDocumentStore
from booklog.services.metadata_provider import MetadataProvider
from booklog.services.open_library import OpenLibraryProvider
from booklog.services.publish_year import PublishYearResolver
from booklog.services.recents import RecentSelections, SearchHistory
from booklog.services.search import SearchAggregator
from booklog.services.sqlite_store import SQLiteDocumentStore

logging.basicConfig(
    level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger("booklog")

app = Flask(__name__)
app.config["SECRET_KEY"] = config.SECRET_KEY

COLLECTIONS = ("books", "recents", "searches")

_stores: Dict[str, DocumentStore] = {}

events = EventBus()


def get_store(collection: str) -> DocumentStore:
    """Get or create the store for a collection (in memory in test mode)."""
    if collection not in _stores:
        if config.TEST_MODE:
            _stores[collection] = MemoryDocumentStore(collection)
        else:
            _stores[collection] = SQLiteDocumentStore(collection, config.DB_PATH)
    return _stores[collection]


def make_provider() -> MetadataProvider:
    return OpenLibraryProvider()


@dataclass
class Services:
    catalog: LibraryCatalog
    search: SearchAggregator
    recents: RecentSelections


@asynccontextmanager
async def open_services() -> AsyncIterator[Services]:
    """Wire the services around a provider that lives for one request.

    An httpx client is bound to the event loop it was created on and Flask
    runs every async view on a fresh loop, so nothing network-facing is
    shared between requests.
    """
    async with make_provider() as provider:
        books = get_store("books")
        history = SearchHistory(get_store("searches"))
        yield Services(
            catalog=LibraryCatalog(
                books,
                CoverImageResolver(provider, books),
                PublishYearResolver(provider, books),
                events,
            ),
            search=SearchAggregator(provider, books, history),
            recents=RecentSelections(get_store("recents")),
        )


async def _log_book_update(payload: Dict[str, Any]) -> None:
    logger.info(f"Book {payload.get('_id')} updated")


events.subscribe(BOOK_UPDATED, _log_book_update)


def current_context() -> RequestContext:
    """Build the caller context from the header set by the auth proxy."""
    username = (request.headers.get(config.AUTH_USER_HEADER) or "").strip()
    return RequestContext(username=username or None)


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError({"body": "must be a JSON object"})
    return data


@app.errorhandler(BooklogError)
def handle_booklog_error(exc: BooklogError) -> Tuple[Response, int]:
    body: Dict[str, Any] = {"error": exc.message}
    if isinstance(exc, ValidationError):
        body["fields"] = exc.fields
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.path} failed: {exc.message}")
    return jsonify(body), exc.status_code


@app.route("/health")
def health():
    return {"status": "ok"}


# -----------------------------
# Search
# -----------------------------


@app.route("/api/books/search", methods=["GET"])
async def search_books():
    async with open_services() as services:
        results = await services.search.search(current_context(), request.args.get("q", ""))
    return jsonify(serialize_all(results))


@app.route("/api/books/home", methods=["GET"])
async def home():
    async with open_services() as services:
        results = await services.search.home(current_context())
    return jsonify(serialize_all(results))


@app.route("/api/books/last-search", methods=["GET"])
async def last_search():
    async with open_services() as services:
        entries = await services.search.last_searches(current_context())
    return jsonify(serialize_all(entries))


# -----------------------------
# My library
# -----------------------------


@app.route("/api/books/my-library", methods=["POST"])
async def create_in_library():
    async with open_services() as services:
        record = await services.catalog.create(current_context(), _json_body())
    return jsonify(record.to_detail_dict()), 201


@app.route("/api/books/my-library", methods=["GET"])
async def list_library():
    async with open_services() as services:
        records = await services.catalog.list(
            current_context(),
            q=request.args.get("q"),
            author=request.args.get("author"),
            has_review=request.args.get("hasReview"),
            sort=request.args.get("sort"),
        )
    return jsonify([r.to_library_row() for r in records])


@app.route("/api/books/my-library/<book_id>", methods=["GET"])
async def get_from_library(book_id: str):
    async with open_services() as services:
        record = await services.catalog.get(current_context(), book_id)
    return jsonify(record.to_detail_dict())


@app.route("/api/books/my-library/<book_id>", methods=["PUT"])
async def update_library(book_id: str):
    async with open_services() as services:
        record = await services.catalog.update(current_context(), book_id, _json_body())
    return jsonify(record.to_detail_dict())


@app.route("/api/books/my-library/<book_id>", methods=["DELETE"])
async def remove_from_library(book_id: str):
    async with open_services() as services:
        await services.catalog.delete(current_context(), book_id)
    return jsonify({"ok": True})


@app.route("/api/books/front-cover/<book_id>", methods=["GET"])
@app.route("/api/books/library/front-cover/<book_id>", methods=["GET"])
async def front_cover(book_id: str):
    async with open_services() as services:
        image = await services.catalog.front_cover(book_id)
    return Response(image.data, mimetype=image.mime_type)


# -----------------------------
# Recently selected books
# -----------------------------


@app.route("/api/books/recent", methods=["POST"])
async def add_recent():
    async with open_services() as services:
        await services.recents.add(current_context(), _json_body())
    return jsonify({"ok": True})


@app.route("/api/recents/list", methods=["GET"])
async def list_recents():
    async with open_services() as services:
        entries = await services.recents.list(current_context())
    return jsonify(serialize_all(entries))


# -----------------------------
# CLI
# -----------------------------


@app.cli.command("init-db")
def init_db_command():
    """Delete every stored book, recent selection and search."""

    async def clear_all() -> None:
        for collection in COLLECTIONS:
            await get_store(collection).clear()

    asyncio.run(clear_all())
    click.echo("Store re-initialized (all data was deleted).")


@app.cli.command("search")
@click.argument("term")
@click.option("--user", default=None, help="Search as this user.")
def search_command(term: str, user: str):
    """Search Open Library and print the merged results as JSON."""

    async def run() -> Any:
        async with open_services() as services:
            # The home/search split only matters for the HTTP surface
            results = await services.search.build_results(RequestContext(user), term)
        return serialize_all(results)

    try:
        click.echo(json.dumps(asyncio.run(run()), indent=2))
    except BooklogError as exc:
        raise click.ClickException(exc.message) from exc


if __name__ == "__main__":
    app.run(debug=config.LOG_LEVEL == "DEBUG")
