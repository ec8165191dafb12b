"""HTTP surface: routing, auth header, status codes and JSON shapes."""

import base64

from booklog.models import CoverImage, ProviderDoc, WorkDetail
from booklog.services.covers import PLACEHOLDER_COVER

ALICE = {"X-Authenticated-User": "alice"}
BOB = {"X-Authenticated-User": "bob"}


def _create(client, headers=ALICE, **fields):
    payload = {"title": "Dune", "author": "Frank Herbert", "publishYear": 1965}
    payload.update(fields)
    return client.post("/api/books/my-library", json=payload, headers=headers)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_create_requires_auth(client):
    response = client.post("/api/books/my-library", json={"title": "Dune"})
    assert response.status_code == 401
    assert "error" in response.get_json()


def test_create_validation_error_lists_fields(client):
    response = client.post(
        "/api/books/my-library", json={"title": "", "rating": 11}, headers=ALICE
    )
    assert response.status_code == 422
    body = response.get_json()
    assert set(body["fields"]) == {"title", "rating"}


def test_create_non_object_body(client):
    response = client.post("/api/books/my-library", json=["Dune"], headers=ALICE)
    assert response.status_code == 422


def test_create_and_get_book(client):
    created = _create(client)
    assert created.status_code == 201
    book = created.get_json()
    assert book["username"] == "alice"
    assert book["coverMimeType"] == "image/jpeg"

    fetched = client.get(f"/api/books/my-library/{book['_id']}", headers=ALICE)
    assert fetched.status_code == 200
    assert fetched.get_json()["title"] == "Dune"


def test_other_user_gets_404(client):
    book = _create(client).get_json()
    path = f"/api/books/my-library/{book['_id']}"

    assert client.get(path, headers=BOB).status_code == 404
    assert client.put(path, json={"rating": 1}, headers=BOB).status_code == 404
    assert client.delete(path, headers=BOB).status_code == 404
    assert client.get(path, headers=ALICE).get_json()["rating"] is None


def test_update_and_delete(client):
    book = _create(client).get_json()
    path = f"/api/books/my-library/{book['_id']}"

    updated = client.put(path, json={"review": "Spice", "rating": 4}, headers=ALICE)
    assert updated.status_code == 200
    assert updated.get_json()["rating"] == 4

    assert client.put(path, json={"rating": "4"}, headers=ALICE).status_code == 422

    assert client.delete(path, headers=ALICE).get_json() == {"ok": True}
    assert client.get(path, headers=ALICE).status_code == 404


def test_list_library_rows(client):
    _create(client, rating=5)
    _create(client, title="Emma", author="Jane Austen", publishYear=1815, rating=2)
    _create(client, headers=BOB, title="Persuasion", author="Jane Austen", publishYear=1817)

    response = client.get("/api/books/my-library?sort=rating:asc", headers=ALICE)
    rows = response.get_json()
    assert [r["title"] for r in rows] == ["Emma", "Dune"]
    assert set(rows[0]) == {
        "_id",
        "title",
        "author",
        "publishYear",
        "rating",
        "review",
        "coverImageBase64",
        "coverMimeType",
        "coverUrl",
    }

    filtered = client.get("/api/books/my-library?author=austen", headers=ALICE).get_json()
    assert [r["title"] for r in filtered] == ["Emma"]


def test_search_marks_saved_books(client, provider):
    provider.search_results["dune"] = [
        ProviderDoc("/works/OL1W", "Dune", "Frank Herbert", 1965, 101),
        ProviderDoc("/works/OL2W", "Dune Messiah", "Frank Herbert", 1969, None),
    ]
    saved = _create(client, openLibraryWorkKey="/works/OL1W").get_json()

    results = client.get("/api/books/search?q=dune", headers=ALICE).get_json()
    assert results[0]["saved"] is True
    assert results[0]["savedId"] == saved["_id"]
    assert results[1]["saved"] is False

    history = client.get("/api/books/last-search", headers=ALICE).get_json()
    assert [h["term"] for h in history] == ["dune"]

    home = client.get("/api/books/home", headers=ALICE).get_json()
    assert [r["title"] for r in home] == ["Dune", "Dune Messiah"]
    history = client.get("/api/books/last-search", headers=ALICE).get_json()
    assert len(history) == 1


def test_search_requires_term(client):
    assert client.get("/api/books/search?q=", headers=ALICE).status_code == 422


def test_search_provider_failure_is_502(client):
    response = client.get("/api/books/search?q=unconfigured", headers=ALICE)
    assert response.status_code == 502


def test_front_cover_routes(client, provider):
    provider.covers[42] = CoverImage(b"\xff\xd8cover", "image/jpeg")
    provider.works["/works/OL1W"] = WorkDetail(first_publish_year=1965)
    with_cover = _create(client, coverId=42, openLibraryWorkKey="/works/OL1W").get_json()
    without = _create(client, title="Coverless").get_json()

    response = client.get(f"/api/books/front-cover/{with_cover['_id']}")
    assert response.status_code == 200
    assert response.data == b"\xff\xd8cover"
    assert response.mimetype == "image/jpeg"

    legacy = client.get(f"/api/books/library/front-cover/{without['_id']}")
    assert legacy.data == PLACEHOLDER_COVER.data
    assert legacy.mimetype == "image/png"

    assert client.get("/api/books/front-cover/missing").status_code == 404


def test_detail_cover_url_points_at_stored_bytes(client):
    book = _create(
        client, coverImageBase64=base64.b64encode(b"img").decode(), coverMimeType="image/png"
    ).get_json()
    assert book["coverUrl"] == f"/api/books/front-cover/{book['_id']}"


def test_recent_selections(client):
    assert client.get("/api/recents/list").status_code == 401

    for i in range(1, 7):
        response = client.post(
            "/api/books/recent",
            json={"openLibraryWorkKey": f"OL{i}W", "title": f"Book {i}"},
            headers=ALICE,
        )
        assert response.status_code == 200

    entries = client.get("/api/recents/list", headers=ALICE).get_json()
    assert [e["openLibraryWorkKey"] for e in entries] == [
        "/works/OL6W",
        "/works/OL5W",
        "/works/OL4W",
        "/works/OL3W",
        "/works/OL2W",
    ]
    assert client.get("/api/recents/list", headers=BOB).get_json() == []


def test_recent_selection_validation(client):
    response = client.post("/api/books/recent", json={"title": "X"}, headers=ALICE)
    assert response.status_code == 422
    assert "openLibraryWorkKey" in response.get_json()["fields"]


def test_cli_search_and_init_db(client, provider):
    from booklog.app import app

    provider.search_results["dune"] = [ProviderDoc("/works/OL1W", "Dune", "Frank Herbert", 1965, 101)]
    _create(client, openLibraryWorkKey="/works/OL1W")
    runner = app.test_cli_runner()

    result = runner.invoke(args=["search", "dune", "--user", "alice"])
    assert result.exit_code == 0
    assert '"saved": true' in result.output

    result = runner.invoke(args=["init-db"])
    assert result.exit_code == 0
    assert client.get("/api/books/my-library", headers=ALICE).get_json() == []


def test_cli_search_provider_failure(client):
    from booklog.app import app

    result = app.test_cli_runner().invoke(args=["search", "nothing"])
    assert result.exit_code != 0
    assert "no canned search" in result.output
