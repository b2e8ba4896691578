import pytest

pytestmark = pytest.mark.anyio("asyncio")

BASE = "/admin/media/films/film-1"


@pytest.fixture
def film(documents):
    documents.put(
        "films",
        "film-1",
        {
            "title": "Night Train",
            "galleryUrls": ["a.jpg", "b.jpg", "c.jpg"],
            "galleryCoverIndex": 1,
            "posterUrl": "poster.jpg",
        },
    )
    return documents


async def test_get_media_roles(async_client, film):
    resp = await async_client.get(BASE)
    assert resp.status_code == 200, resp.text
    payload = resp.json()
    assert payload["cover_url"] == "b.jpg"
    assert payload["logo_url"] is None
    assert payload["poster_url"] == "poster.jpg"
    assert payload["display_cover_url"] == "b.jpg"
    assert [item["is_cover"] for item in payload["gallery"]] == [False, True, False]
    assert payload["validation"] == {"is_valid": True, "issues": []}
    assert film.writes == []


async def test_get_normalizes_legacy_document(async_client, documents):
    documents.put(
        "films",
        "legacy",
        {"galleryUrls": [{"url": "x.jpg"}, {"url": "y.jpg", "isCover": True}]},
    )
    resp = await async_client.get("/admin/media/films/legacy")
    assert resp.status_code == 200
    assert resp.json()["cover_index"] == 1


async def test_unknown_collection_and_missing_record(async_client, film):
    resp = await async_client.get("/admin/media/unknown/film-1")
    assert resp.status_code == 404
    resp = await async_client.get("/admin/media/films/missing")
    assert resp.status_code == 404


async def test_set_and_clear_cover(async_client, film):
    resp = await async_client.put(f"{BASE}/cover", json={"index": 2})
    assert resp.status_code == 200
    assert resp.json()["cover_url"] == "c.jpg"
    assert film.get("films", "film-1")["galleryCoverIndex"] == 2

    resp = await async_client.delete(f"{BASE}/cover")
    assert resp.status_code == 200
    # default-to-first-image when no cover is set
    assert resp.json()["cover_url"] == "a.jpg"
    assert "galleryCoverIndex" not in film.get("films", "film-1")


async def test_set_cover_out_of_range(async_client, film):
    resp = await async_client.put(f"{BASE}/cover", json={"index": 3})
    assert resp.status_code == 422
    assert film.writes == []


async def test_set_and_clear_logo(async_client, film):
    resp = await async_client.put(f"{BASE}/logo", json={"index": 0})
    assert resp.status_code == 200
    assert resp.json()["logo_url"] == "a.jpg"
    assert film.get("films", "film-1")["galleryLogoIndex"] == 0

    resp = await async_client.delete(f"{BASE}/logo")
    assert resp.status_code == 200
    assert resp.json()["logo_url"] is None


async def test_set_logo_out_of_range(async_client, film):
    resp = await async_client.put(f"{BASE}/logo", json={"index": -1})
    assert resp.status_code == 422


async def test_add_item_at_position(async_client, film):
    resp = await async_client.post(f"{BASE}/items", json={"url": "new.jpg", "position": 0})
    assert resp.status_code == 201
    payload = resp.json()
    assert [item["url"] for item in payload["gallery"]] == ["new.jpg", "a.jpg", "b.jpg", "c.jpg"]
    assert payload["cover_url"] == "b.jpg"
    stored = film.get("films", "film-1")
    assert stored["galleryCoverIndex"] == 2
    assert stored["title"] == "Night Train"


async def test_add_blank_item_is_rejected(async_client, film):
    resp = await async_client.post(f"{BASE}/items", json={"url": "   "})
    assert resp.status_code == 422


async def test_remove_cover_item(async_client, film):
    resp = await async_client.delete(f"{BASE}/items/1")
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["cover_index"] is None
    assert [item["url"] for item in payload["gallery"]] == ["a.jpg", "c.jpg"]


async def test_remove_item_out_of_range(async_client, film):
    resp = await async_client.delete(f"{BASE}/items/7")
    assert resp.status_code == 422


async def test_move_item(async_client, film):
    resp = await async_client.post(f"{BASE}/items/move", json={"from_index": 1, "to_index": 2})
    assert resp.status_code == 200
    payload = resp.json()
    assert [item["url"] for item in payload["gallery"]] == ["a.jpg", "c.jpg", "b.jpg"]
    assert payload["cover_url"] == "b.jpg"


async def test_move_item_out_of_range(async_client, film):
    resp = await async_client.post(f"{BASE}/items/move", json={"from_index": 0, "to_index": 3})
    assert resp.status_code == 422


async def test_repair_persists_valid_pointers(async_client, documents):
    documents.put(
        "films",
        "broken",
        {"galleryUrls": ["a.jpg"], "galleryCoverIndex": 4, "galleryLogoIndex": 0},
    )
    resp = await async_client.post("/admin/media/films/broken/repair")
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["validation"]["is_valid"] is True
    assert payload["cover_index"] == 0
    assert payload["logo_index"] is None
    stored = documents.get("films", "broken")
    assert stored["galleryCoverIndex"] == 0
    assert "galleryLogoIndex" not in stored


async def test_cover_onto_logo_index_is_rejected(async_client, documents):
    documents.put(
        "films",
        "dual",
        {"galleryUrls": ["a.jpg", "b.jpg"], "galleryCoverIndex": 0, "galleryLogoIndex": 1},
    )
    resp = await async_client.put("/admin/media/films/dual/cover", json={"index": 1})
    assert resp.status_code == 422
    assert resp.json()["detail"]["issues"] == ["Same index 1 is used for both cover and logo"]
    stored = documents.get("films", "dual")
    assert (stored["galleryCoverIndex"], stored["galleryLogoIndex"]) == (0, 1)
    assert documents.writes == []


async def test_edit_keeping_stored_bad_pointer_is_rejected(async_client, documents):
    documents.put(
        "films",
        "stale",
        {"galleryUrls": ["a.jpg", "b.jpg"], "galleryCoverIndex": 7},
    )
    resp = await async_client.put("/admin/media/films/stale/logo", json={"index": 1})
    assert resp.status_code == 422
    assert resp.json()["detail"]["issues"] == [
        "Cover index 7 is out of bounds (gallery has 2 images)"
    ]
    assert documents.writes == []

    resp = await async_client.post("/admin/media/films/stale/repair")
    assert resp.status_code == 200
    resp = await async_client.put("/admin/media/films/stale/logo", json={"index": 1})
    assert resp.status_code == 200
    stored = documents.get("films", "stale")
    assert (stored["galleryCoverIndex"], stored["galleryLogoIndex"]) == (0, 1)


async def test_clearing_a_bad_pointer_is_allowed(async_client, documents):
    documents.put(
        "films",
        "stale",
        {"galleryUrls": ["a.jpg"], "galleryCoverIndex": 7},
    )
    resp = await async_client.delete("/admin/media/films/stale/cover")
    assert resp.status_code == 200
    assert resp.json()["validation"]["is_valid"] is True
