import pytest

from bestofgoa.entities import HOTEL_STEPS


TAJ_PLACE = {
    "place_id": "ChIJ-taj",
    "name": "Taj Exotica Resort & Spa",
    "formatted_address": "Benaulim, Goa 403716, India",
    "geometry": {"location": {"lat": 15.2494, "lng": 73.9237}},
    "rating": 4.6,
    "user_ratings_total": 5200,
}


async def _start_hotel(client, **overrides):
    body = {
        "place_id": TAJ_PLACE["place_id"],
        "search_query": "Taj Exotica",
        "place_data": TAJ_PLACE,
        "override": False,
    }
    body.update(overrides)
    return await client.post("/admin/hotels/start-extraction", json=body)


@pytest.mark.asyncio
async def test_start_extraction_creates_stub_and_dispatches(client, dispatch_task):
    response = await _start_hotel(client)
    assert response.status_code == 200
    data = response.json()
    hotel_id = data["entity_id"]
    assert data["hotel_id"] == hotel_id
    assert data["slug"] == "taj-exotica-resort-spa-benaulim"
    assert data["status"] == "pending"

    assert dispatch_task.calls == [("hotel", hotel_id, "ChIJ-taj", "Taj Exotica", TAJ_PLACE)]

    review = (await client.get(f"/admin/hotels/{hotel_id}/review")).json()
    record = review["record"]
    assert record["name"] == "Taj Exotica Resort & Spa"
    assert record["area"] == "Benaulim"
    assert record["latitude"] == pytest.approx(15.2494)
    assert record["google_review_count"] == 5200
    assert record["active"] is False


@pytest.mark.asyncio
async def test_status_lists_every_template_step(client):
    hotel_id = (await _start_hotel(client)).json()["entity_id"]

    response = await client.get(f"/admin/hotels/extraction-status/{hotel_id}")
    assert response.status_code == 200
    data = response.json()
    assert data["hotel_id"] == hotel_id
    assert data["status"] == "pending"
    assert [s["name"] for s in data["steps"]] == [s.name for s in HOTEL_STEPS]
    assert data["steps"][0]["status"] == "completed"
    assert data["steps"][0]["completed_at"] is not None
    assert all(s["status"] == "pending" for s in data["steps"][1:])
    assert data["progress_percentage"] == round(1 / len(HOTEL_STEPS) * 100)


@pytest.mark.asyncio
async def test_progress_callbacks_drive_status(client):
    hotel_id = (await _start_hotel(client)).json()["entity_id"]
    base = f"/admin/hotels/{hotel_id}"

    response = await client.post(f"{base}/extraction-progress", json={
        "step": "apify_fetch",
        "status": "completed",
        "extracted": {"phone": "+91 832 277 1234", "star_rating": 5},
        "apify_output": {"title": "Taj Exotica", "totalScore": 4.6},
    })
    assert response.status_code == 200
    assert response.json()["status"] == "processing"
    assert response.json()["progress_percentage"] == round(2 / len(HOTEL_STEPS) * 100)

    await client.post(f"{base}/extraction-progress", json={
        "step": "process_images",
        "status": "running",
        "images_processed": 3,
        "images_total": 10,
        "current_cost": 0.12,
        "images": [{"url": "https://cdn.example.com/taj/1.jpg", "storage_key": "hotels/taj/1.jpg"}],
    })
    await client.post(f"{base}/extraction-progress", json={
        "step": "ai_enhancement",
        "status": "completed",
        "relations": {"amenities": ["Spa", "Pool", "Spa"], "unknown_kind": ["x"]},
        "children": {"faqs": [{"question": "Is there parking?", "answer": "Yes"}]},
    })

    data = (await client.get(f"/admin/hotels/extraction-status/{hotel_id}")).json()
    steps = {s["name"]: s for s in data["steps"]}
    assert steps["process_images"]["status"] == "running"
    assert steps["process_images"]["images_processed"] == 3
    assert steps["process_images"]["images_total"] == 10
    assert steps["process_images"]["completed_at"] is None

    extracted = data["extracted_data"]
    assert extracted["phone"] == "+91 832 277 1234"
    assert extracted["star_rating"] == 5
    assert extracted["apify_output"]["totalScore"] == 4.6
    assert [a["name"] for a in extracted["amenities"]] == ["Pool", "Spa"]
    assert extracted["faqs"][0]["question"] == "Is there parking?"
    assert extracted["images"][0]["url"] == "https://cdn.example.com/taj/1.jpg"

    response = await client.post(f"{base}/extraction-progress", json={
        "step": "data_mapping",
        "status": "completed",
        "job_status": "completed",
    })
    assert response.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_progress_callback_cannot_change_slug(client):
    data = (await _start_hotel(client)).json()
    await client.post(f"/admin/hotels/{data['entity_id']}/extraction-progress", json={
        "step": "ai_enhancement",
        "status": "completed",
        "extracted": {"slug": "something-else", "name": "Taj Exotica Goa"},
    })
    record = (await client.get(f"/admin/hotels/{data['entity_id']}/review")).json()["record"]
    assert record["slug"] == data["slug"]
    assert record["name"] == "Taj Exotica Goa"


@pytest.mark.asyncio
async def test_progress_callback_rejects_unknown_step(client):
    hotel_id = (await _start_hotel(client)).json()["entity_id"]
    response = await client.post(f"/admin/hotels/{hotel_id}/extraction-progress", json={
        "step": "firecrawl_menu",
        "status": "completed",
    })
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_REQUEST"


@pytest.mark.asyncio
async def test_start_extraction_conflicts_without_override(client, make_business):
    existing_id = await make_business(google_place_id="place-1")
    response = await client.post("/admin/restaurants/start-extraction", json={
        "place_id": "place-1",
        "search_query": "Fisherman's Wharf",
        "place_data": {"name": "Fisherman's Wharf"},
    })
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "DUPLICATE_ENTITY"
    assert body["existing_id"] == existing_id


@pytest.mark.asyncio
async def test_start_extraction_override_replaces_existing(client, make_business, dummy_s3, dispatch_task):
    existing_id = await make_business(
        google_place_id="place-1",
        images=[{"url": "https://cdn.example.com/fw/1.jpg", "storage_key": "restaurants/fw/1.jpg"}],
    )
    response = await client.post("/admin/restaurants/start-extraction", json={
        "place_id": "place-1",
        "search_query": "Fisherman's Wharf",
        "place_data": {"name": "Fisherman's Wharf", "formatted_address": "Cavelossim, Goa"},
        "override": True,
    })
    assert response.status_code == 200
    new_id = response.json()["restaurant_id"]
    assert new_id != existing_id
    assert response.json()["slug"] == "fishermans-wharf-cavelossim"
    assert dummy_s3.deleted == ["restaurants/fw/1.jpg"]
    assert len(dispatch_task.calls) == 1

    assert (await client.get(f"/admin/restaurants/{existing_id}/review")).status_code == 404
    assert (await client.get(f"/admin/restaurants/{new_id}/review")).status_code == 200


@pytest.mark.asyncio
async def test_slug_is_made_unique(client, make_business):
    await make_business(google_place_id="other", slug="fishermans-wharf-cavelossim")
    response = await client.post("/admin/restaurants/start-extraction", json={
        "place_id": "place-2",
        "place_data": {"name": "Fisherman's Wharf", "formatted_address": "Cavelossim, Goa"},
    })
    assert response.json()["slug"] == "fishermans-wharf-cavelossim-1"


@pytest.mark.asyncio
async def test_check_duplicate_requires_place_id_and_name(client):
    response = await client.post("/admin/restaurants/check-duplicate", json={"placeId": "p", "area": "Panjim"})
    assert response.status_code == 400
    response = await client.post("/admin/restaurants/check-duplicate", json={"name": "x", "area": "Panjim"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_check_duplicate_without_area_still_matches_place_id(client, make_business):
    existing_id = await make_business()
    data = (await client.post("/admin/restaurants/check-duplicate", json={
        "placeId": "place-1", "name": "Fisherman's Wharf", "area": "",
    })).json()
    assert data["match_type"] == "exact"
    assert [e["id"] for e in data["entities"]] == [existing_id]

    data = (await client.post("/admin/restaurants/check-duplicate", json={
        "placeId": "place-new", "name": "Fisherman's Wharf",
    })).json()
    assert data["exists"] is False


@pytest.mark.asyncio
async def test_check_duplicate_exact_match(client, make_business):
    existing_id = await make_business()
    response = await client.post("/admin/restaurants/check-duplicate", json={
        "placeId": "place-1", "name": "Anything", "area": "Elsewhere",
    })
    data = response.json()
    assert data["exists"] is True
    assert data["match_type"] == "exact"
    assert data["entities"][0]["id"] == existing_id
    assert data["restaurants"] == data["entities"]


@pytest.mark.asyncio
async def test_check_duplicate_fuzzy_match_in_same_area(client, make_business):
    existing_id = await make_business()
    data = (await client.post("/admin/restaurants/check-duplicate", json={
        "placeId": "place-new", "name": "Fishermans Wharf", "area": "Cavelossim",
    })).json()
    assert data["exists"] is True
    assert data["match_type"] == "fuzzy"
    assert [e["id"] for e in data["entities"]] == [existing_id]


@pytest.mark.asyncio
async def test_check_duplicate_allows_different_outlet(client, make_business):
    await make_business()
    data = (await client.post("/admin/restaurants/check-duplicate", json={
        "placeId": "place-new", "name": "Fisherman's Wharf Express", "area": "Panjim",
    })).json()
    assert data == {"success": True, "exists": False, "match_type": None, "entities": [], "restaurants": []}


@pytest.mark.asyncio
async def test_check_duplicate_is_scoped_to_entity_type(client, make_business):
    await make_business()
    data = (await client.post("/admin/hotels/check-duplicate", json={
        "placeId": "place-1", "name": "Fisherman's Wharf", "area": "Cavelossim",
    })).json()
    assert data["exists"] is False


@pytest.mark.asyncio
async def test_queue_lists_unfinished_extractions(client, make_business):
    await make_business()
    pending_id = await make_business(
        name="Thalassa", slug="thalassa-siolim", google_place_id="place-2", extraction_status="processing",
    )
    data = (await client.get("/admin/restaurants/queue")).json()
    assert data["total"] == 1
    assert data["queue"][0]["id"] == pending_id
    assert data["queue"][0]["status"] == "processing"


@pytest.mark.asyncio
async def test_re_extract_refuses_running_job(client, make_business):
    entity_id = await make_business(extraction_status="in_progress")
    response = await client.post(f"/admin/restaurants/{entity_id}/re-extract")
    assert response.status_code == 409
    assert response.json()["error"] == "EXTRACTION_IN_PROGRESS"


@pytest.mark.asyncio
async def test_re_extract_resets_progress(client, make_business, dispatch_task):
    entity_id = await make_business(
        extraction_status="failed",
        extraction_progress={"apify_fetch": {"status": "failed", "timestamp": "t", "error": "quota"}},
    )
    response = await client.post(f"/admin/restaurants/{entity_id}/re-extract")
    assert response.status_code == 200
    assert response.json()["status"] == "pending"
    assert dispatch_task.calls == [("restaurant", entity_id, "place-1", "Fisherman's Wharf", {})]

    status = (await client.get(f"/admin/restaurants/extraction-status/{entity_id}")).json()
    apify = next(s for s in status["steps"] if s["name"] == "apify_fetch")
    assert apify["status"] == "pending"
    assert apify["error"] is None


@pytest.mark.asyncio
async def test_accented_names_get_readable_slugs(client):
    response = await client.post("/admin/restaurants/start-extraction", json={
        "place_id": "place-cafe",
        "place_data": {"name": "Café Ourem", "formatted_address": "Panjim, Goa"},
    })
    assert response.json()["slug"] == "cafe-ourem-panjim"
