import pytest


IMAGES = [
    {"url": "https://cdn.example.com/fw/1.jpg", "storage_key": "restaurants/fw/1.jpg", "status": "approved", "is_hero": True, "display_order": 1},
    {"url": "https://cdn.example.com/fw/2.jpg", "storage_key": "restaurants/fw/2.jpg", "status": "pending", "display_order": 2},
    {"url": "https://cdn.example.com/fw/3.jpg", "storage_key": "restaurants/fw/3.jpg", "status": "rejected", "display_order": 3},
]


@pytest.mark.asyncio
async def test_review_payload_shape(client, make_business):
    entity_id = await make_business(
        attributes={"price_level": 2, "hours": "Mon: 11-23"},
        items=[
            {"kind": "menu_item", "display_order": 0, "data": {"name": "Prawn Balchao", "price": "450 INR"}},
            {"kind": "faq", "display_order": 0, "data": {"question": "Parking?", "answer": "Yes"}},
        ],
        images=IMAGES[:1],
        google_review_count=812,
    )
    response = await client.get(f"/admin/restaurants/{entity_id}/review")
    assert response.status_code == 200
    data = response.json()
    assert data["record"]["price_level"] == 2
    assert data["record"]["hours"] == "Mon: 11-23"
    assert "apify_output" not in data["record"]
    assert set(data["relations"]) == {"cuisines", "categories", "features", "meals", "good_for"}
    assert data["children"]["menu_items"][0]["name"] == "Prawn Balchao"
    assert data["children"]["faqs"][0]["question"] == "Parking?"
    assert data["images"][0]["is_hero"] is True
    assert data["review_count"] == 812


@pytest.mark.asyncio
async def test_review_update_saves_fields_and_relations(client, make_business):
    entity_id = await make_business()
    response = await client.put(f"/admin/restaurants/{entity_id}/review", json={
        "description": "Riverside seafood institution.",
        "price_level": 3,
        "cuisines": ["Goan", "Seafood"],
        "not_a_field": "ignored",
    })
    assert response.status_code == 200
    record = response.json()["record"]
    assert record["description"] == "Riverside seafood institution."
    assert record["price_level"] == 3
    assert "not_a_field" not in record
    assert record["active"] is False

    review = (await client.get(f"/admin/restaurants/{entity_id}/review")).json()
    assert [c["name"] for c in review["relations"]["cuisines"]] == ["Goan", "Seafood"]
    assert review["relations"]["cuisines"][0]["slug"] == "goan"


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["slug", "active", "extraction_status"])
async def test_review_update_rejects_protected_fields(client, make_business, field):
    entity_id = await make_business()
    response = await client.put(f"/admin/restaurants/{entity_id}/review", json={field: "x"})
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_REQUEST"


@pytest.mark.asyncio
async def test_publish_then_unpublish(client, make_business):
    entity_id = await make_business()

    response = await client.post(f"/admin/restaurants/{entity_id}/publish")
    assert response.status_code == 200
    assert response.json()["public_url"] == "/places-to-eat/restaurants/fishermans-wharf-cavelossim"

    response = await client.post(f"/admin/restaurants/{entity_id}/publish")
    assert response.status_code == 409
    assert response.json()["error"] == "INVALID_PUBLISH_STATE"

    response = await client.post(f"/admin/restaurants/{entity_id}/unpublish")
    assert response.status_code == 200
    response = await client.post(f"/admin/restaurants/{entity_id}/unpublish")
    assert response.status_code == 409

    review = (await client.get(f"/admin/restaurants/{entity_id}/review")).json()
    assert review["record"]["active"] is False
    assert review["record"]["name"] == "Fisherman's Wharf"


@pytest.mark.asyncio
async def test_list_filters_by_published(client, make_business):
    published_id = await make_business(active=True)
    await make_business(name="Thalassa", slug="thalassa-siolim", google_place_id="place-2")

    data = (await client.get("/admin/restaurants/list", params={"published": "true"})).json()
    assert data["total"] == 1
    assert data["items"][0]["id"] == published_id

    data = (await client.get("/admin/restaurants/list")).json()
    assert data["total"] == 2


@pytest.mark.asyncio
async def test_delete_reports_image_failures_but_deletes_record(client, make_business, dummy_s3):
    entity_id = await make_business(images=IMAGES)
    dummy_s3.fail_keys = {"restaurants/fw/2.jpg"}

    response = await client.delete(f"/admin/restaurants/{entity_id}")
    assert response.status_code == 200
    data = response.json()
    assert data["image_deletion_failures"] == ["restaurants/fw/2.jpg"]
    assert sorted(dummy_s3.deleted) == ["restaurants/fw/1.jpg", "restaurants/fw/3.jpg"]

    assert (await client.get(f"/admin/restaurants/{entity_id}/review")).status_code == 404


@pytest.mark.asyncio
async def test_set_hero_keeps_a_single_hero(client, make_business):
    entity_id = await make_business(images=IMAGES)
    images = (await client.get(f"/admin/restaurants/{entity_id}/images")).json()["images"]
    second = images[1]["id"]

    response = await client.patch(f"/admin/restaurants/{entity_id}/images", json={"imageId": second, "action": "set_hero"})
    assert response.status_code == 200
    assert response.json()["image"]["is_hero"] is True

    images = (await client.get(f"/admin/restaurants/{entity_id}/images")).json()["images"]
    assert [i["is_hero"] for i in images] == [False, True, False]


@pytest.mark.asyncio
async def test_image_approve_reject_and_delete(client, make_business, dummy_s3):
    entity_id = await make_business(images=IMAGES)
    images = (await client.get(f"/admin/restaurants/{entity_id}/images")).json()["images"]
    base = f"/admin/restaurants/{entity_id}/images"

    response = await client.patch(base, json={"imageId": images[1]["id"], "action": "approve"})
    assert response.json()["image"]["status"] == "approved"

    response = await client.patch(base, json={"imageId": images[0]["id"], "action": "reject"})
    assert response.json()["image"]["status"] == "rejected"
    assert response.json()["image"]["is_hero"] is False

    response = await client.patch(base, json={"imageId": "missing", "action": "approve"})
    assert response.status_code == 404

    response = await client.patch(base, json={"imageId": images[0]["id"], "action": "crop"})
    assert response.status_code == 422

    response = await client.delete(base)
    assert response.status_code == 400

    response = await client.delete(base, params={"imageId": images[2]["id"]})
    assert response.status_code == 200
    assert dummy_s3.deleted == ["restaurants/fw/3.jpg"]
    remaining = (await client.get(base)).json()["images"]
    assert [i["id"] for i in remaining] == [images[0]["id"], images[1]["id"]]


@pytest.mark.asyncio
async def test_public_record_only_when_published(client, make_business):
    entity_id = await make_business(
        short_description="Seafood by the Sal river.",
        apify_output={"title": "Fisherman's Wharf"},
        images=IMAGES,
    )
    path = "/public/restaurants/fishermans-wharf-cavelossim"
    assert (await client.get(path)).status_code == 404

    await client.post(f"/admin/restaurants/{entity_id}/publish")
    response = await client.get(path)
    assert response.status_code == 200
    data = response.json()
    assert data["record"]["meta_title"] == "Fisherman's Wharf | Best of Goa"
    assert data["record"]["meta_description"] == "Seafood by the Sal river."
    assert data["record"]["url"] == "/places-to-eat/restaurants/fishermans-wharf-cavelossim"
    assert "apify_output" not in data["record"]
    assert "firecrawl_output" not in data["record"]
    assert [i["status"] for i in data["images"]] == ["approved"]
    assert data["hero_image"] == "https://cdn.example.com/fw/1.jpg"

    assert (await client.get("/public/hotels/fishermans-wharf-cavelossim")).status_code == 404
