import pytest


FORM = {
    "businessName": "Gunpowder",
    "category": "restaurant",
    "website": "",
    "googleMapsUrl": "https://maps.google.com/?cid=123",
    "address": "Assagao, Bardez",
    "area": "Assagao",
    "governorate": "North Goa",
    "phone": "+91 98220 00000",
    "email": "",
    "instagram": "@gunpowdergoa",
    "submitterName": "Asha Naik",
    "submitterEmail": "asha@example.com",
    "submitterPhone": "",
    "relationship": "customer",
    "description": "South Indian coastal food in an old Portuguese house.",
    "whyBest": "The appam and stew.",
}


async def _submit(client, **overrides):
    form = dict(FORM)
    form.update(overrides)
    return await client.post("/submissions", json=form)


@pytest.mark.asyncio
async def test_public_submission_is_created_pending(client):
    response = await _submit(client)
    assert response.status_code == 201
    submission = response.json()["submission"]
    assert submission["status"] == "pending"
    assert submission["business_name"] == "Gunpowder"
    assert submission["why_best"] == "The appam and stew."
    assert submission["website"] is None
    assert submission["reviewed_at"] is None


@pytest.mark.asyncio
async def test_submission_accepts_snake_case(client):
    response = await client.post("/submissions", json={
        "business_name": "Sakana",
        "category": "restaurant",
        "governorate": "South Goa",
        "submitter_name": "Rui",
        "submitter_email": "rui@example.com",
        "relationship": "owner",
    })
    assert response.status_code == 201


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["businessName", "category", "governorate", "submitterName", "submitterEmail", "relationship"])
async def test_submission_required_fields(client, field):
    form = dict(FORM)
    form.pop(field)
    response = await client.post("/submissions", json=form)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_submission_rejects_blank_and_invalid_values(client):
    assert (await _submit(client, businessName="   ")).status_code == 422
    assert (await _submit(client, category="casino")).status_code == 422
    assert (await _submit(client, submitterEmail="not-an-email")).status_code == 422


@pytest.mark.asyncio
async def test_admin_moderation_flow(client):
    submission_id = (await _submit(client)).json()["submission"]["id"]
    await _submit(client, businessName="Bomra's", category="restaurant")

    listing = (await client.get("/admin/submissions")).json()["submissions"]
    assert len(listing) == 2

    response = await client.patch(f"/admin/submissions/{submission_id}", json={"status": "in_review"})
    assert response.status_code == 200
    assert response.json()["submission"]["reviewed_at"] is None

    response = await client.patch(
        f"/admin/submissions/{submission_id}",
        json={"status": "approved", "admin_notes": "Queue for extraction"},
    )
    submission = response.json()["submission"]
    assert submission["status"] == "approved"
    assert submission["reviewed_by"] == "admin"
    assert submission["reviewed_at"] is not None
    assert submission["admin_notes"] == "Queue for extraction"

    approved = (await client.get("/admin/submissions", params={"status": "approved"})).json()["submissions"]
    assert [s["id"] for s in approved] == [submission_id]


@pytest.mark.asyncio
async def test_admin_rejects_unknown_status(client):
    submission_id = (await _submit(client)).json()["submission"]["id"]
    response = await client.patch(f"/admin/submissions/{submission_id}", json={"status": "published"})
    assert response.status_code == 400
    assert (await client.get("/admin/submissions", params={"status": "published"})).status_code == 400

    submission = (await client.get(f"/admin/submissions/{submission_id}")).json()["submission"]
    assert submission["status"] == "pending"


@pytest.mark.asyncio
async def test_delete_submission(client):
    submission_id = (await _submit(client)).json()["submission"]["id"]
    response = await client.delete(f"/admin/submissions/{submission_id}")
    assert response.status_code == 200
    response = await client.get(f"/admin/submissions/{submission_id}")
    assert response.status_code == 404
    assert response.json()["error"] == "SUBMISSION_NOT_FOUND"
