import pytest
from bson import ObjectId

ENQUIRY = {
    "name": "Ada Lovelace",
    "email": "ada@example.com",
    "mobile": "+44 20 7946 0000",
    "subject": "Quote",
    "address": "12 St James's Square, London",
    "message": "Could you quote for a new kitchen?",
}


def test_submit_new_enquiry(client):
    response = client.post("/api/enquiries", json=ENQUIRY)

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Enquiry added successfully"
    assert body["enquiry"]["message"] == ENQUIRY["message"]
    assert body["enquiry"]["createdAt"] is not None


def test_resubmission_updates_existing_enquiry(client, db):
    first = client.post("/api/enquiries", json=ENQUIRY).json()["enquiry"]

    response = client.post(
        "/api/enquiries", json={**ENQUIRY, "message": "Actually, a bathroom.", "subject": "Bathroom"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Enquiry updated successfully"
    assert body["enquiry"]["id"] == first["id"]
    assert db["enquiry"].count_documents({}) == 1

    stored = client.get("/api/enquiries").json()
    assert len(stored) == 1
    assert stored[0]["message"] == "Actually, a bathroom."
    assert stored[0]["subject"] == "Bathroom"


def test_same_name_different_email_is_a_new_enquiry(client, db):
    client.post("/api/enquiries", json=ENQUIRY)
    response = client.post("/api/enquiries", json={**ENQUIRY, "email": "ada@analytical.engine.org"})

    assert response.status_code == 201
    assert db["enquiry"].count_documents({}) == 2


@pytest.mark.parametrize("missing", sorted(ENQUIRY))
def test_every_field_is_required(client, db, missing):
    payload = {k: v for k, v in ENQUIRY.items() if k != missing}

    response = client.post("/api/enquiries", json=payload)

    assert response.status_code == 400
    assert missing in response.json()["message"]
    assert db["enquiry"].count_documents({}) == 0


def test_blank_field_is_rejected(client, db):
    response = client.post("/api/enquiries", json={**ENQUIRY, "mobile": "  "})

    assert response.status_code == 400
    assert db["enquiry"].count_documents({}) == 0


def test_email_is_stored_as_submitted(client, db):
    for email in ("ada@intranet.local", "Ada@Example.COM"):
        response = client.post("/api/enquiries", json={**ENQUIRY, "email": email})

        assert response.status_code == 201
        assert response.json()["enquiry"]["email"] == email
        assert db["enquiry"].find_one({"email": email}) is not None

    again = client.post("/api/enquiries", json={**ENQUIRY, "email": "Ada@Example.COM", "message": "Follow-up"})

    assert again.status_code == 200
    assert db["enquiry"].count_documents({}) == 2


def test_bulk_delete_enquiries(client):
    first = client.post("/api/enquiries", json=ENQUIRY).json()["enquiry"]
    client.post("/api/enquiries", json={**ENQUIRY, "name": "Charles Babbage"})

    response = client.request("DELETE", "/api/enquiries", json={"ids": [first["id"], str(ObjectId())]})

    assert response.status_code == 200
    assert response.json() == {"message": "Selected enquiries deleted successfully", "deletedCount": 1}
    assert [e["name"] for e in client.get("/api/enquiries").json()] == ["Charles Babbage"]


def test_bulk_delete_enquiries_requires_ids(client):
    client.post("/api/enquiries", json=ENQUIRY)

    response = client.request("DELETE", "/api/enquiries", json={"ids": []})

    assert response.status_code == 400
    assert len(client.get("/api/enquiries").json()) == 1
