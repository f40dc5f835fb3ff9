def test_root(client):
    assert client.get("/").json() == {"message": "Business admin API running"}


def test_database_diagnostics(client, create_service):
    create_service()

    body = client.get("/test").json()

    assert body["connection_status"] == "Connected"
    assert body["upload_backend"] == "local"
    assert "service" in body["collections"]


def test_unknown_route_has_message(client):
    response = client.get("/api/nothing-here")

    assert response.status_code == 404
    assert response.json() == {"message": "Not Found"}


def test_wrong_method_has_message(client):
    response = client.patch("/api/enquiries")

    assert response.status_code == 405
    assert "message" in response.json()


def test_malformed_json_is_a_validation_error(client):
    response = client.post(
        "/api/enquiries", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


def test_unique_indexes_are_created(client, db):
    visitor_indexes = db["visitor"].index_information()
    enquiry_indexes = db["enquiry"].index_information()

    assert any(ix.get("unique") and ix["key"] == [("ipAddress", 1)] for ix in visitor_indexes.values())
    assert any(
        ix.get("unique") and ix["key"] == [("name", 1), ("email", 1)] for ix in enquiry_indexes.values()
    )


def test_cors_allows_configured_origin(client):
    response = client.options(
        "/api/services",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
    )

    assert response.status_code == 200
