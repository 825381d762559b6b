import scoresnap.main as main
from scoresnap.settings import Settings

SCOREBOARD = {
    "session": {"lane": "Lane 4", "location": "Sunset Lanes"},
    "teams": [{"name": "Team A", "bowlers": ["Richi", "Dana"]}],
    "bowlers": [
        {"name": "Richi", "games": [{"game_number": 1, "total_score": 187}, {"game_number": 2, "total_score": 640}]},
        {"name": "Dana", "games": [{"game_number": "G1", "total_score": 155}]},
    ],
}


def _create_upload(client, auth_headers):
    response = client.post(
        "/api/uploads",
        json={"original_filename": "board.jpg", "exif_datetime": "2024-01-01T20:00:00Z"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    return response.json()["upload_id"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_missing_token_rejected(client):
    response = client.get("/api/bowlers/resolve", params={"q": "rich"})
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized - No token provided"}


def test_invalid_token_rejected(client):
    response = client.get(
        "/api/bowlers/resolve", params={"q": "rich"}, headers={"Authorization": "Bearer nope"}
    )
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized - Invalid token"}


def test_resolve_create_and_alias(client, store, auth_headers):
    created = client.post(
        "/api/bowlers/resolve", json={"action": "create", "parsed_name": "Richie"}, headers=auth_headers
    )
    assert created.status_code == 200
    bowler_id = created.json()["bowler_id"]
    assert store.fetch_bowler(bowler_id)["created_by_user_id"] == "user-1"

    resolved = client.post(
        "/api/bowlers/resolve", json={"action": "resolve", "parsed_name": "Richi"}, headers=auth_headers
    )
    body = resolved.json()
    assert body["resolved_bowler_id"] == bowler_id
    assert body["needs_user_input"] is False
    assert body["suggestions"][0]["bowler"]["canonical_name"] == "Richie"

    aliased = client.post(
        "/api/bowlers/resolve",
        json={"action": "add_alias", "bowler_id": bowler_id, "alias": "Rich"},
        headers=auth_headers,
    )
    assert aliased.json() == {"success": True}
    assert store.bowler_aliases[0]["source"] == "manual"


def test_resolve_bad_requests(client, auth_headers):
    missing = client.post("/api/bowlers/resolve", json={"action": "add_alias"}, headers=auth_headers)
    assert missing.status_code == 400
    assert missing.json() == {"error": "Missing bowler_id or alias"}

    invalid = client.post("/api/bowlers/resolve", json={"action": "merge"}, headers=auth_headers)
    assert invalid.status_code == 400
    assert invalid.json() == {"error": "Invalid action"}

    failed = client.post(
        "/api/bowlers/resolve",
        json={"action": "add_alias", "bowler_id": "missing", "alias": "Bob"},
        headers=auth_headers,
    )
    assert failed.status_code == 500
    assert failed.json() == {"error": "Failed to add alias"}


def test_search(client, store, auth_headers):
    bowler_id = store.insert_bowler("Richie", "user-1")
    response = client.get("/api/bowlers/resolve", params={"q": "RICH"}, headers=auth_headers)
    assert response.json() == {"bowlers": [{"id": bowler_id, "canonical_name": "Richie"}]}

    missing = client.get("/api/bowlers/resolve", headers=auth_headers)
    assert missing.status_code == 400
    assert missing.json() == {"error": "Missing search term"}


def test_upload_analyze_and_persist(client, store, auth_headers, monkeypatch):
    monkeypatch.setattr(main, "settings", Settings(database_url="memory://", google_places_api_key=""))
    richie = store.insert_bowler("Richie", "user-1")
    upload_id = _create_upload(client, auth_headers)

    analysis = client.post(
        f"/api/uploads/{upload_id}/analyze", json={"parsed_data": SCOREBOARD}, headers=auth_headers
    )
    assert analysis.status_code == 200
    body = analysis.json()
    assert body["needs_resolution"] is False
    assert body["resolved_mappings"] == {"Richi": richie}
    assert body["parsed"]["session"]["lane"] == 4
    assert body["parsed"]["bowlers"][0]["games"][1]["total_score"] is None

    persisted = client.post(
        f"/api/uploads/{upload_id}/persist",
        json={"parsed_data": SCOREBOARD, "resolved_mappings": body["resolved_mappings"]},
        headers=auth_headers,
    )
    assert persisted.status_code == 200
    result = persisted.json()
    assert result["success"] is True
    assert result["bowler_ids"][0] == richie
    assert len(result["game_ids"]) == 3

    details = client.get(f"/api/sessions/{result['session_id']}", headers=auth_headers)
    assert details.status_code == 200
    assert details.json()["session"]["lane"] == 4
    assert len(details.json()["games"]) == 3

    stats = client.get(f"/api/bowlers/{richie}/stats", headers=auth_headers)
    assert stats.json()["high_game"] == 187


def test_persist_failure_returns_error(client, auth_headers, monkeypatch):
    monkeypatch.setattr(main, "settings", Settings(database_url="memory://", google_places_api_key=""))
    upload_id = _create_upload(client, auth_headers)
    response = client.post(
        f"/api/uploads/{upload_id}/persist",
        json={"parsed_data": SCOREBOARD, "resolved_mappings": {"Richi": "no-such-bowler"}},
        headers=auth_headers,
    )
    assert response.status_code == 500
    assert response.json()["success"] is False
    assert response.json()["error"]


def test_persist_without_bowlers(client, auth_headers):
    upload_id = _create_upload(client, auth_headers)
    response = client.post(
        f"/api/uploads/{upload_id}/persist", json={"parsed_data": {"bowlers": []}}, headers=auth_headers
    )
    assert response.status_code == 400


def test_other_users_upload_is_hidden(client, store, auth_headers):
    upload_id = store.insert_upload("user-2", "board.jpg", None, None, None)
    response = client.post(
        f"/api/uploads/{upload_id}/analyze", json={"parsed_data": SCOREBOARD}, headers=auth_headers
    )
    assert response.status_code == 404
    assert response.json() == {"error": "Upload not found"}


def test_validation_error_shape(client, auth_headers):
    upload_id = _create_upload(client, auth_headers)
    response = client.post(f"/api/uploads/{upload_id}/analyze", json={}, headers=auth_headers)
    assert response.status_code == 422
    assert response.json()["error"] == "Validation error"


def test_unknown_resources(client, auth_headers):
    assert client.get("/api/sessions/missing", headers=auth_headers).status_code == 404
    assert client.get("/api/bowlers/missing/stats", headers=auth_headers).status_code == 404
    assert client.get("/nope").json() == {"error": "Not Found"}


def test_analyze_tolerates_malformed_bowler_list(client, auth_headers):
    upload_id = _create_upload(client, auth_headers)
    response = client.post(
        f"/api/uploads/{upload_id}/analyze",
        json={"parsed_data": {"teams": "Team A", "bowlers": 5}},
        headers=auth_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["needs_resolution"] is False
    assert body["parsed"]["bowlers"] == []
    assert body["parsed"]["teams"] == []

    response = client.post(
        f"/api/uploads/{upload_id}/persist",
        json={"parsed_data": {"bowlers": 5}},
        headers=auth_headers,
    )
    assert response.status_code == 400
