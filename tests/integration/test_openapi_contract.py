from fastapi.testclient import TestClient

from debt_advisor.main import app


client = TestClient(app)


def test_openapi_contains_expected_paths():
    response = client.get("/openapi.json")
    assert response.status_code == 200
    schema = response.json()
    paths = schema.get("paths", {})

    expected = [
        "/chat",
        "/health",
        "/ready",
        "/metrics",
        "/conversations",
        "/conversations/{conversation_id}/transcript",
        "/conversations/{conversation_id}",
    ]

    for path in expected:
        assert path in paths, f"Missing {path} from OpenAPI paths"

    assert "post" in paths["/chat"]
    assert "delete" in paths["/conversations/{conversation_id}"]


def test_health_and_readiness():
    assert client.get("/health").json() == {"status": "ok"}

    ready = client.get("/ready")
    assert ready.status_code == 200
    payload = ready.json()
    assert payload["status"] == "ok"
    assert payload["generator_enabled"] is False
    assert payload["components"]["script"]["steps"] == 9
    assert payload["components"]["conversations_db"]["ok"] is True
