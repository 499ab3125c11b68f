import uuid

from fastapi.testclient import TestClient

from debt_advisor.main import app


client = TestClient(app)


def test_chat_missing_conversation_id_returns_400():
    response = client.post("/chat", json={"content": "hello"})

    assert response.status_code == 400
    assert response.json()["detail"] == "conversation_id is required"


def test_chat_non_string_content_returns_400():
    response = client.post("/chat", json={"conversation_id": "conv-bad", "content": ["hi"]})

    assert response.status_code == 400


def test_chat_non_object_state_returns_400():
    response = client.post("/chat", json={"conversation_id": "conv-bad", "content": "hi", "state": "step 3"})

    assert response.status_code == 400


def test_chat_non_object_body_returns_400():
    response = client.post("/chat", json=["conversation_id", "content"])

    assert response.status_code == 400


def test_unrecognised_answer_is_reasked():
    conversation_id = f"conv-{uuid.uuid4().hex}"
    client.post("/chat", json={"conversation_id": conversation_id, "content": ""})
    client.post("/chat", json={"conversation_id": conversation_id, "content": "Council tax arrears"})

    response = client.post("/chat", json={"conversation_id": conversation_id, "content": "I would rather not say that"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["outcome"] == "reask"
    assert payload["step"] == 1
    assert payload["state"]["retry_counters"] == {"name": 1}


def test_malformed_widget_event_is_handled_as_text():
    conversation_id = f"conv-{uuid.uuid4().hex}"
    client.post("/chat", json={"conversation_id": conversation_id, "content": ""})

    response = client.post("/chat", json={"conversation_id": conversation_id, "content": "__PROFILE_SUBMIT__ {broken"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["outcome"] != "event"
    assert "profile" not in payload["slots"]


def test_garbage_state_is_sanitised():
    conversation_id = f"conv-{uuid.uuid4().hex}"
    client.post("/chat", json={"conversation_id": conversation_id, "content": ""})

    response = client.post(
        "/chat",
        json={
            "conversation_id": conversation_id,
            "content": "Credit cards mostly",
            "state": {"step_index": -4, "slots": {"name": 12, "paying_amount": "lots"}, "retry_counters": "x"},
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["step"] == 1
    assert "name" not in payload["slots"]
    assert "paying_amount" not in payload["slots"]
