# tests/test_chat_api.py
from medibot import models

API = "/api/v1/chat"


def _start(client, headers):
    response = client.post(f"{API}/sessions", headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


def test_classify_message(client, patient_headers):
    response = client.post(f"{API}/classify", json={"message": "Sudden chest pain and dizziness"}, headers=patient_headers)

    assert response.status_code == 200
    assert response.json() == {
        "severity": "high",
        "appointmentNeeded": True,
        "matchedKeywords": ["chest pain"],
    }


def test_classify_rejects_empty_message(client, patient_headers):
    response = client.post(f"{API}/classify", json={"message": "   "}, headers=patient_headers)
    assert response.status_code == 422


def test_conversation_stores_triaged_exchange(client, patient_headers):
    session_id = _start(client, patient_headers)

    response = client.post(
        f"{API}/sessions/{session_id}/messages",
        json={"message": "I have had a fever since yesterday"},
        headers=patient_headers,
    )

    assert response.status_code == 201
    exchange = response.json()
    assert exchange["triage"]["severity"] == "medium"
    assert exchange["userMessage"]["sender"] == "user"
    assert exchange["userMessage"]["appointmentSuggested"] is True
    assert exchange["botMessage"]["sender"] == "bot"
    assert "appointment" in exchange["botMessage"]["message"]

    history = client.get(f"{API}/sessions/{session_id}/messages", headers=patient_headers).json()
    assert [m["sender"] for m in history] == ["user", "bot"]
    assert history[0]["message"] == "I have had a fever since yesterday"


def test_low_severity_message_does_not_suggest_booking(client, patient_headers):
    session_id = _start(client, patient_headers)
    exchange = client.post(
        f"{API}/sessions/{session_id}/messages", json={"message": "just a runny nose"}, headers=patient_headers
    ).json()
    assert exchange["triage"] == {"severity": "low", "appointmentNeeded": False, "matchedKeywords": ["runny nose"]}
    assert exchange["userMessage"]["appointmentSuggested"] is False


def test_ended_session_rejects_new_messages(client, patient_headers):
    session_id = _start(client, patient_headers)

    ended = client.post(f"{API}/sessions/{session_id}/end", headers=patient_headers)
    assert ended.json()["status"] == "completed"
    assert ended.json()["sessionEnd"] is not None

    response = client.post(f"{API}/sessions/{session_id}/messages", json={"message": "hello"}, headers=patient_headers)
    assert response.status_code == 409


def test_sessions_are_private(client, patient_headers, other_patient_headers, admin_headers):
    session_id = _start(client, patient_headers)

    assert client.get(f"{API}/sessions/{session_id}", headers=other_patient_headers).status_code == 403
    assert client.get(f"{API}/sessions", headers=other_patient_headers).json() == []
    assert client.get(f"{API}/sessions/{session_id}", headers=admin_headers).status_code == 200


def test_list_sessions_by_status(client, patient_headers):
    first = _start(client, patient_headers)
    second = _start(client, patient_headers)
    client.post(f"{API}/sessions/{first}/end", headers=patient_headers)

    active = client.get(f"{API}/sessions", params={"status": "active"}, headers=patient_headers).json()
    assert [s["id"] for s in active] == [second]


def test_delete_session_removes_messages(client, db, patient_headers):
    session_id = _start(client, patient_headers)
    client.post(f"{API}/sessions/{session_id}/messages", json={"message": "sore throat"}, headers=patient_headers)

    assert client.delete(f"{API}/sessions/{session_id}", headers=patient_headers).status_code == 204
    assert client.get(f"{API}/sessions/{session_id}/messages", headers=patient_headers).status_code == 404

    assert db.query(models.ChatMessage).count() == 0
