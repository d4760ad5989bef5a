from app.core.exceptions import ProviderError
from app.services.vector_search import SearchMatch, VectorSearchService


def send(client, headers, machine, message, **extra):
    payload = {"machine_id": machine.id, "message": message}
    payload.update(extra)
    return client.post("/api/chat", json=payload, headers=headers)


def test_chat_keeps_session_history(client, auth_headers, machine, provider):
    first = send(client, auth_headers, machine, "Boom is slow", use_manuals=False)
    assert first.status_code == 200
    session_id = first.json()["session_id"]
    assert first.json()["message"] == "Check the hydraulic filter first."

    send(client, auth_headers, machine, "Filter is new", session_id=session_id, use_manuals=False)

    history, instruction = provider.chat_calls[-1]
    assert [t["role"] for t in history] == ["user", "assistant", "user"]
    assert history[-1]["content"] == "Filter is new"
    assert "Excavator 07" in instruction

    stored = client.get(f"/api/chat/{session_id}", headers=auth_headers).json()
    assert stored["machine_id"] == machine.id
    assert len(stored["messages"]) == 4


def test_chat_injects_manual_context(client, auth_headers, machine, provider, monkeypatch):
    match = SearchMatch(5, 2, "320D Service Manual", "page", "Relief valve set to 350 bar", 0.88, page_number=41)
    monkeypatch.setattr(VectorSearchService, "search", lambda self, query: [match])

    response = send(client, auth_headers, machine, "What is the relief pressure?")

    assert response.status_code == 200
    assert response.json()["sources"][0]["page_number"] == 41
    _, instruction = provider.chat_calls[-1]
    assert "[320D Service Manual, page 41]" in instruction
    assert "Relief valve set to 350 bar" in instruction


def test_chat_answers_when_retrieval_fails(client, auth_headers, machine, provider):
    # No match function on SQLite: retrieval degrades to no context
    response = send(client, auth_headers, machine, "What is the relief pressure?")

    assert response.status_code == 200
    assert response.json()["sources"] == []
    _, instruction = provider.chat_calls[-1]
    assert "Manual excerpts" not in instruction


def test_chat_provider_error_is_reported(client, auth_headers, machine, provider, chat_store):
    provider.chat_error = ProviderError("model overloaded", upstream_status=503)

    response = send(client, auth_headers, machine, "Hello", use_manuals=False, session_id="s1")

    assert response.status_code == 502
    assert response.json() == {"detail": "model overloaded", "error_code": "PROVIDER_ERROR"}
    assert chat_store.data == {}


def test_clear_session(client, auth_headers, machine):
    session_id = send(client, auth_headers, machine, "Hi", use_manuals=False).json()["session_id"]

    assert client.delete(f"/api/chat/{session_id}", headers=auth_headers).status_code == 200
    assert client.get(f"/api/chat/{session_id}", headers=auth_headers).json()["messages"] == []


def test_sessions_are_private_to_the_user(client, auth_headers, tech_headers, machine):
    session_id = send(client, auth_headers, machine, "Hi", use_manuals=False).json()["session_id"]

    assert client.get(f"/api/chat/{session_id}", headers=tech_headers).json()["messages"] == []


def test_blank_message_rejected(client, auth_headers, machine):
    assert send(client, auth_headers, machine, "   ").status_code == 400


def test_stored_history_is_not_mutated_before_reply(client, auth_headers, admin, machine, provider, chat_store):
    provider.chat_error = ProviderError("model overloaded", upstream_status=503)
    session_id = "s2"
    chat_store.append_message(admin.id, session_id, machine.id, "user", "Boom is slow")

    response = send(client, auth_headers, machine, "Still slow", use_manuals=False, session_id=session_id)

    assert response.status_code == 502
    stored = client.get(f"/api/chat/{session_id}", headers=auth_headers).json()
    assert [t["content"] for t in stored["messages"]] == ["Boom is slow"]


def test_first_turn_sends_only_the_new_message(client, auth_headers, machine, provider):
    send(client, auth_headers, machine, "Boom is slow", use_manuals=False)

    history, _ = provider.chat_calls[0]
    assert history == [{"role": "user", "content": "Boom is slow"}]


def test_list_sessions_most_recent_first(client, auth_headers, tech_headers, machine):
    first = send(client, auth_headers, machine, "Boom is slow", use_manuals=False).json()["session_id"]
    second = send(
        client, auth_headers, machine, "Track tension", use_manuals=False, title="Undercarriage"
    ).json()["session_id"]
    send(client, auth_headers, machine, "Filter is new", session_id=first, use_manuals=False)

    response = client.get("/api/chat", headers=auth_headers)

    assert response.status_code == 200
    sessions = response.json()
    assert [s["session_id"] for s in sessions] == [first, second]
    assert sessions[0]["title"] == "Boom is slow"
    assert sessions[0]["message_count"] == 4
    assert sessions[0]["machine_name"] == "Excavator 07"
    assert sessions[1]["title"] == "Undercarriage"
    assert client.get("/api/chat", headers=tech_headers).json() == []


def test_cleared_session_leaves_the_list(client, auth_headers, machine):
    session_id = send(client, auth_headers, machine, "Hi", use_manuals=False).json()["session_id"]

    client.delete(f"/api/chat/{session_id}", headers=auth_headers)

    assert client.get("/api/chat", headers=auth_headers).json() == []


def test_expired_session_is_dropped_from_the_list(client, auth_headers, admin, machine, chat_store):
    session_id = send(client, auth_headers, machine, "Hi", use_manuals=False).json()["session_id"]
    chat_store.data.clear()

    assert client.get("/api/chat", headers=auth_headers).json() == []
    assert session_id not in chat_store.index.get(admin.id, {})
