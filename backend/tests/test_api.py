from __future__ import annotations

import asyncio

from fakes import FakeOrchestrator
from lifeguard_core.orchestrator import MISSING_KEY_TEXT


def _profile_payload(**overrides) -> dict:
    payload = {
        "display_name": "Ravi Kumar",
        "email": "ravi@example.com",
        "mobile": "+91 98888 88888",
        "emergency_contact": "+91 97777 77777",
        "blood_group": "A+",
        "health_issues": "hypertension",
        "language": "en-US",
    }
    payload.update(overrides)
    return payload


def test_health_reports_configuration(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"ok": True, "assistant_configured": False, "remote_store_configured": False}


def test_requests_without_identity_are_rejected(client):
    assert client.get("/profile").status_code == 401
    assert client.get("/profile", headers={"X-User-Id": "bad id!"}).status_code == 400


def test_profile_is_saved_locally_when_no_remote_store(client, auth_headers):
    headers = auth_headers("user-a")

    assert client.get("/profile", headers=headers).json() == {}

    saved = client.post("/profile", headers=headers, json=_profile_payload(language="te-IN"))
    assert saved.status_code == 200
    assert saved.json() == {"ok": True, "tier": "local"}

    profile = client.get("/profile", headers=headers).json()
    assert profile["uid"] == "user-a"
    assert profile["blood_group"] == "A+"
    assert profile["language"] == "te-IN"
    assert profile["language_name"] == "Telugu"


def test_profile_patch_merges_fields(client, auth_headers):
    headers = auth_headers("user-a")
    client.post("/profile", headers=headers, json=_profile_payload())

    empty = client.patch("/profile", headers=headers, json={})
    assert empty.status_code == 400

    patched = client.patch("/profile", headers=headers, json={"health_issues": "hypertension, asthma"})
    assert patched.status_code == 200

    profile = client.get("/profile", headers=headers).json()
    assert profile["health_issues"] == "hypertension, asthma"
    assert profile["display_name"] == "Ravi Kumar"


def test_chat_without_api_key_records_failed_reply(client, auth_headers):
    headers = auth_headers("user-a")

    response = client.post("/chat/send", headers=headers, json={"message": "I feel dizzy"})

    assert response.status_code == 200
    body = response.json()
    assert body["reply"]["failed"] is True
    assert body["reply"]["text"] == MISSING_KEY_TEXT
    assert body["transcript_length"] == 2

    history = client.get("/chat/history", headers=headers).json()["items"]
    assert [item["role"] for item in history] == ["user", "assistant"]
    assert history[0]["text"] == "I feel dizzy"


def test_empty_chat_message_is_rejected(client, auth_headers):
    response = client.post("/chat/send", headers=auth_headers("user-a"), json={"message": "   "})
    assert response.status_code == 400


def test_chat_uses_profile_language_and_keeps_history(client, backend_module, auth_headers, monkeypatch):
    fake = FakeOrchestrator("Press on the wound with a clean cloth.")
    monkeypatch.setattr(backend_module.container, "orchestrator", fake)
    headers = auth_headers("user-a")

    first = client.post("/chat/send", headers=headers, json={"message": "Deep cut on my palm"})
    assert first.status_code == 200
    assert first.json()["reply"]["citations"][0]["kind"] == "search"
    assert fake.calls[0]["language"] == "en-US"

    client.post("/profile", headers=headers, json=_profile_payload(language="hi-IN"))

    second = client.post("/chat/send", headers=headers, json={"message": "Still bleeding"})
    assert second.status_code == 200
    assert second.json()["transcript_length"] == 4
    assert fake.calls[1]["language"] == "hi-IN"
    assert [message.text for message in fake.calls[1]["history"]] == [
        "Deep cut on my palm",
        "Press on the wound with a clean cloth.",
    ]


def test_histories_are_kept_per_user(client, auth_headers):
    client.post("/chat/send", headers=auth_headers("user-a"), json={"message": "Fever"})

    other = client.get("/chat/history", headers=auth_headers("user-b")).json()

    assert other == {"items": []}


def test_nearby_places_without_api_key(client, auth_headers):
    response = client.post(
        "/places/nearby",
        headers=auth_headers("user-a"),
        json={"latitude": 12.9716, "longitude": 77.5946},
    )

    assert response.status_code == 200
    assert response.json() == {"text": "API key missing", "places": []}


def test_nearby_places_rejects_invalid_coordinates(client, auth_headers):
    response = client.post(
        "/places/nearby",
        headers=auth_headers("user-a"),
        json={"latitude": 120, "longitude": 0},
    )
    assert response.status_code == 422


def test_least_recently_used_idle_session_is_closed_past_the_cap(backend_module, tmp_path):
    app_state = backend_module.LifeGuardApp(
        backend_module.Settings(db_path=str(tmp_path / "bounded.sqlite"), max_sessions=2)
    )

    async def scenario():
        first = await app_state.session_for("user-a")
        second = await app_state.session_for("user-b")
        await app_state.session_for("user-a")
        await app_state.session_for("user-c")
        return first, second

    first, second = asyncio.run(scenario())

    assert list(app_state.sessions) == ["user-a", "user-c"]
    assert second.closed is True
    assert first.closed is False
