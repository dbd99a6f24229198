from __future__ import annotations

import asyncio

import pytest

from fakes import BrokenCache
from persistence import (
    FallbackPolicy,
    Message,
    PersistenceError,
    PersistenceGateway,
    Profile,
    profile_key,
    transcript_key,
)
from persistence.records import Citation


def _profile(uid: str = "user-a", **overrides) -> Profile:
    values = {
        "display_name": "Asha Rao",
        "email": "asha@example.com",
        "mobile": "+91 90000 00000",
        "emergency_contact": "+91 91111 11111",
        "blood_group": "O+",
        "health_issues": "asthma",
        "language": "te-IN",
    }
    values.update(overrides)
    return Profile(uid=uid, **values)


def test_profile_round_trip_through_remote_tier(gateway, remote, cache):
    outcome = asyncio.run(gateway.save_profile(_profile()))

    assert outcome.ok is True
    assert outcome.tier == "remote"
    assert remote.docs["user-a"]["blood_group"] == "O+"
    assert cache.get(profile_key("user-a")) is None

    loaded = asyncio.run(gateway.load_profile("user-a"))
    assert loaded == _profile()


def test_profile_falls_back_to_local_tier_when_remote_is_offline(gateway, remote, cache):
    remote.go_offline()

    outcome = asyncio.run(gateway.save_profile(_profile()))
    assert outcome.tier == "local"
    assert cache.get(profile_key("user-a"))["language"] == "te-IN"

    loaded = asyncio.run(gateway.load_profile("user-a"))
    assert loaded == _profile()


def test_profile_saved_offline_is_found_after_remote_recovers(gateway, remote):
    remote.go_offline("set")
    asyncio.run(gateway.save_profile(_profile()))

    remote.failing = set()
    loaded = asyncio.run(gateway.load_profile("user-a"))

    assert loaded is not None
    assert loaded.emergency_contact == "+91 91111 11111"
    assert ("get", "user-a") in remote.calls


def test_missing_profile_loads_as_none(gateway):
    assert asyncio.run(gateway.load_profile("nobody")) is None


def test_profile_failure_on_every_tier_is_reported(remote):
    remote.go_offline()
    gateway = PersistenceGateway(remote=remote, cache=BrokenCache())

    with pytest.raises(PersistenceError) as excinfo:
        asyncio.run(gateway.save_profile(_profile()))
    assert excinfo.value.operation == "save_profile"
    assert [outcome.tier for outcome in excinfo.value.outcomes] == ["remote", "local"]

    with pytest.raises(PersistenceError):
        asyncio.run(gateway.load_profile("user-a"))


def test_update_profile_merges_into_remote_document(gateway, remote):
    asyncio.run(gateway.save_profile(_profile()))

    outcome = asyncio.run(gateway.update_profile("user-a", {"blood_group": "B-", "language": "hi-IN"}))

    assert outcome.tier == "remote"
    loaded = asyncio.run(gateway.load_profile("user-a"))
    assert loaded.blood_group == "B-"
    assert loaded.language == "hi-IN"
    assert loaded.display_name == "Asha Rao"


def test_update_profile_merges_locally_when_remote_rejects(gateway, remote, cache):
    remote.go_offline()
    asyncio.run(gateway.save_profile(_profile()))

    outcome = asyncio.run(gateway.update_profile("user-a", {"health_issues": "asthma, diabetes"}))

    assert outcome.tier == "local"
    stored = cache.get(profile_key("user-a"))
    assert stored["health_issues"] == "asthma, diabetes"
    assert stored["mobile"] == "+91 90000 00000"


def test_update_without_existing_record_creates_local_entry(gateway, cache):
    outcome = asyncio.run(gateway.update_profile("user-b", {"language": "ta-IN"}))

    assert outcome.tier == "local"
    assert cache.get(profile_key("user-b")) == {"language": "ta-IN"}
    loaded = asyncio.run(gateway.load_profile("user-b"))
    assert loaded.uid == "user-b"
    assert loaded.language == "ta-IN"


def test_unknown_profile_keys_survive_round_trip(gateway, remote):
    remote.docs["user-a"] = {"uid": "user-a", "displayName": "legacy", "language": "hi-IN"}

    loaded = asyncio.run(gateway.load_profile("user-a"))

    assert loaded.language == "hi-IN"
    assert loaded.extra == {"displayName": "legacy"}
    assert loaded.to_dict()["displayName"] == "legacy"


def test_transcript_round_trip_never_touches_remote(gateway, remote):
    messages = [
        Message.create("user", "Someone fainted"),
        Message.create(
            "assistant",
            "Lay them flat and raise their legs.",
            citations=[Citation(title="NHS", uri="https://www.nhs.uk/fainting", kind="search")],
        ),
    ]

    outcome = asyncio.run(gateway.save_transcript("user-a", messages))
    loaded = asyncio.run(gateway.load_transcript("user-a"))

    assert outcome.tier == "local"
    assert loaded == messages
    assert remote.calls == []


def test_transcript_save_is_idempotent(gateway, cache):
    messages = [Message.create("user", "Burn on my hand")]

    asyncio.run(gateway.save_transcript("user-a", messages))
    first = cache.get(transcript_key("user-a"))
    asyncio.run(gateway.save_transcript("user-a", messages))

    assert cache.get(transcript_key("user-a")) == first
    assert asyncio.run(gateway.load_transcript("user-a")) == messages


def test_unknown_user_has_empty_transcript(gateway):
    assert asyncio.run(gateway.load_transcript("nobody")) == []


def test_unreadable_transcript_loads_as_empty(gateway, cache):
    cache.set(transcript_key("user-a"), {"not": "a list"})
    assert asyncio.run(gateway.load_transcript("user-a")) == []

    broken = PersistenceGateway(remote=gateway.remote, cache=BrokenCache())
    assert asyncio.run(broken.load_transcript("user-a")) == []


def test_transcript_save_failure_raises(remote):
    gateway = PersistenceGateway(remote=remote, cache=BrokenCache())

    with pytest.raises(PersistenceError) as excinfo:
        asyncio.run(gateway.save_transcript("user-a", [Message.create("user", "help")]))
    assert [outcome.tier for outcome in excinfo.value.outcomes] == ["local"]


def test_legacy_transcript_entries_are_understood(gateway, cache):
    cache.set(
        transcript_key("user-a"),
        [
            {"id": "1700000000000", "role": "user", "text": "Snake bite", "timestamp": 1700000000000},
            {
                "id": "1700000000001",
                "role": "model",
                "text": "Keep the limb still.",
                "timestamp": 1700000000001,
                "isError": False,
                "groundingSources": [
                    {"title": "Clinic", "uri": "https://maps.google.com/?cid=7", "sourceType": "map"},
                ],
            },
        ],
    )

    loaded = asyncio.run(gateway.load_transcript("user-a"))

    assert [message.role for message in loaded] == ["user", "assistant"]
    assert loaded[1].citations == (Citation(title="Clinic", uri="https://maps.google.com/?cid=7", kind="map"),)
    assert loaded[1].failed is False


def test_custom_profile_policy_skips_remote(remote, cache):
    gateway = PersistenceGateway(remote=remote, cache=cache, profile_policy=FallbackPolicy(("local",)))

    outcome = asyncio.run(gateway.save_profile(_profile()))

    assert outcome.tier == "local"
    assert remote.calls == []


def test_fallback_policy_validation(remote, cache):
    with pytest.raises(ValueError):
        FallbackPolicy(())
    with pytest.raises(ValueError):
        FallbackPolicy(("cloud",))
    with pytest.raises(ValueError):
        PersistenceGateway(remote=remote, cache=cache, transcript_policy=FallbackPolicy(("remote", "local")))


def test_undecodable_transcript_entries_are_skipped(gateway, cache):
    kept = Message.create("user", "Electric shock")
    cache.set(
        transcript_key("user-a"),
        [
            {"role": "user", "text": "no id"},
            kept.to_dict(),
            {"id": "5", "role": "system", "text": "unknown role"},
            "not a message",
        ],
    )

    assert asyncio.run(gateway.load_transcript("user-a")) == [kept]


def test_fetch_transcript_tells_unreadable_from_absent(gateway, cache):
    assert asyncio.run(gateway.fetch_transcript("nobody")) == []

    cache.set(transcript_key("user-a"), "corrupt")
    with pytest.raises(PersistenceError):
        asyncio.run(gateway.fetch_transcript("user-a"))
