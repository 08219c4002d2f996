"""Tests for the review-screen handoff store."""

import math

from casewizard.services.handoff_service import HandoffStore, sanitize_payload


def test_handoff_is_read_once():
    store = HandoffStore()
    token = store.put({"clientEmail": "ana@example.com"})

    assert token in store
    assert store.take(token) == {"clientEmail": "ana@example.com"}
    assert store.take(token) is None
    assert token not in store


def test_explicit_key_is_used():
    store = HandoffStore()

    assert store.put({"a": 1}, key="review-1") == "review-1"
    assert store.take("review-1") == {"a": 1}


def test_expired_handoff_is_discarded():
    store = HandoffStore(ttl_seconds=-1)
    token = store.put({"a": 1})

    assert store.take(token) is None


def test_missing_token_returns_none():
    assert HandoffStore().take(None) is None
    assert HandoffStore().take("unknown") is None


def test_sanitize_drops_unsafe_values():
    payload = {
        "clientName": "Ana Ruiz",
        "__proto__": {"polluted": True},
        "onSave": lambda: None,
        "clientCredentials": {"email": "ana@example.com", "password": "x"},
        "score": math.nan,
        "fields": [{"id": "q1", "validator": print}, object()],
        "tags": ("a", "b"),
    }

    assert sanitize_payload(payload) == {
        "clientName": "Ana Ruiz",
        "clientCredentials": {"email": "ana@example.com"},
        "fields": [{"id": "q1"}],
        "tags": ["a", "b"],
    }


def test_stored_payload_is_detached_from_caller():
    store = HandoffStore()
    payload = {"existingResponses": {"q1": "a"}}
    token = store.put(payload)
    payload["existingResponses"]["q1"] = "changed"

    assert store.take(token) == {"existingResponses": {"q1": "a"}}
