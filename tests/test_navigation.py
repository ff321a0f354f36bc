import pytest

from services.exceptions import InvalidInputError
from services.navigation import NavigationIntentStore, new_intent_key, validate_intent_path


def test_intent_is_read_once():
    store = NavigationIntentStore(ttl_seconds=60)
    key = new_intent_key()
    store.remember(key, "/submit")

    assert store.peek(key).path == "/submit"
    assert store.consume(key).path == "/submit"
    assert store.consume(key) is None


def test_newer_intent_replaces_older():
    store = NavigationIntentStore(ttl_seconds=60)
    store.remember("k", "/submit")
    store.remember("k", "/dashboard")
    assert store.consume("k").path == "/dashboard"


def test_missing_key_is_harmless():
    store = NavigationIntentStore(ttl_seconds=60)
    assert store.consume(None) is None
    assert store.peek("") is None
    store.discard(None)


def test_discard_drops_intent():
    store = NavigationIntentStore(ttl_seconds=60)
    store.remember("k", "/submit")
    store.discard("k")
    assert store.peek("k") is None


@pytest.mark.parametrize("path", ["https://evil.example.com/", "//evil.example.com", "submit", "", "/\\evil"])
def test_rejects_non_site_relative_paths(path):
    with pytest.raises(InvalidInputError):
        validate_intent_path(path)


def test_keeps_query_string():
    assert validate_intent_path(" /papers?status=Published ") == "/papers?status=Published"
