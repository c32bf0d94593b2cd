"""Tests for host collaborators and the badge signal."""

import asyncio
import json
import logging
import tempfile
import time
from pathlib import Path

from privpass.adapters import Cookie, FileKeyValueStore, MemoryCookieStore, domain_matches
from privpass.signals import NEEDS_ATTENTION, BadgeSignal


def test_file_store_round_trip():
    with tempfile.TemporaryDirectory() as tmpdir:
        kv = FileKeyValueStore(tmpdir)
        kv.set("example.com", "true")
        kv.set("other", "1")
        kv.remove("other")
        kv.remove("never-set")

        reopened = FileKeyValueStore(tmpdir)
        assert reopened.get("example.com") == "true"
        assert "other" not in reopened

        reopened.clear()
        assert FileKeyValueStore(tmpdir).get("example.com") is None


def test_file_store_corrupt_file(caplog):
    with tempfile.TemporaryDirectory() as tmpdir:
        (Path(tmpdir) / "privpass-store.json").write_text("[1, 2")
        with caplog.at_level(logging.WARNING):
            kv = FileKeyValueStore(tmpdir)
        assert kv.get("anything") is None
        assert "corrupt" in caplog.text

        kv.set("a", "b")
        assert json.loads((Path(tmpdir) / "privpass-store.json").read_text()) == {"a": "b"}


def test_domain_matches():
    assert domain_matches("example.com", ".example.com")
    assert domain_matches("www.example.com", "example.com")
    assert not domain_matches("badexample.com", "example.com")
    assert not domain_matches("example.com", "www.example.com")


def test_cookie_validity():
    now = time.time()
    assert Cookie("cf_clearance", ".example.com").is_valid()
    assert Cookie("cf_clearance", ".example.com", expires=now + 60).is_valid()
    assert not Cookie("cf_clearance", ".example.com", expires=now - 60).is_valid()


def test_memory_cookie_store():
    store = MemoryCookieStore()
    store.set_cookie(Cookie("cf_clearance", ".example.com"))

    found = asyncio.run(store.get("https://www.example.com/page", "cf_clearance"))
    assert found is not None
    assert asyncio.run(store.get("https://example.org/", "cf_clearance")) is None
    assert asyncio.run(store.get("https://example.com/", "other")) is None

    asyncio.run(store.remove("http://example.com", "cf_clearance"))
    assert asyncio.run(store.get("https://example.com/", "cf_clearance")) is None
    assert store.removed == [("http://example.com", "cf_clearance")]


def test_badge_subscribe_unsubscribe():
    badge = BadgeSignal()
    seen = []
    unsubscribe = badge.subscribe(seen.append)
    badge.publish(5)
    badge.publish(NEEDS_ATTENTION)
    unsubscribe()
    unsubscribe()
    badge.publish(0)
    assert seen == [5, "!"]
    assert badge.subscriber_count == 0


def test_badge_subscriber_failure_contained(caplog):
    badge = BadgeSignal()
    seen = []

    def broken(value):
        raise RuntimeError("icon missing")

    badge.subscribe(broken)
    badge.subscribe(seen.append)
    with caplog.at_level(logging.ERROR):
        badge.publish(3)
    assert seen == [3]
    assert "Badge subscriber" in caplog.text
