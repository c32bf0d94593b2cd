"""Shared fixtures: a reference issuer and a machine wired to memory adapters."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from privpass import PrivacyTokenIssuer, SpendStateMachine, TokenStore
from privpass.adapters import MemoryCookieStore, MemoryKeyValueStore, RecordingTabs
from privpass.signals import BadgeSignal
from privpass.tokens import generate_tokens, issue_request_body, parse_issue_response


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def issuer():
    return PrivacyTokenIssuer()


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def badge():
    return BadgeSignal()


@pytest.fixture
def store(kv, badge):
    return TokenStore(kv, signal=badge)


@pytest.fixture
def cookies():
    return MemoryCookieStore()


@pytest.fixture
def tabs():
    return RecordingTabs()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def machine(store, kv, cookies, tabs, issuer, badge, clock):
    return SpendStateMachine(store, kv, cookies, tabs, issuer.commitment, signal=badge, clock=clock)


@pytest.fixture
def fill_store(store, issuer):
    """Run a real issuance round trip and store the result."""
    def fill(count: int) -> int:
        tokens = generate_tokens(count)
        response = issuer.issue_batch(issue_request_body(tokens))
        signed = parse_issue_response(response, tokens, issuer.commitment)
        return store.add(tokens, signed)
    return fill
