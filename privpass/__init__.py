"""
privpass: Challenge Bypass Tokens
Spend blind-signed tokens instead of re-solving interactive challenges.

privpass has two layers:
1. Protocol: token generation, blinding, batch-proof verification,
   unblinding and redemption headers over P-256
2. State machine: decides per request whether a token is minted, spent,
   or withheld, with per-host spend caps, bounded redirect following and
   idle expiry of stale state

The host runtime (a browser extension shim, a proxy, a crawler) feeds
request lifecycle events in and performs the tab and cookie operations the
machine asks for. The issuer never learns which issued token a redemption
came from.

Usage:
    from privpass import SpendStateMachine, TokenStore
    from privpass.adapters import MemoryKeyValueStore

    kv = MemoryKeyValueStore()
    machine = SpendStateMachine(TokenStore(kv), kv, cookies, tabs, commitment)
"""

from privpass.config import BypassConfig
from privpass.errors import (
    DecodeError,
    ExhaustionError,
    IntegrityError,
    PrivPassError,
    ProtocolError,
)
from privpass.issuer import PrivacyTokenIssuer
from privpass.machine import SpendStateMachine
from privpass.proof import BatchProof, Commitment
from privpass.signals import NEEDS_ATTENTION, BadgeSignal
from privpass.store import TokenStore
from privpass.tokens import (
    SignedToken,
    Token,
    build_issue_request,
    build_redeem_header,
    generate_tokens,
    parse_issue_response,
)

__version__ = "0.1.0"
__all__ = [
    "BypassConfig",
    "DecodeError",
    "ExhaustionError",
    "IntegrityError",
    "PrivPassError",
    "ProtocolError",
    "PrivacyTokenIssuer",
    "SpendStateMachine",
    "BatchProof",
    "Commitment",
    "NEEDS_ATTENTION",
    "BadgeSignal",
    "TokenStore",
    "SignedToken",
    "Token",
    "build_issue_request",
    "build_redeem_header",
    "generate_tokens",
    "parse_issue_response",
]
