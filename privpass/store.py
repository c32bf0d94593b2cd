"""
Token Store
Durable FIFO of signed tokens on top of a host key-value store.

Layout:
  cf-bypass-tokens  JSON array of {"token": b64 seed, "point": b64 point,
                    "blind": decimal string}, oldest first
  cf-token-count    the array length, readable without decoding tokens

Every mutation rewrites the whole array synchronously. Pop-then-persist is
a single synchronous call, so two spends can never receive the same token.
"""

import base64
import binascii
import json
import logging

from privpass import codec
from privpass.adapters.base import KeyValueStore
from privpass.curve import Point
from privpass.errors import DecodeError
from privpass.signals import BadgeSignal
from privpass.tokens import SignedToken, Token

logger = logging.getLogger(__name__)

STORAGE_KEY_TOKENS = "cf-bypass-tokens"
STORAGE_KEY_COUNT = "cf-token-count"


def encode_token(token: SignedToken) -> dict:
    """Storable form of a signed token."""
    return {
        "token": base64.b64encode(token.seed).decode(),
        "point": codec.encode_b64(token.point),
        "blind": str(token.blind),
    }


def decode_token(entry: dict) -> SignedToken:
    """
    Inverse of encode_token.

    Raises:
        ValueError: If any field is missing or malformed.
    """
    try:
        return SignedToken(
            seed=base64.b64decode(entry["token"], validate=True),
            blind=int(entry["blind"]),
            point=codec.decode_b64(entry["point"]),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"stored token is malformed: {e}") from e


class TokenStore:
    """
    Signed tokens, spent oldest first.

    Args:
        kv: Host key-value store the sequence is persisted to.
        signal: Optional badge signal, told the new count on every change.
    """

    def __init__(self, kv: KeyValueStore, signal: BadgeSignal = None):
        self.kv = kv
        self.signal = signal

    def count(self) -> int:
        """Number of stored tokens, read from the mirrored counter."""
        raw = self.kv.get(STORAGE_KEY_COUNT)
        if raw is None:
            return 0
        try:
            return int(raw)
        except ValueError:
            logger.warning("Stored token count %r is not an integer; treating as 0", raw)
            return 0

    def load(self) -> list[SignedToken]:
        """
        All stored tokens, oldest first.

        Unreadable storage loads as empty and is overwritten with the empty
        sequence, so the counter never outlives the tokens it counts.
        """
        raw = self.kv.get(STORAGE_KEY_TOKENS)
        if raw is None:
            return []
        try:
            entries = json.loads(raw)
            if not isinstance(entries, list):
                raise ValueError("stored tokens are not a list")
            return [decode_token(entry) for entry in entries]
        except (binascii.Error, DecodeError, ValueError) as e:
            logger.warning("Discarding unreadable token storage: %s", e)
            self._persist([])
            return []

    def add(self, tokens: list[Token], signed_points: list[Point]) -> int:
        """
        Append newly signed tokens after the existing ones.

        Call at most once per verified issuance response; repeating a call
        stores the batch twice.

        Returns:
            The new token count.
        """
        if len(tokens) != len(signed_points):
            raise ValueError(
                f"{len(tokens)} tokens but {len(signed_points)} signed points"
            )
        stored = self.load()
        stored.extend(
            SignedToken(seed=t.seed, blind=t.blind, point=point)
            for t, point in zip(tokens, signed_points)
        )
        self._persist(stored)
        logger.info("Stored %d new tokens (%d total)", len(tokens), len(stored))
        return len(stored)

    def pop_one(self) -> SignedToken | None:
        """Remove and return the oldest token, or None if the store is empty."""
        stored = self.load()
        if not stored:
            return None
        token = stored.pop(0)
        self._persist(stored)
        return token

    def clear(self) -> None:
        """Drop every token and reset the counter."""
        self._persist([])
        logger.info("Token store cleared")

    def _persist(self, tokens: list[SignedToken]) -> None:
        self.kv.set(STORAGE_KEY_TOKENS, json.dumps([encode_token(t) for t in tokens]))
        self.kv.set(STORAGE_KEY_COUNT, str(len(tokens)))
        if self.signal is not None:
            self.signal.publish(len(tokens))
