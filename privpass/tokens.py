"""
Privacy Tokens
Blind-signed tokens that bypass a challenge without re-solving it.

Client side of the issuance/redemption protocol:

1. generate_tokens: random seed t and blind r, blinded point P = r * H(t)
2. build_issue_request: the P values, sent to the issuer
3. parse_issue_response: signed points Q = kP, verified by a batch proof
4. build_redeem_header: unblind W = r^-1 * Q = kH(t), derive a MAC key
   from W, and bind it to the request host and path

The issuer can recompute W from t alone, so a valid MAC for a fresh seed
proves possession of one unspent signed token. The issuer never saw P
unblinded, so it cannot link the redemption back to an issuance batch.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import os
from dataclasses import dataclass

from privpass import codec
from privpass.curve import N, Point, hash_to_curve, random_scalar
from privpass.errors import DecodeError, ProtocolError
from privpass.proof import BatchProof, Commitment

logger = logging.getLogger(__name__)

SEED_SIZE = 32

ISSUE_BODY_FIELD = "blinded-tokens="
ISSUE_MARKER = "signatures="

_DERIVE_KEY_TAG = b"hash_derive_key"
_REQUEST_BINDING_TAG = b"hash_request_binding"


@dataclass
class Token:
    """A client secret awaiting signature. `point` is the blinded point."""
    seed: bytes
    blind: int
    point: Point


@dataclass
class SignedToken:
    """A token whose blinded point has been signed. `point` is still blinded."""
    seed: bytes
    blind: int
    point: Point


def generate_tokens(count: int) -> list[Token]:
    """
    Generate fresh tokens, each with an independent seed and blind.

    Args:
        count: Number of tokens; must be positive.

    Returns:
        Tokens whose points are blind * H(seed).
    """
    if count < 1:
        raise ValueError(f"token count must be positive, got {count}")

    tokens = []
    for _ in range(count):
        seed = os.urandom(SEED_SIZE)
        blind = random_scalar()
        tokens.append(Token(seed=seed, blind=blind, point=blind * hash_to_curve(seed)))
    return tokens


def build_issue_request(tokens: list[Token]) -> str:
    """Serialize blinded points as b64(JSON {"type": "Issue", "contents": [...]})."""
    contents = [codec.encode_b64(t.point) for t in tokens]
    message = json.dumps({"type": "Issue", "contents": contents})
    return base64.b64encode(message.encode()).decode()


def issue_request_body(tokens: list[Token]) -> str:
    """The form-encoded body POSTed to the issuer."""
    return ISSUE_BODY_FIELD + build_issue_request(tokens)


def _decode_message(payload: str, expected_type: str) -> list:
    message = json.loads(base64.b64decode(payload.strip(), validate=True))
    if not isinstance(message, dict) or message.get("type") != expected_type:
        raise ValueError(f"not a {expected_type} message")
    contents = message.get("contents")
    if not isinstance(contents, list):
        raise ValueError("message contents must be a list")
    return contents


def parse_issue_request(body: str) -> list[Point]:
    """
    Recover the blinded points from an issuance request body.

    Raises:
        ProtocolError: If the body or any point is malformed.
    """
    if body.startswith(ISSUE_BODY_FIELD):
        body = body[len(ISSUE_BODY_FIELD):]
    try:
        contents = _decode_message(body, "Issue")
        return [codec.decode_b64(entry) for entry in contents]
    except DecodeError as e:
        raise ProtocolError("bad point") from e
    except ValueError as e:
        raise ProtocolError("malformed request") from e


def parse_issue_response(body: str, tokens: list[Token], commitment: Commitment) -> list[Point]:
    """
    Parse and verify an issuance response.

    The body holds "signatures=" followed by a base64 JSON array: one
    signed point per token in request order, then the batch proof.

    Args:
        body: Raw response text.
        tokens: The tokens sent in the matching request, in order.
        commitment: The issuer's published key commitment.

    Returns:
        Signed points aligned with `tokens`.

    Raises:
        ProtocolError: On any failure. The whole batch is rejected.
    """
    parts = body.split(ISSUE_MARKER)
    if len(parts) != 2:
        raise ProtocolError("malformed response")

    try:
        entries = json.loads(base64.b64decode(parts[1].strip(), validate=True))
    except (binascii.Error, ValueError) as e:
        raise ProtocolError("malformed response") from e
    if not isinstance(entries, list) or not all(isinstance(e, str) for e in entries):
        raise ProtocolError("malformed response")

    if len(entries) < 2 or not entries[-1]:
        raise ProtocolError("missing proof")

    encoded_points, encoded_proof = entries[:-1], entries[-1]
    if len(encoded_points) != len(tokens):
        raise ProtocolError("token count mismatch")

    try:
        signed = [codec.decode_b64(entry) for entry in encoded_points]
    except DecodeError as e:
        raise ProtocolError("bad point") from e

    try:
        proof = BatchProof.unmarshal(encoded_proof)
    except ValueError as e:
        raise ProtocolError("proof verification failed") from e

    blinded = [t.point for t in tokens]
    if not proof.verify(commitment, blinded, signed):
        raise ProtocolError("proof verification failed")

    logger.debug("Verified issuance batch of %d signed points", len(signed))
    return signed


def unblind(token: SignedToken) -> Point:
    """Remove the blind: r^-1 * kP = kH(seed)."""
    return pow(token.blind, -1, N) * token.point


def derive_key(shared: Point, seed: bytes) -> bytes:
    """MAC key shared with the issuer, derived from kH(seed) and the seed."""
    return hmac.new(_DERIVE_KEY_TAG, seed + codec.encode(shared), hashlib.sha256).digest()


def request_binding(key: bytes, *parts: bytes) -> bytes:
    """HMAC binding a redemption to the request it is attached to."""
    mac = hmac.new(key, _REQUEST_BINDING_TAG, hashlib.sha256)
    for part in parts:
        mac.update(part)
    return mac.digest()


def build_redeem_header(token: SignedToken, hostname: str, method_and_path: str) -> str:
    """
    Build the redemption header value for one request.

    Args:
        token: The signed token being spent.
        hostname: Host of the request, without port.
        method_and_path: "<METHOD> <path>", e.g. "GET /index.html".

    Returns:
        b64(JSON {"type": "Redeem", "contents": [b64(seed), b64(mac)]}).
    """
    key = derive_key(unblind(token), token.seed)
    binding = request_binding(key, hostname.encode("utf-8"), method_and_path.encode("utf-8"))
    contents = [
        base64.b64encode(token.seed).decode(),
        base64.b64encode(binding).decode(),
    ]
    message = json.dumps({"type": "Redeem", "contents": contents})
    return base64.b64encode(message.encode()).decode()


def parse_redeem_header(value: str) -> tuple[bytes, bytes]:
    """
    Split a redemption header into (seed, mac).

    Raises:
        ValueError: If the header is not a well-formed Redeem message.
    """
    try:
        contents = _decode_message(value, "Redeem")
        if len(contents) != 2:
            raise ValueError("redeem message must carry a seed and a MAC")
        seed, mac = (base64.b64decode(c, validate=True) for c in contents)
    except TypeError as e:
        raise ValueError("redeem contents must be strings") from e
    return seed, mac
