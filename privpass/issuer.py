"""
Privacy Token Issuer
Server side of the blind-token protocol.

Signs blinded points with a secret scalar k, proves the whole batch was
signed with the committed key, and verifies redemptions. The issuer never
learns which signed point a redeemed seed came from: it recomputes kH(seed)
from the seed alone.

This is a reference issuer for local development and tests; a production
issuer keeps k in an HSM and its spent-seed list in shared storage.
"""

import base64
import hmac
import json
import logging

from privpass import codec
from privpass.curve import check_scalar, hash_to_curve, random_scalar
from privpass.proof import BatchProof, Commitment
from privpass.tokens import (
    ISSUE_MARKER,
    derive_key,
    parse_issue_request,
    parse_redeem_header,
    request_binding,
)

logger = logging.getLogger(__name__)


class PrivacyTokenIssuer:
    """
    Issues blind-signed tokens and verifies their redemption.

    Each redeemed token proves the holder once solved a challenge, without
    revealing which challenge or linking redemptions together.

    Args:
        key: Secret signing scalar in [1, N-1]. Generated randomly if not
            provided.

    Raises:
        ValueError: If `key` is out of range.
    """

    def __init__(self, key: int = None):
        self.key = random_scalar() if key is None else check_scalar(key)
        self._commitment = Commitment.from_key(self.key)
        self._issued_count = 0
        self._spent_seeds: set[bytes] = set()

    @property
    def commitment(self) -> Commitment:
        """The public (G, H) pair clients verify batch proofs against."""
        return self._commitment

    def issue_batch(self, body: str) -> str:
        """
        Sign every blinded point in an issuance request.

        Args:
            body: The "blinded-tokens=..." request body.

        Returns:
            "signatures=" followed by the base64 JSON array of signed
            points and the trailing batch proof.

        Raises:
            ProtocolError: If the request cannot be parsed.
        """
        blinded = parse_issue_request(body)
        signed = [self.key * point for point in blinded]
        proof = BatchProof.prove(self.key, self._commitment, blinded, signed)

        contents = [codec.encode_b64(point) for point in signed]
        contents.append(proof.marshal())
        self._issued_count += len(signed)
        logger.info("Issued %d tokens", len(signed))
        return ISSUE_MARKER + base64.b64encode(json.dumps(contents).encode()).decode()

    def verify(self, header: str, hostname: str, method_and_path: str) -> bool:
        """
        Verify a redemption header for the request it arrived on.

        A seed verifies at most once; a second presentation is a double
        spend and is rejected.

        Returns:
            True if the token is valid and unspent.
        """
        try:
            seed, mac = parse_redeem_header(header)
        except ValueError:
            return False

        if seed in self._spent_seeds:
            logger.warning("Rejected double spend")
            return False

        try:
            shared = self.key * hash_to_curve(seed)
        except ValueError:
            return False
        key = derive_key(shared, seed)
        expected = request_binding(key, hostname.encode("utf-8"), method_and_path.encode("utf-8"))
        if not hmac.compare_digest(mac, expected):
            return False

        self._spent_seeds.add(seed)
        return True

    @property
    def issued_count(self) -> int:
        """Total number of tokens signed."""
        return self._issued_count

    @property
    def spent_count(self) -> int:
        """Number of distinct seeds redeemed."""
        return len(self._spent_seeds)
