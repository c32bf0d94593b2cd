"""
Batch DLEQ Proofs
Zero-knowledge proof that a whole issuance batch was signed with one key.

The issuer publishes a commitment (G, H) with H = kG. For a batch of
blinded points M_i it returns Z_i = kM_i plus one proof that
log_G(H) == log_M(Z), where M and Z are random linear combinations of the
batch:

    seed = SHA256(G || H || M_1..M_n || Z_1..Z_n)
    c_i  = SHA256(seed || be32(i)) mod n
    M    = sum(c_i * M_i),  Z = sum(c_i * Z_i)

The DLEQ proof itself is Chaum-Pedersen with Fiat-Shamir:

    prover:   t random, A = tG, B = tM, C = H(G,H,M,Z,A,B), R = t - Ck
    verifier: A = RG + CH, B = RM + CZ, accept iff C == H(G,H,M,Z,A,B)

Because the coefficients depend on every point, changing any single Z_i
changes Z and the proof no longer verifies. There is no partial acceptance.
"""

import base64
import hashlib
import json
from dataclasses import dataclass

from privpass import codec
from privpass.curve import (
    GENERATOR, INFINITY, N, Point,
    random_scalar, scalar_from_bytes, scalar_to_bytes,
)


BATCH_PROOF_PREFIX = "batch-proof="


def _point_bytes(point: Point) -> bytes:
    # The identity only shows up for adversarial inputs; give it a fixed
    # encoding so hashing never raises.
    if point.is_infinity:
        return b"\x00"
    return codec.encode(point)


def _hash_to_scalar(*points: Point) -> int:
    h = hashlib.sha256()
    for point in points:
        h.update(_point_bytes(point))
    return int.from_bytes(h.digest(), "big") % N


@dataclass(frozen=True)
class Commitment:
    """The issuer's published key commitment: H = kG."""
    g: Point
    h: Point

    @classmethod
    def from_key(cls, key: int, g: Point = GENERATOR) -> "Commitment":
        return cls(g=g, h=key * g)

    def to_dict(self) -> dict:
        return {"G": codec.encode_b64(self.g), "H": codec.encode_b64(self.h)}

    @classmethod
    def from_dict(cls, data: dict) -> "Commitment":
        """Load a commitment in the {"G": b64, "H": b64} form issuers publish."""
        return cls(g=codec.decode_b64(data["G"]), h=codec.decode_b64(data["H"]))


@dataclass(frozen=True)
class DLEQProof:
    c: int
    r: int

    def verify(self, commitment: Commitment, m: Point, z: Point) -> bool:
        a = self.r * commitment.g + self.c * commitment.h
        b = self.r * m + self.c * z
        return self.c == _hash_to_scalar(commitment.g, commitment.h, m, z, a, b)

    @classmethod
    def prove(cls, key: int, commitment: Commitment, m: Point, z: Point) -> "DLEQProof":
        t = random_scalar()
        a = t * commitment.g
        b = t * m
        c = _hash_to_scalar(commitment.g, commitment.h, m, z, a, b)
        return cls(c=c, r=(t - c * key) % N)


def batch_coefficients(
    commitment: Commitment,
    blinded: list[Point],
    signed: list[Point],
) -> list[int]:
    """Derive the per-point coefficients from a hash of the whole batch."""
    h = hashlib.sha256()
    h.update(_point_bytes(commitment.g))
    h.update(_point_bytes(commitment.h))
    for point in blinded:
        h.update(_point_bytes(point))
    for point in signed:
        h.update(_point_bytes(point))
    seed = h.digest()

    coefficients = []
    for i in range(len(blinded)):
        digest = hashlib.sha256(seed + i.to_bytes(4, "big")).digest()
        coefficients.append(int.from_bytes(digest, "big") % N)
    return coefficients


def _combine(coefficients: list[int], points: list[Point]) -> Point:
    total = INFINITY
    for c, point in zip(coefficients, points):
        total = total + c * point
    return total


@dataclass(frozen=True)
class BatchProof:
    """One DLEQ proof covering every (blinded, signed) pair of a batch."""
    proof: DLEQProof

    def verify(self, commitment: Commitment, blinded: list[Point], signed: list[Point]) -> bool:
        """
        Check the proof against the ordered batch.

        Returns False for empty or misaligned batches rather than raising.
        """
        if not blinded or len(blinded) != len(signed):
            return False
        coefficients = batch_coefficients(commitment, blinded, signed)
        m = _combine(coefficients, blinded)
        z = _combine(coefficients, signed)
        return self.proof.verify(commitment, m, z)

    @classmethod
    def prove(
        cls,
        key: int,
        commitment: Commitment,
        blinded: list[Point],
        signed: list[Point],
    ) -> "BatchProof":
        coefficients = batch_coefficients(commitment, blinded, signed)
        m = _combine(coefficients, blinded)
        z = _combine(coefficients, signed)
        return cls(DLEQProof.prove(key, commitment, m, z))

    def marshal(self) -> str:
        """
        Wire form: "batch-proof=" + b64(JSON {"P": b64(JSON {"R", "C"})}).
        """
        inner = json.dumps({
            "R": base64.b64encode(scalar_to_bytes(self.proof.r)).decode(),
            "C": base64.b64encode(scalar_to_bytes(self.proof.c)).decode(),
        })
        outer = json.dumps({"P": base64.b64encode(inner.encode()).decode()})
        return BATCH_PROOF_PREFIX + base64.b64encode(outer.encode()).decode()

    @classmethod
    def unmarshal(cls, data: str) -> "BatchProof":
        """
        Parse the wire form. The "batch-proof=" prefix is optional.

        Raises:
            ValueError: On any structural problem with the encoding.
        """
        if data.startswith(BATCH_PROOF_PREFIX):
            data = data[len(BATCH_PROOF_PREFIX):]
        try:
            outer = json.loads(base64.b64decode(data, validate=True))
            inner = json.loads(base64.b64decode(outer["P"], validate=True))
            r = scalar_from_bytes(base64.b64decode(inner["R"], validate=True))
            c = scalar_from_bytes(base64.b64decode(inner["C"], validate=True))
        except (KeyError, TypeError) as e:
            raise ValueError("batch proof is missing fields") from e
        return cls(DLEQProof(c=c, r=r))
