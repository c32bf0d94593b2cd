"""
P-256 Group Operations
Point values over NIST P-256 (secp256r1), with the group arithmetic done by
the ecdsa package.

Points are plain immutable values: two affine integer coordinates and
nothing else. They never reference other objects, so they can be hashed,
compared and handed to the codec for storage without any flattening step.
Arithmetic converts to ecdsa's Jacobian points and back.

The issuer commits to a generator G and a public point H = kG on this
curve. Tokens are hashed onto the curve with try-and-increment so that the
issuer can recompute H(seed) from the seed alone at redemption time.
"""

import hashlib
import secrets
from dataclasses import dataclass

from ecdsa import NIST256p
from ecdsa.ellipticcurve import INFINITY as JACOBI_INFINITY
from ecdsa.ellipticcurve import PointJacobi
from ecdsa.errors import MalformedPointError


CURVE = NIST256p

# Curve parameters (SEC 2, section 2.4.2)
P = CURVE.curve.p()
A = CURVE.curve.a()
B = CURVE.curve.b()
N = CURVE.order
GX = CURVE.generator.x()
GY = CURVE.generator.y()

SCALAR_SIZE = 32

# Domain separator for hash-to-curve, matching the issuer's label bytes
HASH_LABEL = b"1.2.840.10045.3.1.7 point generation seed"
HASH_TO_CURVE_ATTEMPTS = 10


@dataclass(frozen=True)
class Point:
    """
    An affine point on P-256.

    The identity element is represented by INFINITY, i.e. (0, 0), which is
    not a solution of the curve equation because B != 0.
    """
    x: int
    y: int

    @property
    def is_infinity(self) -> bool:
        return self.x == 0 and self.y == 0

    def on_curve(self) -> bool:
        if self.is_infinity:
            return True
        if not (0 <= self.x < P and 0 <= self.y < P):
            return False
        return CURVE.curve.contains_point(self.x, self.y)

    def to_jacobi(self) -> PointJacobi:
        """The ecdsa form of this point. Not defined for INFINITY."""
        if self == GENERATOR:
            # Carries ecdsa's precomputed multiples
            return CURVE.generator
        return PointJacobi(CURVE.curve, self.x, self.y, 1, order=N)

    @classmethod
    def from_jacobi(cls, point) -> "Point":
        if point == JACOBI_INFINITY:
            return INFINITY
        return cls(point.x(), point.y())

    def __add__(self, other: "Point") -> "Point":
        return point_add(self, other)

    def __neg__(self) -> "Point":
        return point_neg(self)

    def __sub__(self, other: "Point") -> "Point":
        return point_add(self, point_neg(other))

    def __mul__(self, k: int) -> "Point":
        return scalar_mult(k, self)

    __rmul__ = __mul__


INFINITY = Point(0, 0)
GENERATOR = Point(GX, GY)


def point_neg(point: Point) -> Point:
    if point.is_infinity:
        return INFINITY
    return Point(point.x, (-point.y) % P)


def point_add(p1: Point, p2: Point) -> Point:
    if p1.is_infinity:
        return p2
    if p2.is_infinity:
        return p1
    return Point.from_jacobi(p1.to_jacobi() + p2.to_jacobi())


def scalar_mult(k: int, point: Point) -> Point:
    """Compute k * point. P-256 has cofactor 1, so k is taken mod N."""
    k %= N
    if k == 0 or point.is_infinity:
        return INFINITY
    return Point.from_jacobi(point.to_jacobi() * k)


def lift_x(x: int, odd: bool) -> Point | None:
    """
    Recover the point with the given x coordinate and y parity.

    Returns None if x is out of range or no such point exists.
    """
    if not 0 <= x < P:
        return None
    encoded = bytes([0x03 if odd else 0x02]) + x.to_bytes(SCALAR_SIZE, "big")
    try:
        point = PointJacobi.from_bytes(CURVE.curve, encoded)
    except MalformedPointError:
        return None
    return Point.from_jacobi(point)


def hash_to_curve(seed: bytes) -> Point:
    """
    Map arbitrary bytes onto the curve with try-and-increment.

    For counter i = 0..9, x = SHA256(label || seed || le32(i)); the first x
    that lands on the curve gives the point with even y.

    Raises:
        ValueError: If every attempt misses (probability about 2^-10).
    """
    for i in range(HASH_TO_CURVE_ATTEMPTS):
        digest = hashlib.sha256(HASH_LABEL + seed + i.to_bytes(4, "little")).digest()
        point = lift_x(int.from_bytes(digest, "big"), odd=False)
        if point is not None:
            return point
    raise ValueError("hash_to_curve: no curve point found for seed")


def random_scalar() -> int:
    """Uniform scalar in [1, N-1]."""
    return secrets.randbelow(N - 1) + 1


def scalar_to_bytes(k: int) -> bytes:
    return (k % N).to_bytes(SCALAR_SIZE, "big")


def scalar_from_bytes(data: bytes) -> int:
    """
    Parse a big-endian scalar.

    Raises:
        ValueError: If the encoding is the wrong size or not below N.
    """
    if len(data) != SCALAR_SIZE:
        raise ValueError(f"scalar must be {SCALAR_SIZE} bytes, got {len(data)}")
    k = int.from_bytes(data, "big")
    if k >= N:
        raise ValueError("scalar out of range")
    return k


def check_scalar(k: int) -> int:
    """
    Validate a secret scalar.

    Raises:
        ValueError: If k is not in [1, N-1].
    """
    if not 0 < k < N:
        raise ValueError("scalar out of range")
    return k
