"""
Curve Point Codec
The single conversion boundary between Point values and bytes.

Wire and storage form is SEC1: 33-byte compressed points (0x02/0x03 || X)
are produced; compressed and 65-byte uncompressed (0x04 || X || Y) points
are accepted. Curve membership is checked by the cryptography package's
SEC1 parser, so nothing off-curve ever becomes a Point.
"""

import base64
import binascii

from cryptography.hazmat.primitives.asymmetric import ec

from privpass.curve import P, Point
from privpass.errors import DecodeError


COMPRESSED_SIZE = 33
UNCOMPRESSED_SIZE = 65
_COORD_SIZE = 32


def encode(point: Point, compressed: bool = True) -> bytes:
    """
    Encode a point in SEC1 form.

    Raises:
        ValueError: For the identity, which has no wire form.
    """
    if point.is_infinity:
        raise ValueError("cannot encode the point at infinity")
    x = point.x.to_bytes(_COORD_SIZE, "big")
    if compressed:
        return bytes([0x02 | (point.y & 1)]) + x
    return b"\x04" + x + point.y.to_bytes(_COORD_SIZE, "big")


def decode(data: bytes) -> Point:
    """
    Decode a SEC1 point.

    Raises:
        DecodeError: On a bad length or prefix, a coordinate >= p, or a
            point that is not on the curve.
    """
    if not isinstance(data, (bytes, bytearray)):
        raise DecodeError(f"expected bytes, got {type(data).__name__}")
    data = bytes(data)

    if len(data) == COMPRESSED_SIZE:
        if data[0] not in (0x02, 0x03):
            raise DecodeError(f"bad compressed point prefix 0x{data[0]:02x}")
    elif len(data) == UNCOMPRESSED_SIZE:
        if data[0] != 0x04:
            raise DecodeError(f"bad uncompressed point prefix 0x{data[0]:02x}")
    else:
        raise DecodeError(f"bad point length {len(data)}")

    # Range check each coordinate before handing off to the SEC1 parser
    for start in range(1, len(data), _COORD_SIZE):
        if int.from_bytes(data[start:start + _COORD_SIZE], "big") >= P:
            raise DecodeError("coordinate out of range")

    try:
        public_key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), data)
    except ValueError as e:
        raise DecodeError("point is not on the curve") from e

    numbers = public_key.public_numbers()
    return Point(numbers.x, numbers.y)


def encode_b64(point: Point) -> str:
    """Compressed point as standard base64, the form used in JSON messages."""
    return base64.b64encode(encode(point)).decode()


def decode_b64(data: str) -> Point:
    """Inverse of encode_b64. Raises DecodeError on any failure."""
    if not isinstance(data, str):
        raise DecodeError(f"expected base64 string, got {type(data).__name__}")
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError("point is not valid base64") from e
    return decode(raw)
