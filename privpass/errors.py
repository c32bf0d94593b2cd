"""
Error taxonomy for the token protocol and the spend state machine.

Only two errors reach the host: ProtocolError from complete_issuance and
IntegrityError from on_headers_received. Every other failure degrades to
"this request proceeds without a token".
"""


class PrivPassError(Exception):
    """Base class for all privpass errors."""


class DecodeError(PrivPassError, ValueError):
    """A curve point could not be decoded from its wire form."""


class ProtocolError(PrivPassError):
    """
    An issuance response was malformed or failed verification.

    Fatal to the whole batch: no token from the batch is stored.
    """


class ExhaustionError(PrivPassError):
    """The token store is at its ceiling, so issuance is skipped."""


class IntegrityError(PrivPassError):
    """
    The server reported a verification or connection failure on redemption.

    Stored tokens may be unusable; the operator should clear storage.
    """
