"""
Host lifecycle events and the decisions returned for them.

The host runtime translates its own interception callbacks into these
values before handing them to the state machine. Header lists keep their
original order and case; lookups are case-insensitive.
"""

from dataclasses import dataclass, field

from privpass.adapters.base import Cookie
from privpass.tokens import Token


Headers = list[tuple[str, str]]


@dataclass
class RequestEvent:
    """A request about to be dispatched, about to send headers, or completed."""
    request_id: str
    tab_id: int
    url: str
    method: str = "GET"
    headers: Headers = field(default_factory=list)


@dataclass
class ResponseEvent:
    """Response headers received, before the body is rendered."""
    request_id: str
    tab_id: int
    url: str
    status_code: int
    headers: Headers = field(default_factory=list)


@dataclass
class RedirectEvent:
    request_id: str
    tab_id: int
    url: str
    redirect_url: str


@dataclass
class NavigationEvent:
    """A top-level navigation was committed in a tab."""
    tab_id: int
    url: str
    transition_type: str
    transition_qualifiers: list[str] = field(default_factory=list)


@dataclass
class CookieChange:
    cookie: Cookie
    removed: bool = False


@dataclass
class IssueRequest:
    """
    An issuance request the host must send to the issuer.

    The host POSTs `body` to `url` with `headers`, then hands the response
    to SpendStateMachine.complete_issuance together with this object.
    """
    url: str
    body: str
    headers: dict[str, str]
    tab_id: int
    origin_url: str
    tokens: list[Token]


@dataclass
class RequestDecision:
    """Outcome of a before-request hook: pass through, or cancel and issue."""
    cancel: bool = False
    redirect_url: str | None = None
    issue: IssueRequest | None = None


@dataclass
class HeaderDecision:
    """Outcome of a before-send-headers hook."""
    headers: Headers
    modified: bool = False

    def get(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None
