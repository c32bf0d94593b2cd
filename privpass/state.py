"""
Transient spend bookkeeping.

Every table here is keyed by a volatile id (request, tab, host or URL) and
has an explicit eviction policy:

- reset_idle():  runs when a request starts after a quiet period. Clears
                 redirect counts, issuance markers, tab targets, request
                 states, deferred reloads and host spend counters.
- reset_spend(): runs on window close or storage clear. Clears the
                 already-spent URLs, the per-tab spent lists and the
                 https-upgrade markers. An upgrade marker must outlive
                 the idle reset run by its own redirected request.

Nothing here is durable. A missing entry always means "not yet seen".
"""

from dataclasses import dataclass, field
from enum import Enum


class RequestState(Enum):
    """Lifecycle of one request id. Absent ids are IDLE."""
    IDLE = "idle"
    HEADER_PENDING = "header_pending"
    SENT_WITH_TOKEN = "sent_with_token"
    SKIPPED = "skipped"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


@dataclass
class SpendState:
    """The state machine's volatile tables."""
    requests: dict[str, RequestState] = field(default_factory=dict)
    redirect_counts: dict[str, int] = field(default_factory=dict)
    https_redirects: dict[str, bool] = field(default_factory=dict)
    sent_tokens: set[str] = field(default_factory=set)
    targets: dict[int, str] = field(default_factory=dict)
    future_reloads: dict[int, str] = field(default_factory=dict)
    spent_hosts: dict[str, int] = field(default_factory=dict)
    spent_urls: set[str] = field(default_factory=set)
    spent_tabs: dict[int, list[str]] = field(default_factory=dict)
    stored_url: str | None = None
    last_response: float = 0.0

    def request_state(self, request_id: str) -> RequestState:
        return self.requests.get(request_id, RequestState.IDLE)

    def reset_idle(self) -> None:
        self.requests.clear()
        self.redirect_counts.clear()
        self.sent_tokens.clear()
        self.targets.clear()
        self.future_reloads.clear()
        self.spent_hosts.clear()

    def reset_spend(self) -> None:
        self.spent_urls.clear()
        self.spent_tabs.clear()
        self.https_redirects.clear()

    @property
    def idle_clear(self) -> bool:
        """True when every table reset_idle() owns is empty."""
        return not (
            self.requests or self.redirect_counts or self.sent_tokens
            or self.targets or self.future_reloads or self.spent_hosts
        )
