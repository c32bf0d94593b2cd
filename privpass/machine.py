"""
Spend Decision State Machine
Decides, for every request the host observes, whether a token is minted,
spent, or withheld.

Flow for getting tokens:
1. A challenge-solution request starts (on_before_request)
2. Fresh tokens are blinded and an IssueRequest replaces the request
3. The host sends it; complete_issuance verifies the batch and stores it

Flow for spending tokens:
1. A 403 carrying the bypass header arrives (on_headers_received)
2. If no clearance cookie is held, the host is flagged for a spend
3. The retried request gets a redemption header (on_before_send_headers)
4. On completion the tab reloads so the new clearance cookie is used

Guarantees:
- at most one token per request id and per URL until a spend reset
- at most `spend_max` tokens per host per idle window
- spend intent follows at most `max_redirect` redirects per request id
- transient state older than the idle window is never acted on

Handlers run to completion on the host's event loop. The only handler that
suspends is the cookie lookup in attempt_redeem; it re-reads the spend
state after resuming, before mutating anything.
"""

import logging
import time
from typing import Callable
from urllib.parse import urlsplit

from privpass.adapters.base import CookieStore, KeyValueStore, TabControl, domain_matches
from privpass.config import BypassConfig
from privpass.errors import ExhaustionError, IntegrityError, ProtocolError
from privpass.events import (
    CookieChange,
    HeaderDecision,
    IssueRequest,
    NavigationEvent,
    RedirectEvent,
    RequestDecision,
    RequestEvent,
    ResponseEvent,
)
from privpass.proof import Commitment
from privpass.signals import NEEDS_ATTENTION, BadgeSignal
from privpass.state import RequestState, SpendState
from privpass.store import TokenStore
from privpass.tokens import build_redeem_header, generate_tokens, issue_request_body, parse_issue_response

logger = logging.getLogger(__name__)

# Markers in challenge-solution URLs
MANUAL_CHALLENGE = "manual_challenge"
CAPTCHA_RESPONSE = "g-recaptcha-response"
BYPASS_TAG = "&captcha-bypass=true"

# Navigation transitions
AUTO_SUBFRAME = "auto_subframe"
SERVER_REDIRECT = "server_redirect"

CANCEL_URL = "javascript:void(0)"


def is_favicon_url(url: str) -> bool:
    return "favicon" in url


def host_of(url: str) -> str:
    """Host with port, lowercased, as used for spend flags and counters."""
    parsed = urlsplit(url)
    host = parsed.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    try:
        port = parsed.port
    except ValueError:
        port = None
    return host if port is None else f"{host}:{port}"


class SpendStateMachine:
    """
    Per-request, per-host and per-tab spend bookkeeping.

    Args:
        store: Token store tokens are popped from and added to.
        kv: Host key-value store holding per-host spend flags.
        cookies: Host cookie store.
        tabs: Host tab control.
        commitment: Issuer commitment batch proofs are checked against.
        config: Limits and header names. Defaults to BypassConfig().
        signal: Badge signal for "needs attention". Defaults to the store's.
        clock: Monotonic clock in seconds, used for the idle reset.
    """

    def __init__(
        self,
        store: TokenStore,
        kv: KeyValueStore,
        cookies: CookieStore,
        tabs: TabControl,
        commitment: Commitment,
        config: BypassConfig = None,
        signal: BadgeSignal = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.kv = kv
        self.cookies = cookies
        self.tabs = tabs
        self.commitment = commitment
        self.config = (config or BypassConfig()).validate()
        self.signal = signal or store.signal or BadgeSignal()
        self.clock = clock
        self.state = SpendState()

    # --- spend flags (persistent, presence = true) ---

    def spend_flag(self, host: str) -> bool:
        return host in self.kv

    def set_spend_flag(self, host: str, value: bool) -> None:
        if value:
            self.kv.set(host, "true")
        else:
            self.kv.remove(host)

    def spend_count(self, host: str) -> int:
        return self.state.spent_hosts.get(host, 0)

    def spend_capped(self, host: str) -> bool:
        return self.spend_count(host) >= self.config.spend_max

    def token_count(self) -> int:
        return self.store.count()

    # --- resets ---

    def reset_idle(self) -> None:
        """Forget per-request and per-host state from finished navigations."""
        if not self.state.idle_clear:
            logger.debug("Idle reset")
        self.state.reset_idle()

    def _maybe_reset_idle(self) -> None:
        if self.clock() - self.config.idle_reset_seconds > self.state.last_response:
            self.reset_idle()

    def on_window_removed(self) -> None:
        """Window or tab closed: forget which URLs were spent on."""
        self.state.reset_spend()

    def clear_storage(self) -> None:
        """Wipe tokens, spend flags and all transient state."""
        self.kv.clear()
        self.state.reset_idle()
        self.state.reset_spend()
        self.state.stored_url = None
        self.signal.publish(0)
        logger.info("Storage cleared")

    # --- issuance ---

    def _check_capacity(self, incoming: int) -> None:
        held = self.store.count()
        if held + incoming > self.config.max_tokens:
            raise ExhaustionError(
                f"holding {held} tokens; {incoming} more would exceed "
                f"the ceiling of {self.config.max_tokens}"
            )

    def on_before_request(self, event: RequestEvent) -> RequestDecision:
        """
        Replace a challenge-solution request with an issuance request.

        Only URLs carrying a solution marker that have not already been
        tagged or sent in this idle window trigger issuance.
        """
        self._maybe_reset_idle()

        url = event.url
        is_solution = MANUAL_CHALLENGE in url or CAPTCHA_RESPONSE in url
        if not is_solution or BYPASS_TAG in url or url in self.state.sent_tokens:
            return RequestDecision()

        try:
            self._check_capacity(self.config.tokens_per_request)
        except ExhaustionError as e:
            logger.warning("Not requesting tokens: %s", e)
            return RequestDecision()

        self.state.sent_tokens.add(url)
        tokens = generate_tokens(self.config.tokens_per_request)
        issue = IssueRequest(
            url=url + BYPASS_TAG,
            body=issue_request_body(tokens),
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "CF-Chl-Bypass": "1",
            },
            tab_id=event.tab_id,
            origin_url=url,
            tokens=tokens,
        )
        logger.info("Requesting %d tokens from %s", len(tokens), host_of(url))
        return RequestDecision(cancel=True, redirect_url=CANCEL_URL, issue=issue)

    def complete_issuance(self, issue: IssueRequest, status_code: int, body: str) -> int:
        """
        Verify an issuance response and store its tokens.

        Returns:
            Number of tokens stored; 0 when the response carried none.

        Raises:
            ProtocolError: If the response fails parsing or verification.
                Nothing from the batch is stored.
        """
        if status_code >= 300:
            logger.info("Issuance request failed with status %d; no tokens gained", status_code)
            return 0

        try:
            self._check_capacity(len(issue.tokens))
        except ExhaustionError as e:
            logger.warning("Discarding issuance response: %s", e)
            return 0

        try:
            signed = parse_issue_response(body, issue.tokens, self.commitment)
        except ProtocolError as e:
            logger.warning("Discarding issuance batch from %s: %s", host_of(issue.origin_url), e)
            raise

        self.store.add(issue.tokens, signed)

        host = host_of(issue.origin_url)
        if self.config.issuer_domain not in host:
            reload_url = f"{urlsplit(issue.origin_url).scheme}://{host}/"
            stored_url = self.state.stored_url
            if stored_url and host_of(stored_url) == host:
                reload_url = stored_url
            self.state.stored_url = None
            self.set_spend_flag(host, True)
            self.tabs.update(issue.tab_id, reload_url)
        return len(signed)

    # --- redemption ---

    async def on_headers_received(self, event: ResponseEvent) -> bool:
        """
        Inspect response headers for a bypassable challenge.

        Returns:
            True if a redemption was attempted for this URL.

        Raises:
            IntegrityError: If the server reports a verification or
                connection failure for a redemption.
        """
        url = event.url
        do_redeem = False
        for name, value in event.headers:
            name = name.lower()
            if name == self.config.bypass_response_header and value in self.config.integrity_error_codes:
                logger.error("Redemption failed for %s with error code %s", url, value)
                raise IntegrityError(
                    f"there may be a problem with the stored tokens: redemption "
                    f"failed for {url} with error code {value}"
                )
            # 403 with the right header indicates a bypassable challenge
            if name == self.config.bypass_support_header and value == "1" and event.status_code == 403:
                do_redeem = True

        if not do_redeem or url in self.state.spent_urls:
            return False

        if self.store.count() > 0:
            await self.attempt_redeem(url, event.tab_id)
            return True

        # Remember where to go once tokens arrive
        stored = url
        favicon_index = stored.find("favicon")
        if favicon_index != -1:
            stored = stored[:favicon_index]
        self.state.stored_url = stored
        self.signal.publish(NEEDS_ATTENTION)
        logger.info("Challenge on %s but no tokens held", host_of(url))
        return False

    async def attempt_redeem(self, url: str, tab_id: int) -> None:
        """Flag the host for a spend unless a clearance cookie is already held."""
        host = host_of(url)
        if self.config.issuer_domain in host:
            return

        cookie = await self.cookies.get(url, self.config.clearance_cookie)
        if cookie is not None and cookie.is_valid():
            logger.debug("Clearance already held for %s", host)
            return

        # Another handler may have spent here while the lookup was pending
        if url in self.state.spent_urls or self.spend_capped(host):
            logger.debug("Spend for %s settled while awaiting cookies", url)
            return

        self.set_spend_flag(host, True)
        target = self.state.targets.get(tab_id)
        if target == url:
            self.tabs.update(tab_id, url)
        elif not target or not is_favicon_url(target):
            # Reload once the tab's target has been committed
            self.state.future_reloads[tab_id] = url

    def _eligible_for_spend(self, url: str, host: str) -> bool:
        if not self.spend_flag(host) or self.spend_capped(host):
            return False
        if url in self.state.spent_urls or is_favicon_url(url):
            return False
        return not any(path in url for path in self.config.error_page_paths)

    def on_before_send_headers(self, event: RequestEvent) -> HeaderDecision:
        """Attach a redemption header if this host is flagged for a spend."""
        url = event.url
        host = host_of(url)
        headers = list(event.headers)

        if not self._eligible_for_spend(url, host):
            return HeaderDecision(headers)

        self.state.requests[event.request_id] = RequestState.HEADER_PENDING
        self.set_spend_flag(host, False)
        self.state.spent_hosts[host] = self.spend_count(host) + 1
        self.state.targets[event.tab_id] = ""

        token = self.store.pop_one()
        if token is None:
            self.state.requests[event.request_id] = RequestState.SKIPPED
            return HeaderDecision(headers)

        parsed = urlsplit(url)
        method_and_path = f"{event.method} {parsed.path or '/'}"
        redemption = build_redeem_header(token, parsed.hostname or "", method_and_path)
        headers.append((self.config.redeem_header, redemption))

        self.state.requests[event.request_id] = RequestState.SENT_WITH_TOKEN
        self.state.spent_urls.add(url)
        self.state.spent_tabs.setdefault(event.tab_id, []).append(url)
        logger.info("Spent token on %s (%d for this host)", host, self.spend_count(host))
        return HeaderDecision(headers, modified=True)

    # --- lifecycle ---

    def is_valid_redirect(self, old_url: str, new_url: str) -> bool:
        """An allow-listed upgrade of an http:// URL, e.g. to https://."""
        if not old_url.startswith("http://"):
            return False
        rest = old_url[len("http://"):]
        return any(prefix + rest == new_url for prefix in self.config.valid_redirects)

    def on_before_redirect(self, event: RedirectEvent) -> None:
        """Carry spend intent across a bounded number of redirects."""
        self.state.https_redirects[event.redirect_url] = self.is_valid_redirect(event.url, event.redirect_url)

        count = self.state.redirect_counts.setdefault(event.request_id, 0)
        if self.state.request_state(event.request_id) is not RequestState.SENT_WITH_TOKEN:
            return
        if count >= self.config.max_redirect:
            logger.debug("Redirect limit reached for request %s", event.request_id)
            return

        self.set_spend_flag(host_of(event.redirect_url), True)
        self.state.requests[event.request_id] = RequestState.ABANDONED
        self.state.redirect_counts[event.request_id] = count + 1

    def on_completed(self, event: RequestEvent) -> None:
        """Reload the tab after a spend so the clearance cookie takes effect."""
        self.state.last_response = self.clock()
        if self.state.request_state(event.request_id) is RequestState.SENT_WITH_TOKEN:
            self.tabs.reload(event.tab_id)
        if event.request_id in self.state.requests:
            self.state.requests[event.request_id] = RequestState.COMPLETED

    async def on_cookie_changed(self, change: CookieChange) -> None:
        cookie = change.cookie
        if cookie.name != self.config.clearance_cookie:
            return

        is_issuer = cookie.domain.lstrip(".") == self.config.issuer_domain
        if not change.removed:
            if is_issuer:
                # Issuer clearance only signals a solved challenge
                await self.cookies.remove(f"http://{self.config.issuer_domain}", cookie.name)
            else:
                self._reload_spent_tab(cookie.domain)
        elif not is_issuer:
            self.reset_host(cookie.domain)

    def _reload_spent_tab(self, cookie_domain: str) -> None:
        candidates = [cookie_domain]
        if cookie_domain.startswith("."):
            candidates.append(cookie_domain[1:])

        for tab_id, hrefs in self.state.spent_tabs.items():
            if any(domain in href for href in hrefs for domain in candidates):
                self.tabs.reload(tab_id)
                return

    def reset_host(self, domain: str) -> None:
        """Forget every spend made against hosts under a cookie domain."""
        def matches(host: str) -> bool:
            return domain_matches(host.split(":")[0], domain)

        hosts = {domain.lstrip(".").lower()}
        hosts.update(h for h in self.state.spent_hosts if matches(h))
        hosts.update(host_of(u) for u in self.state.spent_urls if matches(host_of(u)))
        for host in hosts:
            self.set_spend_flag(host, False)
            self.state.spent_hosts.pop(host, None)

        self.state.spent_urls = {u for u in self.state.spent_urls if not matches(host_of(u))}
        for tab_id in list(self.state.spent_tabs):
            remaining = [u for u in self.state.spent_tabs[tab_id] if not matches(host_of(u))]
            if remaining:
                self.state.spent_tabs[tab_id] = remaining
            else:
                del self.state.spent_tabs[tab_id]
        logger.info("Reset spend state for %s", domain)

    def _bad_transition(self, url: str, qualifier: str | None, transition_type: str) -> bool:
        # A recorded https upgrade is good exactly once
        if self.state.https_redirects.pop(url, False):
            return False
        maybe_good = transition_type in self.config.good_transitions
        if not qualifier and not maybe_good:
            return True
        return qualifier == SERVER_REDIRECT

    def is_new_tab(self, url: str) -> bool:
        return url in self.config.new_tab_urls or url.startswith(self.config.browser_page_prefix)

    def on_navigation_committed(self, event: NavigationEvent) -> None:
        """Record the tab's spend target and run any deferred reload."""
        if event.transition_type == AUTO_SUBFRAME:
            return
        qualifier = event.transition_qualifiers[0] if event.transition_qualifiers else None
        if self._bad_transition(event.url, qualifier, event.transition_type) or self.is_new_tab(event.url):
            return

        self.state.targets[event.tab_id] = event.url
        if self.state.future_reloads.get(event.tab_id) == event.url:
            del self.state.future_reloads[event.tab_id]
            self.tabs.update(event.tab_id, event.url)
