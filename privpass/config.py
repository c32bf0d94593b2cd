"""
Configuration for the spend state machine.

Defaults match the values the issuing service and the challenge pages
expect. Override fields on a BypassConfig instance to point the client at a
different issuer or to tighten the spend limits.
"""

from dataclasses import dataclass


# Header and cookie names used by the challenge pages
BYPASS_SUPPORT_HEADER = "cf-chl-bypass"
BYPASS_RESPONSE_HEADER = "cf-chl-bypass-resp"
REDEEM_HEADER = "challenge-bypass-token"
CLEARANCE_COOKIE = "cf_clearance"
ISSUER_DOMAIN = "captcha.website"  # cookies have dots prepended

# Error codes carried by the bypass response header
VERIFICATION_ERROR = "6"
CONNECTION_ERROR = "5"

# Limits
MAX_REDIRECT = 3
SPEND_MAX = 3
MAX_TOKENS = 300
TOKENS_PER_REQUEST = 30
IDLE_RESET_SECONDS = 2.0

VALID_REDIRECTS = ("https://", "https://www.", "http://www.")
GOOD_TRANSITIONS = ("link", "typed", "auto_bookmark", "reload")
ERROR_PAGE_PATHS = ("/cdn-cgi/styles/", "/cdn-cgi/scripts/", "/cdn-cgi/images/")
NEW_TAB_URLS = ("about:privatebrowsing", "about:blank")
BROWSER_PAGE_PREFIX = "chrome://"


@dataclass
class BypassConfig:
    """Tunable parameters of the spend state machine."""
    bypass_support_header: str = BYPASS_SUPPORT_HEADER
    bypass_response_header: str = BYPASS_RESPONSE_HEADER
    redeem_header: str = REDEEM_HEADER
    clearance_cookie: str = CLEARANCE_COOKIE
    issuer_domain: str = ISSUER_DOMAIN
    verification_error: str = VERIFICATION_ERROR
    connection_error: str = CONNECTION_ERROR
    max_redirect: int = MAX_REDIRECT
    spend_max: int = SPEND_MAX
    max_tokens: int = MAX_TOKENS
    tokens_per_request: int = TOKENS_PER_REQUEST
    idle_reset_seconds: float = IDLE_RESET_SECONDS
    valid_redirects: tuple[str, ...] = VALID_REDIRECTS
    good_transitions: tuple[str, ...] = GOOD_TRANSITIONS
    error_page_paths: tuple[str, ...] = ERROR_PAGE_PATHS
    new_tab_urls: tuple[str, ...] = NEW_TAB_URLS
    browser_page_prefix: str = BROWSER_PAGE_PREFIX

    def validate(self) -> "BypassConfig":
        """Reject limits that would disable the machine outright."""
        for name in ("max_redirect", "spend_max", "max_tokens", "tokens_per_request"):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} must be positive, got {value}")
        if self.tokens_per_request > self.max_tokens:
            raise ValueError(
                f"tokens_per_request ({self.tokens_per_request}) exceeds "
                f"max_tokens ({self.max_tokens})"
            )
        if self.idle_reset_seconds < 0:
            raise ValueError("idle_reset_seconds must not be negative")
        return self

    @property
    def integrity_error_codes(self) -> set[str]:
        """Response codes that mean redemption failed server-side."""
        return {self.verification_error, self.connection_error}
