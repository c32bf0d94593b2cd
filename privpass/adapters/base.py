"""
Base classes for host collaborators.
Every host runtime the state machine is embedded in implements these.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass


def domain_matches(host: str, domain: str) -> bool:
    """Cookie domain matching: exact host, or any subdomain of `domain`."""
    host = host.lower()
    domain = domain.lower().lstrip(".")
    return host == domain or host.endswith("." + domain)


class KeyValueStore(ABC):
    """String-keyed persistent storage for tokens, counts and spend flags."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key. Removing an absent key is not an error."""

    @abstractmethod
    def clear(self) -> None:
        """Delete every key."""

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


@dataclass(frozen=True)
class Cookie:
    """
    A cookie as reported by the host's cookie store.

    `expires` is a Unix timestamp in seconds; None marks a session cookie.
    """
    name: str
    domain: str
    expires: float | None = None

    def is_valid(self, now: float = None) -> bool:
        """A session cookie, or a persistent one that has not expired."""
        if self.expires is None:
            return True
        return self.expires >= (time.time() if now is None else now)


class CookieStore(ABC):
    """Query and remove cookies. Both calls may suspend."""

    @abstractmethod
    async def get(self, url: str, name: str) -> Cookie | None:
        """
        Look up the cookie `name` that would be sent to `url`.

        Returns:
            The cookie, or None if the browser holds no such cookie.
        """

    @abstractmethod
    async def remove(self, url: str, name: str) -> None:
        """Remove the cookie `name` scoped to `url`."""


class TabControl(ABC):
    """Reload or navigate browser tabs. Fire-and-forget."""

    @abstractmethod
    def reload(self, tab_id: int) -> None:
        """Reload the tab."""

    @abstractmethod
    def update(self, tab_id: int, url: str) -> None:
        """Navigate the tab to a URL."""
