"""
In-memory collaborators.

Used when embedding the state machine in a process that owns its own
persistence, and throughout the test suite.
"""

from urllib.parse import urlsplit

from privpass.adapters.base import Cookie, CookieStore, KeyValueStore, TabControl, domain_matches


class MemoryKeyValueStore(KeyValueStore):
    """A dict behind the KeyValueStore interface."""

    def __init__(self, data: dict[str, str] = None):
        self.data = dict(data or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)

    def clear(self) -> None:
        self.data.clear()


class MemoryCookieStore(CookieStore):
    """Cookies keyed by (domain, name)."""

    def __init__(self):
        self.cookies: dict[tuple[str, str], Cookie] = {}
        self.removed: list[tuple[str, str]] = []

    def set_cookie(self, cookie: Cookie) -> None:
        self.cookies[(cookie.domain, cookie.name)] = cookie

    async def get(self, url: str, name: str) -> Cookie | None:
        host = urlsplit(url).hostname or ""
        for (domain, cookie_name), cookie in self.cookies.items():
            if cookie_name == name and domain_matches(host, domain):
                return cookie
        return None

    async def remove(self, url: str, name: str) -> None:
        host = urlsplit(url).hostname or ""
        for key in [k for k in self.cookies if k[1] == name and domain_matches(host, k[0])]:
            del self.cookies[key]
        self.removed.append((url, name))


class RecordingTabs(TabControl):
    """Records tab operations instead of performing them."""

    def __init__(self):
        self.reloads: list[int] = []
        self.updates: list[tuple[int, str]] = []

    def reload(self, tab_id: int) -> None:
        self.reloads.append(tab_id)

    def update(self, tab_id: int, url: str) -> None:
        self.updates.append((tab_id, url))
