"""
Host collaborators for the spend state machine.
Each adapter implements one capability the host runtime provides.
"""

from privpass.adapters.base import Cookie, CookieStore, KeyValueStore, TabControl, domain_matches
from privpass.adapters.filesystem import FileKeyValueStore
from privpass.adapters.memory import MemoryCookieStore, MemoryKeyValueStore, RecordingTabs

__all__ = [
    "Cookie",
    "CookieStore",
    "KeyValueStore",
    "TabControl",
    "FileKeyValueStore",
    "MemoryCookieStore",
    "MemoryKeyValueStore",
    "RecordingTabs",
    "domain_matches",
]
