"""
Badge signal.
The host subscribes once at startup to show the token count, or a
"needs attention" marker when a challenge was seen with no tokens left.
"""

import logging
from typing import Callable

logger = logging.getLogger(__name__)

NEEDS_ATTENTION = "!"

BadgeValue = int | str


class BadgeSignal:
    """Fan-out of badge updates to registered subscribers."""

    def __init__(self):
        self._subscribers: list[Callable[[BadgeValue], None]] = []

    def subscribe(self, callback: Callable[[BadgeValue], None]) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, value: BadgeValue) -> None:
        """Send a token count or NEEDS_ATTENTION to every subscriber."""
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                # Contain subscriber failures
                logger.exception("Badge subscriber %r failed", callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
