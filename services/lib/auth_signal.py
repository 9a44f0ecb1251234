"""
Process-wide "spotify-auth-changed" signal.

Independent consumers (the auth session, the access resolver, the HTTP
service) do not share ownership of each other, so whenever the persisted
Spotify session changes the writer emits an AuthChange here and every
subscriber re-reads the store.  Writers must finish the store write before
calling emit().

Usage:
    from lib.auth_signal import auth_signal

    unsubscribe = auth_signal.subscribe(lambda change: session.reload())
    ...
    auth_signal.emit(AuthChange(reason="login", connected=True))
    unsubscribe()
"""

import logging
from dataclasses import dataclass
from typing import Callable

log = logging.getLogger('bandruption-signal')

SIGNAL_NAME = "spotify-auth-changed"


@dataclass(frozen=True)
class AuthChange:
    """Notification payload.  Subscribers should still re-read the store."""
    reason: str          # login | logout | link | unlink
    connected: bool


class AuthSignal:
    def __init__(self, name: str = SIGNAL_NAME):
        self.name = name
        self._subscribers: list[Callable[[AuthChange], None]] = []

    def subscribe(self, callback: Callable[[AuthChange], None]) -> Callable[[], None]:
        """Register a callback.  Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def emit(self, change: AuthChange):
        """Notify every subscriber, in subscription order.

        A failing subscriber is logged and does not stop the others.
        """
        log.info("%s: %s (connected=%s, %d subscribers)",
                 self.name, change.reason, change.connected, len(self._subscribers))
        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception:
                log.exception("%s subscriber failed", self.name)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


# Shared instance for code that has no explicit signal injected
auth_signal = AuthSignal()
