"""
Errors raised by the Spotify connect flow.

Only PopupBlockedError, NetworkError and AuthenticationTimeout ever leave the
popup bridge.  The session and linking layers turn the first two into failure
results; a timeout propagates to the caller.
"""

from lib.session_store import CorruptedSessionError

__all__ = [
    "SpotifyAuthError",
    "PopupBlockedError",
    "AuthenticationTimeout",
    "NetworkError",
    "CorruptedSessionError",
    "AUTH_CANCELLED",
    "AUTH_SUPERSEDED",
    "NEEDS_LINKING_CODE",
]

AUTH_CANCELLED = "Authentication cancelled"
AUTH_SUPERSEDED = "Authentication superseded"

# 409 body sentinel from the token endpoint
NEEDS_LINKING_CODE = "SPOTIFY_PRIMARY_AUTH_DETECTED"


class SpotifyAuthError(Exception):
    """Base class for popup authentication failures."""


class PopupBlockedError(SpotifyAuthError):
    def __init__(self, message="Popup blocked. Please allow popups for this site."):
        super().__init__(message)


class AuthenticationTimeout(SpotifyAuthError):
    def __init__(self, message="Authentication timeout"):
        super().__init__(message)


class NetworkError(SpotifyAuthError):
    """A backend request failed (transport error or non-success status)."""
