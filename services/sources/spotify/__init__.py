"""
Spotify connect for Bandruption: popup OAuth bridge, persisted session and
access resolution.

  - ``PopupAuthBridge``        one popup handshake → one AuthOutcome
  - ``SpotifyAuthSession``     persists logins and broadcasts auth changes
  - ``SpotifyLinking``         links a Spotify account to an umbrella user
  - ``SpotifyAccessResolver``  primary / linked / none access resolution
"""

from .access import SpotifyAccessResolver, access_method
from .errors import AuthenticationTimeout, NetworkError, PopupBlockedError
from .linking import SpotifyLinking
from .models import AccessMethod, AuthOutcome, SpotifyAccess, UmbrellaSession
from .popup import PopupAuthBridge
from .session import SpotifyAuthSession

__all__ = [
    "AccessMethod",
    "AuthOutcome",
    "AuthenticationTimeout",
    "NetworkError",
    "PopupAuthBridge",
    "PopupBlockedError",
    "SpotifyAccess",
    "SpotifyAccessResolver",
    "SpotifyAuthSession",
    "SpotifyLinking",
    "UmbrellaSession",
    "access_method",
]
