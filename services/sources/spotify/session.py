"""
Spotify auth session — turns popup logins into durable, shared state.

State lives in two places: the SessionStore on disk (the source of truth
shared by every consumer) and this object's in-memory view of it.  Every
writer saves the full tuple first and emits the auth signal afterwards;
every instance reloads its view whenever the signal fires.
"""

import logging

from lib.auth_signal import AuthChange, auth_signal as default_signal
from lib.session_store import CorruptedSessionError

from .errors import NetworkError, PopupBlockedError
from .models import LoginResult, SpotifyUserProfile

log = logging.getLogger('bandruption-session')


class SpotifyAuthSession:
    """Manages the persisted Spotify session for one process."""

    def __init__(self, bridge, store, signal=None):
        self.bridge = bridge
        self.store = store
        self.signal = signal or default_signal
        self._user: SpotifyUserProfile | None = None
        self._user_data: dict | None = None
        self._access_token: str | None = None
        self._is_authenticating = False
        self._unsubscribe = None

    def initialize(self):
        """Rehydrate from the store and start listening for auth changes."""
        self.reload()
        if self._unsubscribe is None:
            self._unsubscribe = self.signal.subscribe(lambda change: self.reload())

    def close(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def reload(self):
        """Re-read the store.  Corrupted entries are cleared, never raised."""
        try:
            stored = self.store.load()
            user_data = stored.user() if stored else None
        except CorruptedSessionError as e:
            log.warning("Discarding corrupted Spotify session: %s", e)
            self.store.clear()
            stored = None
            user_data = None

        if stored is None:
            self._set_state(None, None)
            return
        self._set_state(stored.access_token, user_data)
        log.info("Spotify session restored (user: %s)", stored.spotify_user_id or "unknown")

    async def login(self) -> LoginResult:
        """Run a popup login and persist the result.

        AuthenticationTimeout propagates; every other failure is returned.
        """
        self._is_authenticating = True
        try:
            try:
                outcome = await self.bridge.login_with_popup()
            except (PopupBlockedError, NetworkError) as e:
                log.warning("Spotify login failed: %s", e)
                return LoginResult(success=False, error=str(e))

            if not outcome.success:
                log.info("Spotify login not completed: %s", outcome.error)
                return LoginResult(success=False, error=outcome.error)

            user_data = outcome.user_data or {"id": outcome.user_id}
            self.store.save(outcome.access_token, user_data, outcome.user_id)
            self._set_state(outcome.access_token, user_data)
            log.info("Spotify login complete (user: %s)", outcome.user_id)
            self.signal.emit(AuthChange(reason="login", connected=True))
            return LoginResult(success=True)
        finally:
            self._is_authenticating = False

    def logout(self):
        """Forget the Spotify session everywhere in this process."""
        log.info("Logging out of Spotify")
        self.bridge.close_current_popup()
        self._set_state(None, None)
        self.store.clear()
        self.signal.emit(AuthChange(reason="logout", connected=False))

    def _set_state(self, access_token, user_data):
        self._access_token = access_token
        self._user_data = user_data
        self._user = SpotifyUserProfile.from_dict(user_data)

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None and self._user is not None

    @property
    def is_authenticating(self) -> bool:
        return self._is_authenticating

    @property
    def access_token(self):
        return self._access_token

    @property
    def user(self) -> SpotifyUserProfile | None:
        return self._user

    @property
    def user_data(self) -> dict | None:
        return self._user_data

    @property
    def is_premium(self) -> bool:
        return self._user is not None and self._user.is_premium

    def to_dict(self) -> dict:
        return {
            "isAuthenticated": self.is_authenticated,
            "isAuthenticating": self.is_authenticating,
            "isPremium": self.is_premium,
            "user": self._user_data,
        }
