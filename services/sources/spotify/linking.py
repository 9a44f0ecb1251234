"""
Spotify account linking for users whose umbrella login is another provider.

A linked account is a row in the Supabase `spotify_tokens` table keyed by the
umbrella user id.  Linking reuses the popup bridge to get Spotify tokens,
upserts the row, then writes the local session tuple and emits the auth
signal so every consumer picks it up.

supabase-py is blocking; table calls run in the default executor.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from lib.auth_signal import AuthChange, auth_signal as default_signal
from lib.supabase_client import get_client, tokens_table

from .errors import NetworkError, PopupBlockedError
from .models import LinkResult

log = logging.getLogger('bandruption-linking')

DEFAULT_EXPIRES_IN = 3600  # seconds, when the provider omits expires_in

NOT_LOGGED_IN = "Must be logged in to link Spotify account"
NOT_LOGGED_IN_UNLINK = "Must be logged in to unlink Spotify account"
NO_SPOTIFY_USER = "Spotify user ID not available"
LINK_FAILED = "Failed to link Spotify account"
UNLINK_FAILED = "Failed to unlink Spotify account"
AUTH_FAILED = "Failed to authenticate with Spotify"


def _utcnow():
    return datetime.now(timezone.utc)


def _parse_timestamp(value):
    if not value:
        return None
    try:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def expires_at_from(expires_in, now=None) -> datetime:
    """Expiry for a fresh token; falls back to one hour."""
    seconds = expires_in or DEFAULT_EXPIRES_IN
    return (now or _utcnow()) + timedelta(seconds=seconds)


class SpotifyLinking:
    def __init__(self, bridge, store, signal=None, client=None, table=None, clock=_utcnow):
        self.bridge = bridge
        self.store = store
        self.signal = signal or default_signal
        self._client = client
        self.table = table or tokens_table()
        self._clock = clock
        self._is_linking = False

    @property
    def client(self):
        if self._client is None:
            self._client = get_client()
        return self._client

    @property
    def is_linking(self) -> bool:
        return self._is_linking

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    # ── Link ──

    async def link_account(self, umbrella) -> LinkResult:
        """Link a Spotify account to the umbrella user via the popup flow.

        AuthenticationTimeout propagates; every other failure is returned.
        """
        if umbrella is None or umbrella.user is None:
            return LinkResult(success=False, error=NOT_LOGGED_IN)

        self._is_linking = True
        try:
            try:
                outcome = await self.bridge.login_with_popup()
            except (PopupBlockedError, NetworkError) as e:
                log.warning("Spotify linking failed: %s", e)
                return LinkResult(success=False, error=str(e))

            if not (outcome.success and outcome.access_token and outcome.user_data):
                return LinkResult(success=False, error=outcome.error or AUTH_FAILED)
            if not outcome.user_id:
                return LinkResult(success=False, error=NO_SPOTIFY_USER)

            now = self._clock()
            record = {
                "user_id": umbrella.user.id,
                "access_token": outcome.access_token,
                # Column is non-null; empty string means no refresh token
                "refresh_token": outcome.refresh_token or "",
                "expires_at": expires_at_from(outcome.expires_in, now).isoformat(),
                "spotify_user_id": outcome.user_id,
                "created_at": now.isoformat(),
                "updated_at": now.isoformat(),
            }
            try:
                await self._run(self._upsert, record)
            except Exception as e:
                log.error("Failed to store Spotify tokens: %s", e)
                return LinkResult(success=False, error=LINK_FAILED)

            self.store.save(outcome.access_token, outcome.user_data, outcome.user_id)
            log.info("Spotify account %s linked to user %s", outcome.user_id, umbrella.user.id)
            self.signal.emit(AuthChange(reason="link", connected=True))
            return LinkResult(success=True)
        finally:
            self._is_linking = False

    def _upsert(self, record):
        return self.client.table(self.table).upsert(record).execute()

    # ── Status ──

    async def check_link_status(self, umbrella) -> bool:
        """True when the user has a linked token record that has not expired."""
        if umbrella is None or umbrella.user is None:
            return False
        try:
            response = await self._run(self._select, umbrella.user.id)
        except Exception as e:
            log.error("Failed to check Spotify link status: %s", e)
            return False

        rows = getattr(response, "data", None) or []
        if not rows:
            return False
        expires_at = _parse_timestamp(rows[0].get("expires_at"))
        return expires_at is not None and expires_at > self._clock()

    def _select(self, user_id):
        return (self.client.table(self.table)
                .select("access_token, expires_at")
                .eq("user_id", user_id)
                .limit(1)
                .execute())

    # ── Unlink ──

    async def unlink_account(self, umbrella) -> LinkResult:
        if umbrella is None or umbrella.user is None:
            return LinkResult(success=False, error=NOT_LOGGED_IN_UNLINK)
        try:
            await self._run(self._delete, umbrella.user.id)
        except Exception as e:
            log.error("Failed to remove Spotify tokens: %s", e)
            return LinkResult(success=False, error=UNLINK_FAILED)

        self.store.clear()
        log.info("Spotify account unlinked from user %s", umbrella.user.id)
        self.signal.emit(AuthChange(reason="unlink", connected=False))
        return LinkResult(success=True)

    def _delete(self, user_id):
        return self.client.table(self.table).delete().eq("user_id", user_id).execute()
