"""
Atomic storage for the persisted Spotify session.

The four entries the app keeps about a connected Spotify account live in one
JSON document:

    spotify_access_token   access token (string)
    spotify_user           serialized SpotifyUserProfile (JSON string)
    spotify_connected      "true" while connected
    spotify_user_id        Spotify user id

They are written and cleared as a unit.  Writes are atomic (temp file +
rename) so a reader never sees a token without a profile or vice versa.

Storage locations (first writable wins, unless a path is configured):
  1. /etc/bandruption/spotify_session.json
  2. <script_dir>/spotify_session.json      (dev fallback)
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone

log = logging.getLogger('bandruption-store')

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))

STORE_PATHS = [
    "/etc/bandruption/spotify_session.json",
    os.path.join(SCRIPT_DIR, "spotify_session.json"),
]

KEY_ACCESS_TOKEN = "spotify_access_token"
KEY_USER = "spotify_user"
KEY_CONNECTED = "spotify_connected"
KEY_USER_ID = "spotify_user_id"

SESSION_KEYS = (KEY_ACCESS_TOKEN, KEY_USER, KEY_CONNECTED, KEY_USER_ID)


class CorruptedSessionError(Exception):
    """The persisted session exists but cannot be decoded."""


@dataclass(frozen=True)
class PersistedSession:
    access_token: str
    user_json: str
    spotify_user_id: str
    connected: bool = True

    def user(self) -> dict:
        """Decode the stored profile.  Raises CorruptedSessionError."""
        try:
            data = json.loads(self.user_json)
        except (TypeError, ValueError) as e:
            raise CorruptedSessionError(f"Stored Spotify profile is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise CorruptedSessionError("Stored Spotify profile is not an object")
        return data


def _find_store_path():
    """Find the best store path (first existing, or first writable)."""
    for path in STORE_PATHS:
        if os.path.exists(path):
            return path
    for path in STORE_PATHS:
        d = os.path.dirname(path)
        if os.path.isdir(d) and os.access(d, os.W_OK):
            return path
    return STORE_PATHS[-1]


class SessionStore:
    """Reads and writes the PersistedSession tuple as one document."""

    def __init__(self, path: str | None = None):
        self.path = path or _find_store_path()

    def load(self) -> PersistedSession | None:
        """Return the stored session, or None when nothing complete is stored.

        Raises CorruptedSessionError when the file or profile cannot be decoded.
        """
        try:
            with open(self.path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            raise CorruptedSessionError(f"Session file {self.path} is not JSON: {e}") from e

        if not isinstance(data, dict):
            raise CorruptedSessionError(f"Session file {self.path} is not an object")

        token = data.get(KEY_ACCESS_TOKEN)
        user_json = data.get(KEY_USER)
        if not token or not user_json:
            return None

        session = PersistedSession(
            access_token=token,
            user_json=user_json,
            spotify_user_id=data.get(KEY_USER_ID, ""),
            connected=data.get(KEY_CONNECTED) == "true",
        )
        session.user()  # validate the profile up front
        return session

    def save(self, access_token: str, user: dict, spotify_user_id: str) -> PersistedSession:
        """Atomically write the full tuple.  Returns what was written."""
        session = PersistedSession(
            access_token=access_token,
            user_json=json.dumps(user),
            spotify_user_id=spotify_user_id,
            connected=True,
        )
        data = {
            KEY_ACCESS_TOKEN: session.access_token,
            KEY_USER: session.user_json,
            KEY_CONNECTED: "true",
            KEY_USER_ID: session.spotify_user_id,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

        d = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(d, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=d, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(tmp, self.path)
        except Exception:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

        log.info("Spotify session saved (user: %s)", spotify_user_id)
        return session

    def clear(self):
        """Delete the stored session.  Returns the path deleted, or None."""
        if os.path.exists(self.path):
            os.unlink(self.path)
            log.info("Spotify session cleared: %s", self.path)
            return self.path
        return None

    def is_connected(self) -> bool:
        try:
            session = self.load()
        except CorruptedSessionError:
            return False
        return session is not None and session.connected
