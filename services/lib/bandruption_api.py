"""
Thin aiohttp client for the Bandruption backend.

Endpoints:
  GET  <auth-base>/auth/login      → {"authUrl": ...}
  POST <auth-base>/auth/callback   {code, state} → {success, userId, accessToken?, userData?}
  GET  <api-base>/tokens           Bearer <umbrella token> → {access_token, user_data}
  GET  <api-base>/link-status      Bearer <umbrella token> → {hasSpotifyAccess}

Transport failures surface as aiohttp.ClientError / asyncio.TimeoutError,
non-2xx responses as ApiError.  Callers decide how to turn them into results.
"""

import logging

import aiohttp
from aiohttp import ClientSession

from lib.config import cfg
from lib.http_utils import bearer

log = logging.getLogger('bandruption-api')

DEFAULT_AUTH_BASE = "http://localhost:3001/api/spotify"
DEFAULT_API_BASE = "http://localhost:3001/api/spotify"
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=10)


class ApiError(Exception):
    """Backend answered with a non-success status."""

    def __init__(self, path: str, status: int, body=None):
        self.path = path
        self.status = status
        self.body = body
        super().__init__(f"{path} -> HTTP {status}")

    @property
    def error_code(self):
        if isinstance(self.body, dict):
            return self.body.get("error")
        return None


async def _read_body(resp):
    try:
        return await resp.json(content_type=None)
    except ValueError:
        return await resp.text()


class BandruptionApi:
    def __init__(self, session: ClientSession, auth_base: str | None = None,
                 api_base: str | None = None):
        self.session = session
        self.auth_base = (auth_base or cfg("auth", "base_url", default=DEFAULT_AUTH_BASE)).rstrip("/")
        self.api_base = (api_base or cfg("api", "base_url", default=DEFAULT_API_BASE)).rstrip("/")

    async def _get(self, url, path, headers=None):
        async with self.session.get(url, headers=headers, timeout=REQUEST_TIMEOUT) as resp:
            body = await _read_body(resp)
            if not 200 <= resp.status < 300:
                log.warning("GET %s -> %d", path, resp.status)
                raise ApiError(path, resp.status, body)
            return body

    async def get_auth_url(self) -> str:
        """Fetch the provider authorization URL for a new popup login."""
        body = await self._get(f"{self.auth_base}/auth/login", "/auth/login")
        auth_url = body.get("authUrl") if isinstance(body, dict) else None
        if not auth_url:
            raise ApiError("/auth/login", 200, body)
        return auth_url

    async def exchange_code(self, code: str, state: str) -> dict:
        """Redeem a single-use authorization code.  Only the popup callback calls this."""
        url = f"{self.auth_base}/auth/callback"
        async with self.session.post(url, json={"code": code, "state": state},
                                     timeout=REQUEST_TIMEOUT) as resp:
            body = await _read_body(resp)
            if not 200 <= resp.status < 300:
                log.warning("POST /auth/callback -> %d", resp.status)
                raise ApiError("/auth/callback", resp.status, body)
            return body

    async def get_tokens(self, umbrella_token: str) -> dict:
        """Fetch Spotify tokens for the umbrella session."""
        return await self._get(f"{self.api_base}/tokens", "/tokens",
                               headers=bearer(umbrella_token))

    async def get_link_status(self, umbrella_token: str) -> bool:
        body = await self._get(f"{self.api_base}/link-status", "/link-status",
                               headers=bearer(umbrella_token))
        return bool(isinstance(body, dict) and body.get("hasSpotifyAccess"))
