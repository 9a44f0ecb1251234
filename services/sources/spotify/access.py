"""
Spotify access resolution for an umbrella (application-level) session.

A user can reach Spotify three ways:

  PRIMARY  umbrella identities include a "spotify" provider entry
  LINKED   another provider, plus a valid linked-token record
  NONE     neither

PRIMARY wins when both hold.  The method is recomputed on every call and
never cached, so a login/logout in between is always reflected.
"""

import asyncio
import logging

import aiohttp

from lib.bandruption_api import ApiError

from .errors import NEEDS_LINKING_CODE
from .models import (
    PROVIDER_SPOTIFY,
    AccessMethod,
    LinkResult,
    SpotifyAccess,
    SpotifyUserProfile,
)

log = logging.getLogger('bandruption-access')


def access_method(umbrella, has_linked_token: bool) -> AccessMethod:
    """Pure access-method table."""
    if umbrella is None or umbrella.user is None:
        return AccessMethod.NONE
    if umbrella.user.has_identity(PROVIDER_SPOTIFY):
        return AccessMethod.PRIMARY
    if has_linked_token:
        return AccessMethod.LINKED
    return AccessMethod.NONE


class SpotifyAccessResolver:
    def __init__(self, api, linking, session_source=None):
        self.api = api
        self.linking = linking
        self._session_source = session_source or (lambda: None)

    def _umbrella(self, umbrella):
        return umbrella if umbrella is not None else self._session_source()

    async def _has_linked_token(self, umbrella) -> bool:
        try:
            return await self.api.get_link_status(umbrella.access_token)
        except (ApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("Failed to check Spotify link status: %s", e)
            return False

    async def access_method_for(self, umbrella=None) -> AccessMethod:
        umbrella = self._umbrella(umbrella)
        if umbrella is None or umbrella.user is None:
            return AccessMethod.NONE
        if umbrella.user.has_identity(PROVIDER_SPOTIFY):
            return AccessMethod.PRIMARY
        return access_method(umbrella, await self._has_linked_token(umbrella))

    async def resolve(self, umbrella=None) -> SpotifyAccess:
        """Work out how this user reaches Spotify and fetch the token if possible.

        Never raises for HTTP or transport failures; those resolve to no token.
        """
        umbrella = self._umbrella(umbrella)
        method = await self.access_method_for(umbrella)
        if method is AccessMethod.NONE:
            return SpotifyAccess(access_method=method)

        try:
            data = await self.api.get_tokens(umbrella.access_token)
        except ApiError as e:
            if e.status == 409 and e.error_code == NEEDS_LINKING_CODE:
                log.info("Primary Spotify identity has not completed linking")
                return SpotifyAccess(access_method=method, needs_linking=True)
            log.warning("Spotify token fetch failed: %s", e)
            return SpotifyAccess(access_method=method)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("Spotify token fetch failed: %s", e)
            return SpotifyAccess(access_method=method)

        if not isinstance(data, dict):
            log.warning("Spotify token endpoint returned %r", type(data).__name__)
            return SpotifyAccess(access_method=method)

        return SpotifyAccess(
            access_method=method,
            access_token=data.get("access_token"),
            profile=SpotifyUserProfile.from_dict(data.get("user_data")),
        )

    async def ensure_access(self, umbrella=None) -> LinkResult:
        """Succeed if the user already has a usable token, otherwise run account linking.

        A primary identity the backend reports as not yet linked (409) links too.
        """
        umbrella = self._umbrella(umbrella)
        access = await self.resolve(umbrella)
        if access.usable:
            return LinkResult(success=True)
        if access.needs_linking:
            log.info("Primary Spotify identity needs linking, opening popup")
        return await self.linking.link_account(umbrella)
