"""
Popup OAuth bridge.

Drives one popup-window OAuth handshake to a single result:

  1. fetch the authorization URL from the backend
  2. open a popup at that URL through the WindowHost
  3. wait for the popup to post a success/error message from our own origin,
     for the user to close it, or for the timeout

Each call to login_with_popup() is an attempt with its own small state
machine (IDLE → AWAITING_AUTH_URL → POPUP_OPEN → SETTLED).  Every exit goes
through _settle(), which removes the message listener, stops the close poll
and cancels the timeout before the attempt's future gets its result.  A new
call supersedes any pending attempt first, so at most one popup and one
listener are ever live per bridge.

Outcomes:
  success / error message   → AuthOutcome (success True / False)
  popup closed by the user  → AuthOutcome(success=False, error="Authentication cancelled")
  superseded by a new call  → AuthOutcome(success=False, error="Authentication superseded")
  popup blocked             → raises PopupBlockedError
  auth URL fetch failed     → raises NetworkError
  timeout                   → raises AuthenticationTimeout
"""

import asyncio
import logging
from enum import Enum
from functools import partial

import aiohttp

from lib.bandruption_api import ApiError
from lib.config import cfg

from .errors import (
    AUTH_CANCELLED,
    AUTH_SUPERSEDED,
    AuthenticationTimeout,
    NetworkError,
    PopupBlockedError,
)
from .models import AuthOutcome, AuthResultMessage

log = logging.getLogger('bandruption-auth')

POPUP_NAME = "spotify-auth"
POPUP_FEATURES = ("width=500,height=700,scrollbars=yes,resizable=yes,"
                  "status=yes,location=yes,toolbar=no,menubar=no")

DEFAULT_POLL_INTERVAL = 1.0   # seconds between popup.closed checks
DEFAULT_TIMEOUT = 5 * 60      # absolute limit from popup open


class BridgeState(Enum):
    IDLE = "idle"
    AWAITING_AUTH_URL = "awaiting_auth_url"
    POPUP_OPEN = "popup_open"
    SETTLED = "settled"


_TRANSITIONS = {
    BridgeState.IDLE: {BridgeState.AWAITING_AUTH_URL},
    BridgeState.AWAITING_AUTH_URL: {BridgeState.POPUP_OPEN, BridgeState.SETTLED},
    BridgeState.POPUP_OPEN: {BridgeState.SETTLED},
    BridgeState.SETTLED: set(),
}


class _Attempt:
    """Bookkeeping for one login_with_popup() call."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.state = BridgeState.IDLE
        self.future: asyncio.Future = loop.create_future()
        self.popup = None
        self.listener = None
        self.poll_task: asyncio.Task | None = None
        self.timeout_handle: asyncio.TimerHandle | None = None

    def transition(self, new: BridgeState):
        if new not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid popup transition {self.state.value} -> {new.value}")
        self.state = new


class PopupAuthBridge:
    def __init__(self, api, host, poll_interval: float | None = None,
                 timeout: float | None = None):
        self.api = api
        self.host = host
        self.poll_interval = (poll_interval if poll_interval is not None
                              else cfg("auth", "poll_interval", default=DEFAULT_POLL_INTERVAL))
        self.timeout = (timeout if timeout is not None
                        else cfg("auth", "timeout", default=DEFAULT_TIMEOUT))
        self._current: _Attempt | None = None

    @property
    def state(self) -> BridgeState:
        return self._current.state if self._current else BridgeState.IDLE

    @property
    def current_popup(self):
        return self._current.popup if self._current else None

    async def login_with_popup(self) -> AuthOutcome:
        self._supersede()

        attempt = _Attempt(asyncio.get_running_loop())
        self._current = attempt
        attempt.transition(BridgeState.AWAITING_AUTH_URL)

        try:
            try:
                auth_url = await self.api.get_auth_url()
            except (ApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                log.error("Could not fetch auth URL: %s", e)
                self._settle(attempt, exc=NetworkError(f"Failed to start authentication: {e}"))
                return await attempt.future

            if attempt.state is BridgeState.SETTLED:
                # Superseded while the auth URL was in flight
                return await attempt.future

            self._open(attempt, auth_url)
            return await attempt.future
        except asyncio.CancelledError:
            self._settle(attempt, close_popup=True)
            raise

    def close_current_popup(self):
        """Close the live popup, if any, and settle its attempt as cancelled."""
        attempt = self._current
        if attempt is None or attempt.popup is None:
            return
        self._settle(attempt, outcome=AuthOutcome.failure(AUTH_CANCELLED), close_popup=True)

    # ── Attempt lifecycle ──

    def _open(self, attempt: _Attempt, auth_url: str):
        popup = self.host.open(auth_url, POPUP_NAME, POPUP_FEATURES)
        if popup is None:
            log.warning("Popup blocked by the browser")
            self._settle(attempt, exc=PopupBlockedError())
            return

        attempt.popup = popup
        attempt.transition(BridgeState.POPUP_OPEN)
        log.info("Spotify auth popup opened")

        attempt.listener = partial(self._on_message, attempt)
        self.host.add_message_listener(attempt.listener)

        loop = asyncio.get_running_loop()
        attempt.poll_task = loop.create_task(self._poll_closed(attempt))
        attempt.timeout_handle = loop.call_later(self.timeout, self._on_timeout, attempt)

    def _supersede(self):
        attempt = self._current
        if attempt is None:
            return
        log.info("New popup login supersedes the pending one")
        self._settle(attempt, outcome=AuthOutcome.failure(AUTH_SUPERSEDED), close_popup=True)

    def _on_message(self, attempt: _Attempt, data, origin: str):
        if attempt.state is not BridgeState.POPUP_OPEN:
            return
        if origin != self.host.origin:
            log.debug("Dropped popup message from foreign origin %r", origin)
            return
        message = AuthResultMessage.parse(data, origin)
        if message is None:
            return
        log.info("Popup reported %s", message.type)
        self._settle(attempt, outcome=AuthOutcome.from_message(message), close_popup=True)

    async def _poll_closed(self, attempt: _Attempt):
        while attempt.state is BridgeState.POPUP_OPEN:
            await asyncio.sleep(self.poll_interval)
            if attempt.state is not BridgeState.POPUP_OPEN:
                return
            if attempt.popup.closed:
                log.info("Popup closed by user")
                self._settle(attempt, outcome=AuthOutcome.failure(AUTH_CANCELLED))
                return

    def _on_timeout(self, attempt: _Attempt):
        log.warning("Popup login timed out after %ss", self.timeout)
        self._settle(attempt, exc=AuthenticationTimeout(), close_popup=True)

    def _settle(self, attempt: _Attempt, outcome: AuthOutcome | None = None,
                exc: Exception | None = None, close_popup: bool = False):
        """Tear down the attempt, then resolve its future.  Idempotent."""
        if attempt.state is BridgeState.SETTLED:
            return
        attempt.transition(BridgeState.SETTLED)

        if attempt.listener is not None:
            self.host.remove_message_listener(attempt.listener)
            attempt.listener = None
        if attempt.poll_task is not None:
            if attempt.poll_task is not asyncio.current_task():
                attempt.poll_task.cancel()
            attempt.poll_task = None
        if attempt.timeout_handle is not None:
            attempt.timeout_handle.cancel()
            attempt.timeout_handle = None
        if close_popup and attempt.popup is not None and not attempt.popup.closed:
            attempt.popup.close()
        if self._current is attempt:
            self._current = None

        if attempt.future.done():
            return
        if exc is not None:
            attempt.future.set_exception(exc)
        elif outcome is not None:
            attempt.future.set_result(outcome)
        else:
            attempt.future.cancel()
