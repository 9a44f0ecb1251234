"""
Window hosts for the popup OAuth bridge.

A WindowHost is the environment the bridge runs in: it can open a popup at a
URL, and it delivers messages posted by popups together with the origin the
transport reports for them.  The bridge only ever talks to this interface.

BrowserWindowHost is the concrete host used by the service: the popup is a
system-browser tab (webbrowser), and popups talk back over the service's own
HTTP routes:

    POST /message             JSON payload; the origin is the request's Origin header
    POST /closed?popup=<id>   beacon sent by the callback page when its tab goes away;
                              beacons naming any tab but the current popup are ignored

The callback page itself is served by the same service, so it posts with the
host's own origin.
"""

import logging
import secrets
import webbrowser
from abc import ABC, abstractmethod

from aiohttp import web

log = logging.getLogger('bandruption-host')


class PopupHandle(ABC):
    """A child window owned by the bridge for one attempt."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once the popup is gone (polled by the bridge)."""

    @abstractmethod
    def close(self):
        """Close the popup."""


class WindowHost(ABC):
    """Opens popups and dispatches the messages they post."""

    def __init__(self, origin: str):
        self.origin = origin
        self._listeners = []

    @abstractmethod
    def open(self, url: str, name: str, features: str) -> PopupHandle | None:
        """Open a popup.  Returns None when the popup could not be created."""

    def add_message_listener(self, listener):
        self._listeners.append(listener)

    def remove_message_listener(self, listener):
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def post_message(self, data, origin: str):
        """Deliver a message to every listener.  `origin` is transport-supplied."""
        for listener in list(self._listeners):
            listener(data, origin)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def closed_beacon_path(self) -> str:
        """Path a popup page calls when its window goes away."""
        return "/closed"


class BrowserPopup(PopupHandle):
    def __init__(self, url: str):
        self.url = url
        # Ties close beacons to this tab; earlier tabs may still be open
        self.id = secrets.token_urlsafe(8)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        # A system-browser tab cannot be closed from here; stop tracking it
        if not self._closed:
            log.info("Popup released")
        self._closed = True

    def mark_closed(self):
        self._closed = True


class BrowserWindowHost(WindowHost):
    def __init__(self, origin: str, opener=None):
        super().__init__(origin)
        self._opener = opener or webbrowser.open_new
        self._popup: BrowserPopup | None = None

    def open(self, url, name, features):
        if self._popup is not None and not self._popup.closed:
            self._popup.close()
        try:
            opened = self._opener(url)
        except webbrowser.Error as e:
            log.warning("Could not open browser: %s", e)
            opened = False
        if not opened:
            return None
        self._popup = BrowserPopup(url)
        log.info("Opened %s in system browser (%s)", name, features)
        return self._popup

    @property
    def popup(self) -> BrowserPopup | None:
        return self._popup

    # ── HTTP transport ──

    def add_routes(self, app: web.Application):
        app.router.add_post("/message", self.handle_message)
        app.router.add_post("/closed", self.handle_closed)

    async def handle_message(self, request):
        origin = request.headers.get("Origin", "")
        try:
            data = await request.json()
        except ValueError:
            return web.json_response({"status": "error", "message": "Invalid JSON"},
                                     status=400)
        self.post_message(data, origin)
        return web.json_response({"status": "ok"})

    def closed_beacon_path(self) -> str:
        if self._popup is None:
            return "/closed"
        return f"/closed?popup={self._popup.id}"

    async def handle_closed(self, request):
        popup_id = request.query.get("popup")
        if self._popup is None or popup_id != self._popup.id:
            log.info("Ignoring close beacon from a stale tab (%s)", popup_id)
            return web.json_response({"status": "ignored"})
        self._popup.mark_closed()
        log.info("Popup reported closed")
        return web.json_response({"status": "ok"})
