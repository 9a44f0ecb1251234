#!/usr/bin/env python3
"""
Bandruption Spotify Connect service (bandruption-spotify)

Local companion service that connects a user's Spotify account through a
popup OAuth flow and answers "how does this user reach Spotify?".

Routes:
  GET  /status        current Spotify session
  POST /login         run the popup login (waits until the popup settles)
  POST /logout        forget the Spotify session
  GET  /callback      popup OAuth callback page
  POST /message       popup → opener message transport
  POST /closed        popup closed beacon
  POST /access        resolve access for an umbrella session (JSON body)
  POST /link          ensure access, linking the account if needed
  POST /unlink        remove the linked account
  POST /link-status   whether a valid linked record exists

Port: 8780
"""

import asyncio
import logging

from aiohttp import web

from lib.auth_signal import auth_signal
from lib.bandruption_api import BandruptionApi
from lib.config import cfg
from lib.http_utils import origin_of
from lib.service_base import ServiceBase
from lib.session_store import SessionStore

from .access import SpotifyAccessResolver
from .callback import CallbackPage
from .errors import AuthenticationTimeout
from .host import BrowserWindowHost
from .linking import SpotifyLinking
from .models import UmbrellaSession
from .popup import PopupAuthBridge
from .session import SpotifyAuthSession

log = logging.getLogger('bandruption-spotify')

DEFAULT_PORT = 8780


class SpotifyConnectService(ServiceBase):
    name = "bandruption-spotify"

    def __init__(self, store=None, signal=None, supabase_client=None, opener=None):
        super().__init__()
        self.port = cfg("app", "port", default=DEFAULT_PORT)
        # Messages are matched against this exactly, so strip any path
        self.origin = (origin_of(cfg("app", "origin", default=""))
                       or f"http://127.0.0.1:{self.port}")
        self.window_host = BrowserWindowHost(self.origin, opener=opener)
        self.store = store or SessionStore(cfg("session", "store_path", default="") or None)
        self.signal = signal or auth_signal
        self._supabase_client = supabase_client
        self.api = None
        self.bridge = None
        self.session = None
        self.linking = None
        self.resolver = None
        self.callback_page = None

    def setup(self, http_session):
        """Wire the auth components onto an aiohttp client session."""
        self.api = BandruptionApi(http_session)
        self.bridge = PopupAuthBridge(self.api, self.window_host)
        self.session = SpotifyAuthSession(self.bridge, self.store, self.signal)
        self.linking = SpotifyLinking(self.bridge, self.store, self.signal,
                                      client=self._supabase_client)
        self.resolver = SpotifyAccessResolver(self.api, self.linking)
        self.callback_page = CallbackPage(self.api, self.window_host)
        self.session.initialize()

    async def on_start(self):
        self.setup(self._http_session)
        log.info("Spotify connect ready (origin %s, %s)", self.origin,
                 "connected" if self.session.is_authenticated else "not connected")

    async def on_stop(self):
        if self.bridge:
            self.bridge.close_current_popup()
        if self.session:
            self.session.close()

    async def handle_status(self) -> dict:
        status = {"service": self.name, "origin": self.origin}
        if self.session:
            status.update(self.session.to_dict())
        return status

    def add_routes(self, app):
        app.router.add_post("/login", self._handle_login)
        app.router.add_post("/logout", self._handle_logout)
        app.router.add_get("/callback", self._handle_callback)
        app.router.add_post("/access", self._handle_access)
        app.router.add_post("/link", self._handle_link)
        app.router.add_post("/unlink", self._handle_unlink)
        app.router.add_post("/link-status", self._handle_link_status)
        self.window_host.add_routes(app)

    # ── Route handlers ──

    async def _handle_login(self, request):
        try:
            result = await self.session.login()
        except AuthenticationTimeout as e:
            return web.json_response({"success": False, "error": str(e)}, status=504)
        body = {"success": result.success}
        if result.error:
            body["error"] = result.error
        return web.json_response(body)

    async def _handle_logout(self, request):
        self.session.logout()
        return web.json_response({"status": "ok", "message": "Logged out"})

    async def _handle_callback(self, request):
        return await self.callback_page.handle(request)

    async def _umbrella_from(self, request):
        try:
            data = await request.json()
        except ValueError:
            return None
        return UmbrellaSession.from_dict(data)

    async def _handle_access(self, request):
        umbrella = await self._umbrella_from(request)
        access = await self.resolver.resolve(umbrella)
        return web.json_response(access.to_dict())

    async def _handle_link(self, request):
        umbrella = await self._umbrella_from(request)
        try:
            result = await self.resolver.ensure_access(umbrella)
        except AuthenticationTimeout as e:
            return web.json_response({"success": False, "error": str(e)}, status=504)
        return web.json_response({"success": result.success, "error": result.error})

    async def _handle_unlink(self, request):
        umbrella = await self._umbrella_from(request)
        result = await self.linking.unlink_account(umbrella)
        return web.json_response({"success": result.success, "error": result.error})

    async def _handle_link_status(self, request):
        umbrella = await self._umbrella_from(request)
        linked = await self.linking.check_link_status(umbrella)
        return web.json_response({"linked": linked})


def main():
    logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')
    service = SpotifyConnectService()
    asyncio.run(service.run())


if __name__ == '__main__':
    main()
