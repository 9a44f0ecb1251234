"""
ServiceBase — the HTTP skeleton every Bandruption service runs on.

A service declares a name and a port, registers its routes, and gets:

  - GET /status answered from handle_status()
  - CORS headers on every response, preflight OPTIONS handled centrally
  - one shared aiohttp ClientSession for outbound calls
  - run(): serve until SIGTERM / SIGINT, then shut down cleanly

    class MyService(ServiceBase):
        name = "demo"
        port = 8780

        def add_routes(self, app):
            app.router.add_post("/thing", self._handle_thing)

Hooks: on_start(), on_stop(), handle_status(), add_routes(app).
"""

import asyncio
import logging
import signal

from aiohttp import ClientSession, web

from lib.http_utils import CORS_HEADERS

log = logging.getLogger('bandruption-service')


@web.middleware
async def cors_middleware(request, handler):
    if request.method == "OPTIONS":
        resp = web.Response()
    else:
        resp = await handler(request)
    resp.headers.update(CORS_HEADERS)
    return resp


class ServiceBase:
    name: str = ""
    port: int = 0
    host: str = "127.0.0.1"

    def __init__(self):
        self._http_session: ClientSession | None = None
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[cors_middleware])
        app.router.add_get("/status", self._status_route)
        self.add_routes(app)
        return app

    async def start(self):
        """Open the outbound session, bind the listener, then run on_start()."""
        self._http_session = ClientSession()
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        await web.TCPSite(self._runner, self.host, self.port).start()
        log.info("%s listening on http://%s:%d", self.name, self.host, self.port)
        await self.on_start()

    async def stop(self):
        await self.on_stop()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        if self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        log.info("%s stopped", self.name)

    async def run(self):
        await self.start()
        done = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, done.set)
        try:
            await done.wait()
        finally:
            await self.stop()

    async def _status_route(self, request):
        return web.json_response(await self.handle_status())

    # ── Hooks ──

    async def on_start(self):
        pass

    async def on_stop(self):
        pass

    async def handle_status(self) -> dict:
        return {"service": self.name}

    def add_routes(self, app: web.Application):
        pass
