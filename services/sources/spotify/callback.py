"""
Popup-side OAuth callback page.

The provider redirects the popup here with ?code=&state= (or ?error=).  This
page is the only place an authorization code is redeemed: it calls the
backend's /auth/callback once per code, then posts the result to the opener
and closes itself.  The main app never looks at these query parameters.
"""

import asyncio
import html
import json
import logging
from collections import deque

import aiohttp
from aiohttp import web

from lib.bandruption_api import ApiError

from .models import WIRE_ERROR, WIRE_SUCCESS

log = logging.getLogger('bandruption-callback')

EXCHANGE_FAILED = "Failed to complete Spotify authentication"
INVALID_PARAMS = "Invalid callback parameters"

# Codes are single use and short lived; only recent ones can be replayed
REDEEMED_CODES_KEPT = 32

_PAGE = '''<!DOCTYPE html><html><head>
<meta charset="UTF-8"><meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Bandruption - Spotify</title>
<style>
body{{font-family:'Helvetica Neue',-apple-system,sans-serif;background:#111;color:#fff;text-align:center;padding:60px 20px}}
.note{{color:#888;font-size:14px;margin-top:20px}}
</style></head><body>
<h1>{title}</h1>
<p class="note">You can close this window.</p>
<script>
window.addEventListener('pagehide', function () {{ navigator.sendBeacon({beacon}); }});
setTimeout(function () {{ window.close(); }}, 300);
</script>
</body></html>'''


class CallbackPage:
    def __init__(self, api, host):
        self.api = api
        self.host = host
        self._processed_codes: deque[str] = deque(maxlen=REDEEMED_CODES_KEPT)

    async def process(self, query) -> dict | None:
        """Turn callback query parameters into the message for the opener.

        Returns None for a repeat delivery of an already redeemed code.
        """
        error = query.get("error")
        if error:
            log.warning("Provider returned error: %s", error)
            return {"type": WIRE_ERROR, "success": False,
                    "error": f"Spotify authorization failed: {error}"}

        code = query.get("code")
        state = query.get("state")
        if not code or not state:
            return {"type": WIRE_ERROR, "success": False, "error": INVALID_PARAMS}

        if code in self._processed_codes:
            log.info("Ignoring repeat delivery of an already redeemed code")
            return None
        self._processed_codes.append(code)

        try:
            result = await self.api.exchange_code(code, state)
        except (ApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.error("Failed to exchange code for tokens: %s", e)
            return {"type": WIRE_ERROR, "success": False, "error": EXCHANGE_FAILED}

        if not isinstance(result, dict) or not result.get("success") or not result.get("accessToken"):
            log.error("Code exchange returned no usable token")
            return {"type": WIRE_ERROR, "success": False, "error": EXCHANGE_FAILED}

        message = dict(result)
        message["type"] = WIRE_SUCCESS
        return message

    async def handle(self, request):
        """GET /callback — exchange, post to the opener, render a closing page."""
        # Bound to the popup that is current when this tab arrives
        beacon = json.dumps(self.host.closed_beacon_path())
        message = await self.process(request.query)
        if message is not None:
            self.host.post_message(message, self.host.origin)
        if message is None or message["type"] == WIRE_SUCCESS:
            title = "Connected to Spotify"
        else:
            title = html.escape(message["error"])
        return web.Response(text=_PAGE.format(title=title, beacon=beacon), content_type="text/html")
