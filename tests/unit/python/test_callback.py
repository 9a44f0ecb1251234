"""Tests for sources/spotify/callback.py — the popup's own callback page."""

import aiohttp
import pytest

from lib.bandruption_api import ApiError
from sources.spotify.callback import REDEEMED_CODES_KEPT, CallbackPage


class StubExchangeApi:
    def __init__(self, result=None, error=None):
        self.result = result if result is not None else {
            "success": True, "userId": "u1", "accessToken": "tok",
            "userData": {"id": "u1", "product": "premium"}}
        self.error = error
        self.calls = []

    async def exchange_code(self, code, state):
        self.calls.append((code, state))
        if self.error is not None:
            raise self.error
        return self.result


class TestProcess:
    @pytest.mark.asyncio
    async def test_code_is_exchanged_into_success_message(self, host):
        api = StubExchangeApi()
        page = CallbackPage(api, host)

        message = await page.process({"code": "c1", "state": "s1"})

        assert message["type"] == "spotify-auth-success"
        assert message["accessToken"] == "tok"
        assert api.calls == [("c1", "s1")]

    @pytest.mark.asyncio
    async def test_same_code_is_redeemed_once(self, host):
        api = StubExchangeApi()
        page = CallbackPage(api, host)

        await page.process({"code": "c1", "state": "s1"})
        again = await page.process({"code": "c1", "state": "s1"})

        assert again is None
        assert len(api.calls) == 1

    @pytest.mark.asyncio
    async def test_redeemed_codes_are_bounded(self, host):
        api = StubExchangeApi()
        page = CallbackPage(api, host)

        for n in range(REDEEMED_CODES_KEPT + 1):
            await page.process({"code": f"c{n}", "state": "s"})

        assert len(page._processed_codes) == REDEEMED_CODES_KEPT
        assert await page.process({"code": f"c{REDEEMED_CODES_KEPT}", "state": "s"}) is None
        assert len(api.calls) == REDEEMED_CODES_KEPT + 1

    @pytest.mark.asyncio
    async def test_provider_error(self, host):
        page = CallbackPage(StubExchangeApi(), host)
        message = await page.process({"error": "access_denied"})
        assert message == {"type": "spotify-auth-error", "success": False,
                           "error": "Spotify authorization failed: access_denied"}

    @pytest.mark.asyncio
    async def test_missing_parameters(self, host):
        page = CallbackPage(StubExchangeApi(), host)
        message = await page.process({"code": "c1"})
        assert message["error"] == "Invalid callback parameters"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        ApiError("/auth/callback", 400, {"error": "Invalid state parameter"}),
        aiohttp.ClientConnectionError("refused"),
    ])
    async def test_exchange_failure(self, host, error):
        page = CallbackPage(StubExchangeApi(error=error), host)
        message = await page.process({"code": "c1", "state": "s1"})
        assert message["error"] == "Failed to complete Spotify authentication"

    @pytest.mark.asyncio
    async def test_exchange_without_token_is_failure(self, host):
        page = CallbackPage(StubExchangeApi(result={"success": True, "userId": "u1"}), host)
        message = await page.process({"code": "c1", "state": "s1"})
        assert message["type"] == "spotify-auth-error"

