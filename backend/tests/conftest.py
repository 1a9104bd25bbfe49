"""
Shared fixtures: a fake upstream (price API, FX API, Telegram) served through
httpx.MockTransport, and a ready-made configuration.
"""
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from pricebot.config import Cfg, TelegramCfg

PRICES = {
    "cookie-dao": {"usd": 0.15, "usd_24h_change": 5.2},
    "bitcoin": {"usd": 65000, "usd_24h_change": -1.3},
    "kaito-ai": {"usd": 1.2345, "usd_24h_change": 0.0},
}
FX = {"base": "USD", "rates": {"AUD": 1.5, "USD": 1.0}}

# 01:00 UTC == 11:00 in Brisbane (UTC+10, no DST)
NOW = datetime(2026, 10, 18, 1, 0, tzinfo=timezone.utc)


class FakeUpstream:
    def __init__(self, prices=PRICES, price_status=200, fx=FX, fx_status=200, fx_exc=None,
                 price_exc=None, telegram_status=200, telegram_body=None, price_raw=None):
        self.prices = prices; self.price_raw = price_raw; self.price_status = price_status; self.price_exc = price_exc
        self.fx = fx; self.fx_status = fx_status; self.fx_exc = fx_exc
        self.telegram_status = telegram_status
        self.telegram_body = telegram_body or {"ok": True, "result": {"message_id": 42}}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host == "api.coingecko.com":
            if self.price_exc: raise self.price_exc("boom", request=request)
            if self.price_raw is not None:
                return httpx.Response(self.price_status, content=self.price_raw,
                                      headers={"content-type": "application/json"})
            return httpx.Response(self.price_status, json=self.prices)
        if host == "api.exchangerate-api.com":
            if self.fx_exc: raise self.fx_exc("timed out", request=request)
            return httpx.Response(self.fx_status, json=self.fx)
        if host == "api.telegram.org":
            return httpx.Response(self.telegram_status, json=self.telegram_body)
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def run(self, make_coro):
        """Run `make_coro(http)` on a fresh AsyncClient wired to this fake."""
        async def go():
            async with httpx.AsyncClient(transport=self.transport) as http:
                return await make_coro(http)
        return asyncio.run(go())

    def calls(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    def telegram_messages(self) -> list[dict]:
        return [json.loads(r.content) for r in self.calls("api.telegram.org")]


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def cfg() -> Cfg:
    return Cfg(telegram=TelegramCfg(bot_token="123:abc", chat_id="-1001"), scheduler_enabled=False)
