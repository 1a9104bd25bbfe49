from __future__ import annotations
import logging
import math

import httpx

from ..config import FX_URL
from ..schemas import ExchangeRate

log = logging.getLogger("pricebot")

class RateClient:
    """USD -> local currency multiplier. Never raises: any failure yields the fallback rate."""

    def __init__(self, http: httpx.AsyncClient, url: str = FX_URL, currency: str = "AUD", fallback: float = 1.55):
        self.http = http; self.url = url; self.currency = currency.upper(); self.fallback = fallback

    def fallback_rate(self) -> ExchangeRate:
        return ExchangeRate(usd_to_local=self.fallback, currency=self.currency, is_fallback=True)

    async def fetch_usd_to_local(self) -> ExchangeRate:
        try:
            r = await self.http.get(self.url); r.raise_for_status()
            rate = float(r.json()["rates"][self.currency])
            if not math.isfinite(rate) or rate <= 0:
                raise ValueError(f"rate {rate!r} is not positive")
            return ExchangeRate(usd_to_local=rate, currency=self.currency)
        except Exception as e:
            log.warning("FX fetch failed (%s); using fallback USD->%s %.4f", e, self.currency, self.fallback)
            return self.fallback_rate()
