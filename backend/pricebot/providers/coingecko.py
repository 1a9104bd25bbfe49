from __future__ import annotations
import logging
import math
from typing import Sequence

import httpx
from pydantic import ValidationError

from ..config import AssetCfg, COINGECKO_URL
from ..errors import InvalidResponseError, NetworkError
from ..schemas import AssetQuote

log = logging.getLogger("pricebot")

def _number(v) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)

def _quote(asset: AssetCfg, entry) -> AssetQuote | None:
    if entry is None:
        return None
    if not isinstance(entry, dict) or not _number(entry.get("usd")) or entry["usd"] < 0:
        raise InvalidResponseError(f"unexpected price entry for {asset.provider_id}: {entry!r}")
    change = entry.get("usd_24h_change")
    if change is None:
        change = 0.0
    elif not _number(change):
        raise InvalidResponseError(f"unexpected 24h change for {asset.provider_id}: {change!r}")
    # NaN, Infinity and ints past float range are valid JSON but not prices
    try:
        price, change = float(entry["usd"]), float(change)
        if not (math.isfinite(price) and math.isfinite(change)):
            raise ValueError("non-finite value")
        return AssetQuote(symbol=asset.symbol, provider_id=asset.provider_id,
                          price_usd=price, change_percent_24h=change)
    except (ValueError, OverflowError, ValidationError) as e:
        raise InvalidResponseError(f"unexpected price entry for {asset.provider_id}: {entry!r}") from e

class PriceClient:
    """CoinGecko `simple/price` client.

    All tracked assets go out in one batched request. Assets the API leaves out
    are dropped, so the result can be shorter than `assets`; order follows `assets`.
    """

    def __init__(self, http: httpx.AsyncClient, base_url: str = COINGECKO_URL):
        self.http = http; self.base_url = base_url.rstrip("/")

    async def fetch_quotes(self, assets: Sequence[AssetCfg]) -> list[AssetQuote]:
        params = {"ids": ",".join(a.provider_id for a in assets),
                  "vs_currencies": "usd", "include_24hr_change": "true"}
        try:
            r = await self.http.get(f"{self.base_url}/simple/price", params=params)
        except httpx.HTTPError as e:
            raise NetworkError(f"price API unreachable: {e}") from e
        if not r.is_success:
            raise NetworkError(f"HTTP error! status: {r.status_code}", status_code=r.status_code)
        try:
            data = r.json()
        except ValueError as e:
            raise InvalidResponseError("price API returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise InvalidResponseError(f"price API returned {type(data).__name__}, expected an object")
        quotes = [q for q in (_quote(a, data.get(a.provider_id)) for a in assets) if q is not None]
        if len(quotes) < len(assets):
            missing = [a.symbol for a in assets if a.provider_id not in data]
            log.info("Price API had no data for %s", ", ".join(missing))
        return quotes
