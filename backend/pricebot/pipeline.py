"""
Fetch -> valuate -> render -> deliver.

Every entry point builds its own clients and data, so concurrent runs (timer
fires, HTTP requests) never share state. Nothing here knows about the scheduler.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape

import httpx

from .alerts import EmailSender, TelegramSender
from .config import Cfg
from .errors import ConfigurationMissing, DeliveryError, InvalidResponseError, NetworkError, PriceBotError
from .providers.coingecko import PriceClient
from .providers.fx import RateClient
from .render import chat_to_plain, email_subject, render, render_failure, schedule_label
from .schemas import AssetQuote, ExchangeRate, PortfolioValuation, PricesOut
from .valuation import valuate_holding

log = logging.getLogger("pricebot")

@dataclass(frozen=True)
class Snapshot:
    quotes: list[AssetQuote]
    rate: ExchangeRate
    valuation: PortfolioValuation | None
    at: datetime

def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)

def _render_kw(cfg: Cfg) -> dict:
    return {"tz": cfg.display_timezone, "order": [a.symbol for a in cfg.assets],
            "schedule": schedule_label(cfg.schedule.time, cfg.display_timezone)}

async def fetch_quotes(cfg: Cfg, http: httpx.AsyncClient) -> list[AssetQuote]:
    log.info("Fetching crypto prices...")
    return await PriceClient(http, cfg.price_api_url).fetch_quotes(cfg.assets)

async def collect_snapshot(cfg: Cfg, http: httpx.AsyncClient, now: datetime | None = None) -> Snapshot:
    """Quotes + FX rate + holding valuation. Raises NetworkError / InvalidResponseError from the price fetch."""
    quotes = await fetch_quotes(cfg, http)
    rate = await RateClient(http, cfg.fx_api_url, cfg.local_currency, cfg.fallback_rate).fetch_usd_to_local()
    valuation = valuate_holding(quotes, cfg.holding_symbol, cfg.holdings_qty, rate)
    if valuation is None:
        log.warning("No quote for held asset %s; portfolio section left empty", cfg.holding_symbol)
    return Snapshot(quotes=quotes, rate=rate, valuation=valuation, at=_now(now))

# ---------------------------------------------------------------------------
# Pull: dashboard page and JSON API
# ---------------------------------------------------------------------------

async def render_dashboard(cfg: Cfg, http: httpx.AsyncClient, now: datetime | None = None) -> str:
    """Always returns a full page; upstream failures become an inline error banner."""
    try:
        snap = await collect_snapshot(cfg, http, now)
    except (NetworkError, InvalidResponseError) as e:
        log.error("Dashboard price fetch failed: %s", e)
        return render([], None, _now(now), "page", holding_symbol=cfg.holding_symbol, error=str(e), **_render_kw(cfg))
    return render(snap.quotes, snap.valuation, snap.at, "page", rate=snap.rate,
                  holding_symbol=cfg.holding_symbol, **_render_kw(cfg))

async def prices_payload(cfg: Cfg, http: httpx.AsyncClient, now: datetime | None = None) -> PricesOut:
    snap = await collect_snapshot(cfg, http, now)
    return PricesOut(data=snap.quotes, portfolio=snap.valuation,
                     exchange_rate=snap.rate.usd_to_local, timestamp=snap.at.isoformat())

# ---------------------------------------------------------------------------
# Push: daily report
# ---------------------------------------------------------------------------

async def _deliver(cfg: Cfg, http: httpx.AsyncClient, channel: str, quotes: list[AssetQuote], now: datetime) -> None:
    kw = _render_kw(cfg)
    chat = render(quotes, None, now, "chat", **kw)
    if channel == "telegram":
        await TelegramSender(cfg.telegram, http).send(chat)
    else:
        html = render(quotes, None, now, "email", **kw)
        await EmailSender(cfg.smtp, cfg.http_timeout).send(email_subject(now, cfg.display_timezone), html, chat_to_plain(chat))

async def _notify(cfg: Cfg, http: httpx.AsyncClient, channel: str, error: str, now: datetime) -> None:
    text = render_failure(error, now, cfg.display_timezone)
    try:
        if channel == "telegram":
            if not cfg.telegram.configured: return
            await TelegramSender(cfg.telegram, http).send(text)
        else:
            if not cfg.smtp.configured: return
            await EmailSender(cfg.smtp, cfg.http_timeout).send(
                email_subject(now, cfg.display_timezone, failed=True),
                f"<p>{escape(chat_to_plain(text))}</p>".replace("\n", "<br>"), chat_to_plain(text))
    except PriceBotError as e:
        log.error("Failed to send error message via %s: %s", channel, e)

async def notify_failure(cfg: Cfg, http: httpx.AsyncClient, error: str, now: datetime | None = None) -> None:
    """Best effort: one plain failure notice per push channel; its own failures are only logged."""
    for channel in cfg.push_channels:
        await _notify(cfg, http, channel, error, _now(now))

async def send_daily_report(cfg: Cfg, http: httpx.AsyncClient, now: datetime | None = None) -> bool:
    """One push run. Never raises for expected failures; returns True when every channel delivered."""
    now = _now(now)
    log.info("Starting crypto price update...")
    try:
        quotes = await fetch_quotes(cfg, http)
        if not quotes:
            raise InvalidResponseError("No price data retrieved")
    except (NetworkError, InvalidResponseError) as e:
        log.error("Error in crypto price update: %s", e)
        await notify_failure(cfg, http, str(e), now)
        return False
    log.info("Crypto prices fetched successfully: %d tokens", len(quotes))

    ok = True
    for channel in cfg.push_channels:
        try:
            await _deliver(cfg, http, channel, quotes, now)
        except ConfigurationMissing as e:
            log.warning("Report not sent via %s: %s", channel, e); ok = False
        except DeliveryError as e:
            log.error("Report delivery via %s failed: %s", channel, e); ok = False
            # a relay that just failed is not asked again
            if channel != "email":
                await _notify(cfg, http, channel, str(e), now)
    return ok

async def run_scheduled(cfg: Cfg, http: httpx.AsyncClient) -> None:
    # timer and /test entry point: nothing may escape into the scheduler or the ASGI task
    try:
        await send_daily_report(cfg, http)
    except Exception:
        log.exception("Unexpected error in scheduled run")

async def preview(cfg: Cfg, http: httpx.AsyncClient, target: str, now: datetime | None = None) -> str:
    """Render one target from live data without delivering it."""
    if target == "page":
        return await render_dashboard(cfg, http, now)
    snap = await collect_snapshot(cfg, http, now)
    return render(snap.quotes, snap.valuation if target == "email" else None, snap.at, target,
                  holding_symbol=cfg.holding_symbol, **_render_kw(cfg))
