from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from typing import Sequence
from zoneinfo import ZoneInfo

from .schemas import AssetQuote, ExchangeRate, PortfolioValuation

DEFAULT_TZ = "Australia/Brisbane"
RELOAD_SECONDS = 300
CURRENCY_PREFIX = {"USD": "$", "AUD": "A$", "CAD": "C$", "NZD": "NZ$", "EUR": "€", "GBP": "£"}

# ---------------------------------------------------------------------------
# Value formatting shared by every target
# ---------------------------------------------------------------------------

def format_price(value: float) -> str:
    """USD with 2 to 8 fraction digits: $65,000.00, $0.15, $0.00001234."""
    whole, frac = f"{value:,.8f}".split(".")
    return f"${whole}.{frac.rstrip('0').ljust(2, '0')}"

def is_up(change_pct: float) -> bool:
    return change_pct >= 0

def format_change(change_pct: float) -> str:
    change_pct += 0.0  # -0.0 -> 0.0
    return f"{'+' if is_up(change_pct) else ''}{change_pct:.2f}%"

def format_money(value: float, currency: str = "USD", signed: bool = False) -> str:
    prefix = CURRENCY_PREFIX.get(currency.upper(), f"{currency.upper()} ")
    value += 0.0
    sign = "-" if value < 0 else ("+" if signed else "")
    return f"{sign}{prefix}{abs(value):,.2f}"

def local_time(now: datetime, tz: str = DEFAULT_TZ) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz))

def format_timestamp(now: datetime, tz: str = DEFAULT_TZ) -> str:
    """e.g. 'Saturday, 18 October 2026 at 11:00 am', always in `tz`."""
    dt = local_time(now, tz)
    return f"{dt:%A}, {dt.day} {dt:%B %Y} at {dt.hour % 12 or 12}:{dt:%M} {'am' if dt.hour < 12 else 'pm'}"

def schedule_label(hh_mm: str, tz: str = DEFAULT_TZ) -> str:
    hour, minute = (int(p) for p in hh_mm.split(":"))
    city = tz.split("/")[-1].replace("_", " ")
    return f"{hour % 12 or 12}:{minute:02d} {'AM' if hour < 12 else 'PM'} {city} time"

def _md_escape(text: str) -> str:
    # Telegram legacy Markdown
    for ch in ("\\", "_", "*", "`", "["):
        text = text.replace(ch, "\\" + ch)
    return text

# ---------------------------------------------------------------------------
# Formatter interface
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReportData:
    quotes: tuple[AssetQuote, ...]
    now: datetime
    tz: str = DEFAULT_TZ
    valuation: PortfolioValuation | None = None
    rate: ExchangeRate | None = None
    holding_symbol: str | None = None
    error: str | None = None
    schedule: str = "11:00 AM Brisbane time"

    @property
    def stamp(self) -> str: return format_timestamp(self.now, self.tz)

    @property
    def failed(self) -> bool: return not self.quotes

class Formatter:
    name = ""
    def render(self, data: ReportData) -> str:
        raise NotImplementedError

class ChatFormatter(Formatter):
    """Telegram Markdown. Callers must not ask for an empty report."""
    name = "chat"

    def render(self, data: ReportData) -> str:
        lines = ["🚀 *Daily Crypto Price Report*", f"📅 {data.stamp}", ""]
        for q in data.quotes:
            lines += [f"*{_md_escape(q.symbol)}*", f"💰 {format_price(q.price_usd)}",
                      f"{'📈' if is_up(q.change_percent_24h) else '📉'} {format_change(q.change_percent_24h)} (24h)", ""]
        v = data.valuation
        if v is not None:
            lines += [f"💼 *Portfolio* ({v.holdings_qty:,g} {_md_escape(v.symbol)})",
                      f"{format_money(v.value_usd)} / {format_money(v.value_local, v.currency)}",
                      f"24h: {format_money(v.change_usd_24h, signed=True)} / "
                      f"{format_money(v.change_local_24h, v.currency, signed=True)}", ""]
        lines += ["📊 _Data provided by CoinGecko API_", f"⏰ _Sent daily at {data.schedule}_"]
        return "\n".join(lines)

PAGE_CSS = """
body{margin:0;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background:#0f172a;color:#e2e8f0}
main{max-width:960px;margin:0 auto;padding:24px}
header{display:flex;justify-content:space-between;align-items:center;flex-wrap:wrap;gap:12px}
h1{font-size:1.6rem;margin:0}
.stamp{color:#94a3b8;font-size:.9rem}
button{background:#6366f1;color:#fff;border:0;border-radius:8px;padding:8px 16px;cursor:pointer;font-size:.95rem}
.cards{display:grid;grid-template-columns:repeat(auto-fit,minmax(220px,1fr));gap:16px;margin:24px 0}
.card{background:#1e293b;border-radius:12px;padding:20px}
.symbol{font-weight:700;font-size:1.1rem}
.price{font-size:1.5rem;margin:8px 0}
.up{color:#22c55e}.down{color:#ef4444}
.portfolio{background:#1e293b;border-radius:12px;padding:20px}
.portfolio table{width:100%;border-collapse:collapse}
.portfolio td{padding:6px 0}
.no-data{color:#94a3b8;font-style:italic}
.error-banner{background:#7f1d1d;color:#fecaca;border-radius:12px;padding:16px;margin:24px 0}
footer{color:#64748b;font-size:.8rem;margin-top:24px}
"""

class PageFormatter(Formatter):
    """Full dashboard page: auto reload plus a manual refresh button."""
    name = "page"

    def _card(self, q: AssetQuote) -> str:
        cls, arrow = ("up", "▲") if is_up(q.change_percent_24h) else ("down", "▼")
        return (f'<div class="card" data-symbol="{escape(q.symbol)}">'
                f'<div class="symbol">{escape(q.symbol)}</div>'
                f'<div class="price">{format_price(q.price_usd)}</div>'
                f'<div class="change {cls}">{arrow} {format_change(q.change_percent_24h)} (24h)</div></div>')

    def _portfolio(self, data: ReportData) -> str:
        v = data.valuation
        if v is None:
            what = f" for {escape(data.holding_symbol)}" if data.holding_symbol else ""
            return (f'<section class="portfolio"><h2>Portfolio</h2>'
                    f'<p class="no-data">No portfolio data{what} available right now.</p></section>')
        cls = "up" if is_up(v.change_usd_24h) else "down"
        return (f'<section class="portfolio"><h2>Portfolio: {v.holdings_qty:,g} {escape(v.symbol)}</h2><table>'
                f'<tr><td>Value (USD)</td><td>{format_money(v.value_usd)}</td></tr>'
                f'<tr><td>Value ({escape(v.currency)})</td><td>{format_money(v.value_local, v.currency)}</td></tr>'
                f'<tr><td>24h change (USD)</td><td class="{cls}">{format_money(v.change_usd_24h, signed=True)}</td></tr>'
                f'<tr><td>24h change ({escape(v.currency)})</td>'
                f'<td class="{cls}">{format_money(v.change_local_24h, v.currency, signed=True)}</td></tr>'
                f'</table></section>')

    def render(self, data: ReportData) -> str:
        if data.failed:
            body = (f'<div class="error-banner">⚠️ Unable to load prices right now.'
                    f'{" " + escape(data.error) if data.error else ""}</div>')
        else:
            body = f'<div class="cards">{"".join(self._card(q) for q in data.quotes)}</div>'
        rate = ""
        if data.rate is not None:
            rate = f" · 1 USD = {data.rate.usd_to_local:.4f} {escape(data.rate.currency)}"
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Crypto Price Dashboard</title>
<style>{PAGE_CSS}</style>
</head>
<body>
<main>
<header>
<div><h1>🚀 Crypto Price Dashboard</h1><div class="stamp">Updated {escape(data.stamp)}</div></div>
<button type="button" id="refresh" onclick="window.location.reload()">Refresh</button>
</header>
{body}
{self._portfolio(data)}
<footer>Data provided by CoinGecko API{rate} · Page reloads every {RELOAD_SECONDS // 60} minutes</footer>
</main>
<script>setTimeout(function(){{window.location.reload();}}, {RELOAD_SECONDS * 1000});</script>
</body>
</html>
"""

class EmailFormatter(Formatter):
    """HTML email body. Inline styles only and no script: mail clients strip both."""
    name = "email"
    TD = "padding:10px 12px;border-bottom:1px solid #e5e7eb;"

    def _row(self, q: AssetQuote) -> str:
        color, arrow = ("#16a34a", "▲") if is_up(q.change_percent_24h) else ("#dc2626", "▼")
        return (f'<tr><td style="{self.TD}font-weight:bold;">{escape(q.symbol)}</td>'
                f'<td style="{self.TD}text-align:right;">{format_price(q.price_usd)}</td>'
                f'<td style="{self.TD}text-align:right;color:{color};">{arrow} {format_change(q.change_percent_24h)}</td></tr>')

    def render(self, data: ReportData) -> str:
        if data.failed:
            content = (f'<div style="background:#fee2e2;color:#991b1b;padding:16px;border-radius:8px;">'
                       f'⚠️ Unable to load prices for this report.'
                       f'{" " + escape(data.error) if data.error else ""}</div>')
        else:
            content = (f'<table style="width:100%;border-collapse:collapse;font-size:15px;">'
                       f'<tr><th style="{self.TD}text-align:left;">Asset</th><th style="{self.TD}text-align:right;">Price</th>'
                       f'<th style="{self.TD}text-align:right;">24h</th></tr>'
                       f'{"".join(self._row(q) for q in data.quotes)}</table>')
        v = data.valuation
        if v is not None:
            content += (f'<p style="margin:20px 0 0;">💼 <strong>Portfolio</strong> ({v.holdings_qty:,g} {escape(v.symbol)}): '
                        f'{format_money(v.value_usd)} / {format_money(v.value_local, v.currency)} '
                        f'({format_money(v.change_usd_24h, signed=True)} 24h)</p>')
        return (f'<div style="font-family:Arial,Helvetica,sans-serif;max-width:600px;margin:0 auto;color:#111827;">'
                f'<h2 style="margin:0 0 4px;">🚀 Daily Crypto Price Report</h2>'
                f'<p style="margin:0 0 16px;color:#6b7280;">📅 {escape(data.stamp)}</p>'
                f'{content}'
                f'<p style="margin-top:24px;font-size:12px;color:#9ca3af;">Data provided by CoinGecko API. '
                f'Sent daily at {escape(data.schedule)}.</p></div>')

FORMATTERS: dict[str, Formatter] = {f.name: f for f in (ChatFormatter(), PageFormatter(), EmailFormatter())}

def render(quotes: Sequence[AssetQuote], valuation: PortfolioValuation | None, now: datetime, target: str, *,
           tz: str = DEFAULT_TZ, order: Sequence[str] | None = None, rate: ExchangeRate | None = None,
           holding_symbol: str | None = None, error: str | None = None,
           schedule: str = "11:00 AM Brisbane time") -> str:
    try:
        fmt = FORMATTERS[target]
    except KeyError:
        raise ValueError(f"unknown render target {target!r}; expected one of {sorted(FORMATTERS)}") from None
    if order:
        pos = {s: i for i, s in enumerate(order)}
        quotes = sorted(quotes, key=lambda q: pos.get(q.symbol, len(pos)))
    return fmt.render(ReportData(quotes=tuple(quotes), now=now, tz=tz, valuation=valuation, rate=rate,
                                 holding_symbol=holding_symbol, error=error, schedule=schedule))

# ---------------------------------------------------------------------------
# Extras: failure notice, status page, email subject
# ---------------------------------------------------------------------------

def render_failure(error: str, now: datetime, tz: str = DEFAULT_TZ) -> str:
    return (f"❌ *Crypto Price Update Failed*\n\n"
            f"Error: {_md_escape(error or 'Unknown error')}\n\n"
            f"Time: {format_timestamp(now, tz)}")

def email_subject(now: datetime, tz: str = DEFAULT_TZ, failed: bool = False) -> str:
    day = f"{local_time(now, tz):%d %b %Y}"
    return f"Crypto Price Update Failed - {day}" if failed else f"Daily Crypto Price Report - {day}"

def chat_to_plain(text: str) -> str:
    """Drop the Markdown emphasis markers for plain-text mail parts."""
    return text.replace("*", "").replace("_", "").replace("\\", "")

def render_status_page(bot_configured: bool, uptime_s: float, schedule: str) -> str:
    status = "✅ Configured" if bot_configured else "❌ Missing configuration"
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Crypto Price Telegram Bot</title></head>
<body>
<h1>🚀 Crypto Price Telegram Bot</h1>
<p>Bot is running and scheduled to send daily updates at {escape(schedule)}.</p>
<p>Status: {status}</p>
<p>Uptime: {int(uptime_s)} seconds</p>
<hr>
<p><a href="/">Dashboard</a> | <a href="/health">Health Check</a> | <a href="/test">Send Test Message</a></p>
</body>
</html>
"""
