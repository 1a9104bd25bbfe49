from __future__ import annotations
from typing import Sequence

from .schemas import AssetQuote, ExchangeRate, PortfolioValuation

def valuate(quote: AssetQuote, holdings_qty: float, rate: ExchangeRate) -> PortfolioValuation:
    """
    Value a fixed holding of one asset in USD and in the local currency.
    The 24h change is the share of today's value that moved, not a P&L against cost.
    """
    if holdings_qty <= 0:
        raise ValueError(f"holdings_qty must be positive, got {holdings_qty}")
    value_usd = quote.price_usd * holdings_qty
    change_usd = value_usd * (quote.change_percent_24h / 100)
    return PortfolioValuation(
        symbol=quote.symbol, holdings_qty=holdings_qty, currency=rate.currency,
        value_usd=value_usd, value_local=value_usd * rate.usd_to_local,
        change_usd_24h=change_usd, change_local_24h=change_usd * rate.usd_to_local,
    )

def valuate_holding(quotes: Sequence[AssetQuote], symbol: str, holdings_qty: float,
                    rate: ExchangeRate) -> PortfolioValuation | None:
    # no quote -> no valuation; zeros would read as "flat"
    quote = next((q for q in quotes if q.symbol == symbol), None)
    return valuate(quote, holdings_qty, rate) if quote is not None else None
