from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

class _Model(BaseModel):
    # JSON uses camelCase. to_camel turns "_24h" into "24H", hence the explicit aliases below
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

class AssetQuote(_Model):
    symbol: str; provider_id: str; price_usd: float = Field(ge=0)
    change_percent_24h: float = Field(default=0.0, alias="changePercent24h")

class ExchangeRate(_Model):
    usd_to_local: float = Field(gt=0); currency: str = "AUD"; is_fallback: bool = False

class PortfolioValuation(_Model):
    symbol: str; holdings_qty: float = Field(gt=0); currency: str
    value_usd: float; value_local: float
    change_usd_24h: float = Field(alias="changeUsd24h"); change_local_24h: float = Field(alias="changeLocal24h")

class PricesOut(_Model):
    success: bool = True; data: list[AssetQuote]; portfolio: PortfolioValuation | None = None
    exchange_rate: float | None = None; timestamp: str

class ErrorOut(_Model):
    success: bool = False; error: str

class HealthOut(_Model):
    status: str; uptime: float; next_schedule: str; next_run: str | None = None; bot_configured: bool
