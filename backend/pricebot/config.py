from __future__ import annotations
import os
from pathlib import Path
from typing import Literal, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

COINGECKO_URL = "https://api.coingecko.com/api/v3"
FX_URL = "https://api.exchangerate-api.com/v4/latest/USD"

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)

class AssetCfg(_Frozen):
    symbol: str; provider_id: str

    @field_validator("symbol", "provider_id")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v: raise ValueError("must not be empty")
        return v

class TelegramCfg(_Frozen):
    bot_token: str=""; chat_id: str=""
    @property
    def configured(self) -> bool: return bool(self.bot_token and self.chat_id)

class SmtpCfg(_Frozen):
    host: str=""; port: int=587; user: str=""; password: str=""; sender: str=""; recipient: str=""
    @property
    def configured(self) -> bool: return bool(self.host and self.recipient)

class ScheduleCfg(_Frozen):
    time: str="11:00"

    @field_validator("time")
    @classmethod
    def _hh_mm(cls, v: str) -> str:
        hh, sep, mm = v.strip().partition(":")
        if not sep or not hh.isdigit() or not mm.isdigit() or int(hh) > 23 or int(mm) > 59:
            raise ValueError(f"expected HH:MM, got {v!r}")
        return f"{int(hh):02d}:{int(mm):02d}"

    @property
    def hour(self) -> int: return int(self.time[:2])
    @property
    def minute(self) -> int: return int(self.time[3:])

DEFAULT_ASSETS = (
    AssetCfg(symbol="COOKIE", provider_id="cookie-dao"),
    AssetCfg(symbol="BTC", provider_id="bitcoin"),
    AssetCfg(symbol="KAITO", provider_id="kaito-ai"),
)

class Cfg(_Frozen):
    # ordered: display order follows this tuple
    assets: tuple[AssetCfg, ...]=DEFAULT_ASSETS
    holding_symbol: str="COOKIE"; holdings_qty: float=10000.0
    local_currency: str="AUD"; fallback_rate: float=1.55
    display_timezone: str="Australia/Brisbane"
    schedule: ScheduleCfg=ScheduleCfg(); scheduler_enabled: bool=True
    push_channels: tuple[Literal["telegram", "email"], ...]=("telegram",)
    telegram: TelegramCfg=TelegramCfg(); smtp: SmtpCfg=SmtpCfg()
    host: str="0.0.0.0"; port: int=3000; http_timeout: float=10.0
    price_api_url: str=COINGECKO_URL; fx_api_url: str=FX_URL
    log_level: str="INFO"

    @field_validator("holdings_qty", "fallback_rate", "http_timeout")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0: raise ValueError("must be positive")
        return v

    @field_validator("display_timezone")
    @classmethod
    def _known_tz(cls, v: str) -> str:
        try: ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e: raise ValueError(f"unknown timezone {v!r}") from e
        return v

    @field_validator("log_level")
    @classmethod
    def _level(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"): raise ValueError(f"unknown log level {v!r}")
        return v

    @model_validator(mode="after")
    def _check_assets(self) -> "Cfg":
        symbols = [a.symbol for a in self.assets]
        if not symbols: raise ValueError("at least one asset must be tracked")
        if len(set(symbols)) != len(symbols): raise ValueError(f"duplicate asset symbols: {symbols}")
        if self.holding_symbol not in symbols:
            raise ValueError(f"holding_symbol {self.holding_symbol!r} is not a tracked asset")
        return self

    @property
    def bot_configured(self) -> bool: return self.telegram.configured

# env var -> path into the config dict
ENV_KEYS: dict[str, tuple[str, ...]] = {
    "BOT_TOKEN": ("telegram", "bot_token"), "CHAT_ID": ("telegram", "chat_id"),
    "HOST": ("host",), "PORT": ("port",),
    "SMTP_HOST": ("smtp", "host"), "SMTP_PORT": ("smtp", "port"),
    "SMTP_USER": ("smtp", "user"), "SMTP_PASS": ("smtp", "password"),
    "ALERT_EMAIL_FROM": ("smtp", "sender"), "ALERT_EMAIL_TO": ("smtp", "recipient"),
    "HOLDING_SYMBOL": ("holding_symbol",), "HOLDINGS_QTY": ("holdings_qty",),
    "LOCAL_CURRENCY": ("local_currency",), "FALLBACK_RATE": ("fallback_rate",),
    "SCHEDULE_TIME": ("schedule", "time"), "DISPLAY_TZ": ("display_timezone",),
    "SCHEDULER_ENABLED": ("scheduler_enabled",), "PUSH_CHANNELS": ("push_channels",),
    "HTTP_TIMEOUT": ("http_timeout",),
    "PRICE_API_URL": ("price_api_url",), "FX_API_URL": ("fx_api_url",),
    "LOG_LEVEL": ("log_level",),
}

def _apply_env(data: dict, env: Mapping[str, str]) -> dict:
    for key, path in ENV_KEYS.items():
        raw = (env.get(key) or "").strip()
        if not raw: continue
        val: object = raw
        if key == "PUSH_CHANNELS":
            val = [c.strip().lower() for c in raw.split(",") if c.strip()]
        node = data
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node[path[-1]] = val
    return data

def load_config(env: Mapping[str, str] | None = None, path: str | Path | None = None) -> Cfg:
    """Build the process configuration: defaults, then the YAML file, then env vars."""
    env = os.environ if env is None else env
    path = path or env.get("CONFIG_PATH")
    data: dict = {}
    if path:
        if not Path(path).is_file():
            raise FileNotFoundError(f"config file not found: {path}")
        data = yaml.safe_load(Path(path).read_text()) or {}
    return Cfg(**_apply_env(data, env))
