from __future__ import annotations
import argparse
import asyncio
import sys

import httpx
import uvicorn

from .config import Cfg, load_config
from .errors import InvalidResponseError, NetworkError
from .main import UA_HEADERS, create_app, setup_logging
from .pipeline import preview, send_daily_report
from .render import FORMATTERS

async def _send(cfg: Cfg) -> bool:
    async with httpx.AsyncClient(timeout=cfg.http_timeout, headers=UA_HEADERS) as http:
        return await send_daily_report(cfg, http)

async def _preview(cfg: Cfg, target: str) -> str:
    async with httpx.AsyncClient(timeout=cfg.http_timeout, headers=UA_HEADERS) as http:
        return await preview(cfg, http, target)

def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="pricebot", description="Daily crypto price reports via Telegram, web and email")
    parser.add_argument("--config", help="YAML config file (overrides CONFIG_PATH)")
    sub = parser.add_subparsers(dest="cmd")
    sub.add_parser("serve", help="run the web dashboard and the daily scheduler (default)")
    sub.add_parser("send", help="send one report now on the configured push channels, then exit")
    p = sub.add_parser("preview", help="fetch prices and print one rendering")
    p.add_argument("--format", choices=sorted(FORMATTERS), default="chat")
    args = parser.parse_args(argv)

    try:
        cfg = load_config(path=args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"invalid configuration: {e}", file=sys.stderr)
        return 2
    setup_logging(cfg.log_level)

    if args.cmd == "send":
        return 0 if asyncio.run(_send(cfg)) else 1
    if args.cmd == "preview":
        try:
            print(asyncio.run(_preview(cfg, args.format)))
        except (NetworkError, InvalidResponseError) as e:
            print(f"price fetch failed: {e}", file=sys.stderr)
            return 1
        return 0
    # uvicorn closes the listening socket on SIGINT/SIGTERM
    uvicorn.run(create_app(cfg), host=cfg.host, port=cfg.port, log_level=cfg.log_level.lower())
    return 0
