from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Cfg, load_config
from .errors import InvalidResponseError, NetworkError
from .pipeline import prices_payload, render_dashboard, run_scheduled
from .render import render_status_page
from .scheduler import DailyScheduler
from .schemas import ErrorOut, HealthOut

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
log = logging.getLogger("pricebot")

def setup_logging(level: str = "INFO") -> None:
    if not log.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        log.addHandler(h)
    log.setLevel(level)

UA_HEADERS = {"User-Agent": "crypto-price-bot/1.0", "Accept": "application/json"}

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

def get_cfg(request: Request) -> Cfg:
    return request.app.state.cfg

def get_http(request: Request) -> httpx.AsyncClient:
    return request.app.state.http

def create_app(cfg: Optional[Cfg] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """
    Build the web app. One AsyncClient lives for the whole process and is closed
    on shutdown; the daily scheduler starts and stops with the app.
    """
    cfg = cfg or load_config()
    setup_logging(cfg.log_level)
    sched = DailyScheduler(lambda: run_scheduled(cfg, app.state.http),
                           cfg.schedule.hour, cfg.schedule.minute, cfg.display_timezone)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with httpx.AsyncClient(timeout=cfg.http_timeout, headers=UA_HEADERS, transport=transport) as http:
            app.state.http = http
            if cfg.scheduler_enabled:
                sched.start()
            log.info("Crypto price bot is running (bot configured: %s)", cfg.bot_configured)
            try:
                yield
            finally:
                sched.shutdown()
                log.info("Shutting down gracefully...")

    app = FastAPI(title="Crypto Price Bot", lifespan=lifespan)
    app.state.cfg = cfg
    app.state.scheduler = sched
    app.state.started = time.monotonic()

    def uptime() -> float:
        return time.monotonic() - app.state.started

    @app.get("/", response_class=HTMLResponse)
    async def dashboard(cfg: Cfg = Depends(get_cfg), http: httpx.AsyncClient = Depends(get_http)):
        return HTMLResponse(await render_dashboard(cfg, http))

    @app.get("/api/prices")
    async def api_prices(cfg: Cfg = Depends(get_cfg), http: httpx.AsyncClient = Depends(get_http)):
        try:
            out = await prices_payload(cfg, http)
        except (NetworkError, InvalidResponseError) as e:
            log.error("/api/prices failed: %s", e)
            return JSONResponse(ErrorOut(error=str(e)).model_dump(by_alias=True), status_code=500)
        return JSONResponse(out.model_dump(by_alias=True, mode="json"))

    @app.get("/health")
    def health(cfg: Cfg = Depends(get_cfg)):
        nxt = sched.next_run_time() if cfg.scheduler_enabled else None
        out = HealthOut(status="healthy", uptime=round(uptime(), 3), next_schedule=sched.describe(),
                        next_run=nxt.isoformat() if nxt else None, bot_configured=cfg.bot_configured)
        return out.model_dump(by_alias=True)

    @app.get("/test", response_class=PlainTextResponse)
    def test_message(background: BackgroundTasks, cfg: Cfg = Depends(get_cfg),
                     http: httpx.AsyncClient = Depends(get_http)):
        # respond first, run afterwards
        log.info("Sending test message...")
        background.add_task(run_scheduled, cfg, http)
        return "Triggering test message..."

    @app.get("/status", response_class=HTMLResponse)
    def status_page(cfg: Cfg = Depends(get_cfg)):
        return HTMLResponse(render_status_page(cfg.bot_configured, uptime(), sched.label))

    # ---- JSON 404 for /api/*
    @app.exception_handler(StarletteHTTPException)
    async def _friendly_404(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and request.url.path.startswith("/api/"):
            return JSONResponse(ErrorOut(error="Not Found").model_dump(by_alias=True), status_code=404)
        return await http_exception_handler(request, exc)

    return app
