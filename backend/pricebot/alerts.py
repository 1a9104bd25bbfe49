from __future__ import annotations
import asyncio, logging, smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import httpx

from .config import SmtpCfg, TelegramCfg
from .errors import ConfigurationMissing, DeliveryError

log = logging.getLogger("pricebot")
TELEGRAM_API = "https://api.telegram.org"

class TelegramSender:
    """Telegram Bot API `sendMessage`. Credentials are checked at send time, not at startup."""

    def __init__(self, cfg: TelegramCfg, http: httpx.AsyncClient, api_base: str = TELEGRAM_API):
        self.cfg = cfg; self.http = http; self.api_base = api_base.rstrip("/")

    async def send(self, text: str) -> int | None:
        if not self.cfg.configured:
            raise ConfigurationMissing("BOT_TOKEN and CHAT_ID must both be set to send Telegram messages")
        payload = {"chat_id": self.cfg.chat_id, "text": text,
                   "parse_mode": "Markdown", "disable_web_page_preview": True}
        log.info("Sending Telegram message...")
        try:
            r = await self.http.post(f"{self.api_base}/bot{self.cfg.bot_token}/sendMessage", json=payload)
        except httpx.HTTPError as e:
            raise DeliveryError(f"Telegram API unreachable: {type(e).__name__}") from e
        try:
            body = r.json()
        except ValueError:
            body = None
        if not isinstance(body, dict): body = {}
        if not r.is_success or not body.get("ok", True):
            raise DeliveryError(f"Telegram API error: {body or r.text}", status_code=r.status_code)
        message_id = (body.get("result") or {}).get("message_id")
        log.info("Telegram message sent successfully: %s", message_id)
        return message_id

class EmailSender:
    """Authenticated SMTP relay. smtplib blocks, so the send runs in a worker thread."""

    def __init__(self, cfg: SmtpCfg, timeout: float = 10.0):
        self.cfg = cfg; self.timeout = timeout

    def build(self, subject: str, html: str, text: str | None = None) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject; msg["From"] = self.cfg.sender or self.cfg.user or "pricebot@localhost"; msg["To"] = self.cfg.recipient
        if text: msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def _send_sync(self, msg: MIMEMultipart) -> None:
        c = self.cfg
        if c.port == 465:
            s = smtplib.SMTP_SSL(c.host, c.port, timeout=self.timeout)
        else:
            s = smtplib.SMTP(c.host, c.port, timeout=self.timeout)
        with s:
            if c.port != 465: s.starttls()
            if c.user and c.password: s.login(c.user, c.password)
            s.sendmail(msg["From"], [c.recipient], msg.as_string())

    async def send(self, subject: str, html: str, text: str | None = None) -> None:
        if not self.cfg.configured:
            raise ConfigurationMissing("SMTP_HOST and ALERT_EMAIL_TO must be set to send email")
        msg = self.build(subject, html, text)
        try:
            await asyncio.to_thread(self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP send failed: {e}") from e
        log.info("Email '%s' sent to %s", subject, self.cfg.recipient)
