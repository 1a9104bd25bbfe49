import asyncio
import json
import smtplib
from unittest.mock import patch

import pytest

from conftest import FakeUpstream
from pricebot.alerts import EmailSender, TelegramSender
from pricebot.config import SmtpCfg, TelegramCfg
from pricebot.errors import ConfigurationMissing, DeliveryError

BOT = TelegramCfg(bot_token="123:abc", chat_id="-1001")
SMTP = SmtpCfg(host="smtp.example.com", port=587, user="bot@example.com", password="pw",
               recipient="me@example.com")

# ---------------------------------------------------------------------------
# Telegram
# ---------------------------------------------------------------------------


class TestTelegramSender:
    def test_posts_markdown_without_link_preview(self, upstream):
        message_id = upstream.run(lambda http: TelegramSender(BOT, http).send("*hi*"))
        assert message_id == 42
        [req] = upstream.calls("api.telegram.org")
        assert req.method == "POST"
        assert req.url.path == "/bot123:abc/sendMessage"
        assert json.loads(req.content) == {
            "chat_id": "-1001", "text": "*hi*", "parse_mode": "Markdown", "disable_web_page_preview": True}

    def test_non_success_status_is_delivery_error(self):
        up = FakeUpstream(telegram_status=400, telegram_body={"ok": False, "description": "chat not found"})
        with pytest.raises(DeliveryError) as exc:
            up.run(lambda http: TelegramSender(BOT, http).send("hi"))
        assert exc.value.status_code == 400
        assert "chat not found" in str(exc.value)

    def test_ok_false_is_delivery_error(self):
        up = FakeUpstream(telegram_body={"ok": False, "description": "nope"})
        with pytest.raises(DeliveryError):
            up.run(lambda http: TelegramSender(BOT, http).send("hi"))

    @pytest.mark.parametrize("cfg", [TelegramCfg(), TelegramCfg(bot_token="x"), TelegramCfg(chat_id="1")])
    def test_missing_credentials_detected_at_send_time(self, upstream, cfg):
        with pytest.raises(ConfigurationMissing):
            upstream.run(lambda http: TelegramSender(cfg, http).send("hi"))
        assert upstream.requests == []

# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------


class TestEmailSender:
    @patch("pricebot.alerts.smtplib.SMTP")
    def test_starttls_login_and_send(self, smtp):
        asyncio.run(EmailSender(SMTP).send("Subject", "<p>hi</p>", "hi"))
        smtp.assert_called_once_with("smtp.example.com", 587, timeout=10.0)
        server = smtp.return_value
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("bot@example.com", "pw")
        from_addr, to_addrs, raw = server.sendmail.call_args.args
        assert from_addr == "bot@example.com" and to_addrs == ["me@example.com"]
        assert "Subject: Subject" in raw
        assert "text/html" in raw and "text/plain" in raw

    @patch("pricebot.alerts.smtplib.SMTP_SSL")
    def test_port_465_uses_implicit_tls(self, smtp_ssl):
        cfg = SMTP.model_copy(update={"port": 465})
        asyncio.run(EmailSender(cfg).send("s", "<p>x</p>"))
        smtp_ssl.assert_called_once()
        smtp_ssl.return_value.starttls.assert_not_called()
        smtp_ssl.return_value.sendmail.assert_called_once()

    @patch("pricebot.alerts.smtplib.SMTP")
    def test_smtp_failure_is_delivery_error(self, smtp):
        smtp.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad creds")
        with pytest.raises(DeliveryError):
            asyncio.run(EmailSender(SMTP).send("s", "<p>x</p>"))

    @patch("pricebot.alerts.smtplib.SMTP")
    def test_missing_relay_config(self, smtp):
        with pytest.raises(ConfigurationMissing):
            asyncio.run(EmailSender(SmtpCfg(host="smtp.example.com")).send("s", "<p>x</p>"))
        smtp.assert_not_called()

    def test_sender_falls_back_to_user(self):
        msg = EmailSender(SMTP).build("s", "<p>x</p>")
        assert msg["From"] == "bot@example.com"
        assert msg["To"] == "me@example.com"
