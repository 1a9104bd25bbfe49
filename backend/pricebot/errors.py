from __future__ import annotations


class PriceBotError(Exception):
    """Base class for every error raised by the bot."""


class NetworkError(PriceBotError):
    """Upstream unreachable or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidResponseError(PriceBotError):
    """Upstream answered 2xx but the payload has an unexpected shape."""


class DeliveryError(PriceBotError):
    """An outbound send (chat or mail) was rejected."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationMissing(PriceBotError):
    """A credential needed for a send is not configured."""
