"""Exceptions raised by the SatoshiPay provider client."""

from typing import Optional


class SatoshiPayError(Exception):
    """Base class for SatoshiPay errors."""


class ApiError(SatoshiPayError):
    """A request to the provider API failed.

    Raised for non-200 responses as well as transport failures (DNS, TLS,
    timeouts). ``status_code`` is ``None`` for the latter.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider_name: Optional[str] = None,
        provider_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.provider_name = provider_name
        self.provider_message = provider_message
