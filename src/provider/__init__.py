"""SatoshiPay provider API client"""

from .client import ApiClient
from .exceptions import ApiError, SatoshiPayError
from .models import ApiCredentials, BatchRequest, BatchResponse, Good

__all__ = [
    "ApiClient",
    "ApiError",
    "SatoshiPayError",
    "ApiCredentials",
    "BatchRequest",
    "BatchResponse",
    "Good",
]
