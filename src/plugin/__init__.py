"""Event handlers binding posts and settings to the SatoshiPay API"""

from .admin import AdminPlugin, generate_secret
from .frontend import FrontendPlugin
from .notices import Notice, NoticeBoard

__all__ = [
    "AdminPlugin",
    "FrontendPlugin",
    "Notice",
    "NoticeBoard",
    "generate_secret",
]
