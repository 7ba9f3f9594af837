"""Admin notices kept as short-lived transients."""

import html
from typing import Iterable, Optional

from loguru import logger
from pydantic import BaseModel

from ..storage.database import Database

NOTICE_CODES = (
    "api_credentials_invalid",
    "api_request_failed",
    "save_post_missinginfo_error",
    "save_post_multiple_tags",
)

DEFAULT_TTL_SECONDS = 10


class Notice(BaseModel):
    """A message shown once on the next admin page load.

    ``message`` is trusted HTML and is rendered as is.
    """

    code: str
    message: str
    post_id: Optional[int] = None


def notice_name(code: str, post_id: Optional[int] = None, user_id: int = 0) -> str:
    """Build a transient name like ``satoshipay_<code>_{<post>}_{<user>}``."""
    name = f"satoshipay_{code}"
    if post_id:
        name += f"_{{{post_id}}}"
    name += f"_{{{user_id}}}"
    return name


class NoticeBoard:
    """Store and pop admin notices per user and, optionally, per post."""

    def __init__(self, db: Database, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.db = db
        self.ttl_seconds = ttl_seconds

    def add(self, notice: Notice, user_id: int = 0):
        name = notice_name(notice.code, notice.post_id, user_id)
        self.db.set_transient(name, notice.model_dump(), self.ttl_seconds)
        logger.debug(f"Queued admin notice {name}")

    def add_error(self, code: str, message: str, post_id: Optional[int] = None, user_id: int = 0):
        self.add(Notice(code=code, message=message, post_id=post_id), user_id=user_id)

    def pop(self, post_id: Optional[int] = None, user_id: int = 0) -> list[Notice]:
        """Return and remove pending notices for a post and the site.

        Expired notices of other users and posts are purged as well.
        """
        self.db.cleanup_expired_transients()

        notices = []
        for code in NOTICE_CODES:
            names = [notice_name(code, post_id, user_id)]
            if post_id:
                names.append(notice_name(code, None, user_id))

            for name in names:
                data = self.db.get_transient(name)
                if data:
                    notices.append(Notice(**data))
                    self.db.delete_transient(name)

        return notices

    @staticmethod
    def render(notices: Iterable[Notice]) -> str:
        return "".join(f'<div class="error"><p>{n.message}</p></div>' for n in notices)


def escape(text: str) -> str:
    """Escape untrusted text before embedding it in a notice."""
    return html.escape(text, quote=True)
