"""Public-facing rendering: injects the SatoshiPay widget script into pages."""

import html
from typing import Optional

from ..storage.database import Database
from ..utils.config import Config
from .admin import OPTION_CLIENT


class FrontendPlugin:
    """Adds the payment widget to rendered pages."""

    def __init__(self, db: Database, config: Config):
        self.db = db
        self.config = config

    def client_url(self) -> str:
        """Widget URL from the client settings, else from configuration."""
        options = self.db.get_option(OPTION_CLIENT) or {}
        return options.get("client_url") or self.config.provider.client_url

    def client_script_tag(self) -> str:
        src = html.escape(self.client_url(), quote=True)
        return f'<script type="text/javascript" src="{src}"></script>'

    def inject_client_script(self, page: str) -> str:
        """Insert the widget script into an HTML page once.

        The tag goes before ``</head>``, else before ``</body>``, else at the end.
        """
        tag = self.client_script_tag()
        if tag in page:
            return page

        for marker in ("</head>", "</body>"):
            index = page.lower().find(marker)
            if index != -1:
                return page[:index] + tag + page[index:]

        return page + tag

    def render_post(self, post_id: int) -> Optional[str]:
        """Render a minimal page for a published post."""
        post = self.db.get_post(post_id)
        if not post or post.post_status != "publish":
            return None

        title = html.escape(post.post_title or "")
        page = (
            "<!DOCTYPE html>"
            f"<html><head><meta charset=\"utf-8\"><title>{title}</title></head>"
            f"<body><article><h1>{title}</h1>{post.post_content or ''}</article></body></html>"
        )
        return self.inject_client_script(page)
