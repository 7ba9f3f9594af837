"""Consistency checks between post content tags and post pricing."""

from typing import Any, Mapping, Optional

from ..storage.models import Post
from .notices import Notice

START_TAG = "<!--satoshipay:start-->"
TAG_PREFIX = "<!--satoshipay:"


def is_paid(pricing: Optional[Mapping[str, Any]]) -> bool:
    """True if the pricing is enabled with a positive price."""
    if not pricing or not pricing.get("enabled"):
        return False

    try:
        return int(pricing.get("satoshi") or 0) > 0
    except (TypeError, ValueError):
        return False


def check_paid_content(post: Post, pricing: Optional[Mapping[str, Any]]) -> list[Notice]:
    """Warn about SatoshiPay tags that will be ignored when rendering.

    Args:
        post: Post to check
        pricing: Stored pricing of the post

    Returns:
        Notices to show to the editor
    """
    notices = []
    content = post.post_content or ""
    label = (post.post_type or "post").capitalize()

    if START_TAG in content:
        if not is_paid(pricing):
            notices.append(
                Notice(
                    code="save_post_missinginfo_error",
                    post_id=post.id,
                    message=(
                        "<strong>SatoshiPay Warning:</strong> Start Tag will be ignored, because no "
                        "price was set. When using the SatoshiPay Start Tag, the \"Paid "
                        f"{label}\" checkbox on the right needs to be activated and a price must be set."
                    ),
                )
            )

        paid_part = content.split(START_TAG, 1)[1]
        if TAG_PREFIX in paid_part:
            notices.append(
                Notice(
                    code="save_post_multiple_tags",
                    post_id=post.id,
                    message=(
                        "<strong>SatoshiPay Warning:</strong> Paid items below Start Tag will not be "
                        "displayed. When using the SatoshiPay Start Tag, paid audios, downloads, "
                        "images or videos must be placed above the Start Tag."
                    ),
                )
            )

    elif is_paid(pricing) and TAG_PREFIX in content:
        # The whole post is paid, so embedded paid items cannot be unlocked separately
        notices.append(
            Notice(
                code="save_post_multiple_tags",
                post_id=post.id,
                message=(
                    "<strong>SatoshiPay Warning:</strong> Paid items will not be displayed. When "
                    f"activating the \"Paid {label}\" checkbox on the right and setting a price, all "
                    "media has to be included as regular content."
                ),
            )
        )

    return notices
