"""Admin-side event handlers that keep posts and SatoshiPay goods in sync."""

import hashlib
import json
import secrets
from typing import Any, Callable, Mapping, Optional

from loguru import logger

from ..provider.client import ApiClient
from ..provider.exceptions import ApiError
from ..provider.models import ApiCredentials, BatchRequest, BatchResponse, Good
from ..storage.database import Database
from ..storage.models import Post
from ..utils.config import Config
from .content import check_paid_content
from .notices import NoticeBoard, escape
from .sanitizers import (
    DEFAULT_PRICING,
    SettingsError,
    merge_pricing,
    sanitize_ad_blocker_detection_settings,
    sanitize_api_settings,
    sanitize_client_settings,
    sanitize_pricing,
    validate_ad_blocker_detection_option,
    validate_ad_blocker_detection_price,
)

# Post metadata keys
META_SECRET = "_satoshipay_secret"
META_GOOD_ID = "_satoshipay_id"
META_PRICING = "_satoshipay_pricing"

# Option names
OPTION_API = "satoshipay_api"
OPTION_AD_BLOCKER_DETECTION = "satoshipay_ad_blocker_detection"
OPTION_CLIENT = "satoshipay_client"
OPTION_CHECKED_CREDENTIALS = "satoshipay_checked_credentials"
OPTION_VALID_CREDENTIALS = "satoshipay_valid_credentials"

DEFAULT_API_SETTINGS = {"auth_key": "", "auth_secret": ""}
DEFAULT_AD_BLOCKER_DETECTION_SETTINGS = {"enabled": 0}

ClientFactory = Callable[[ApiCredentials], ApiClient]


def generate_secret() -> str:
    """Shared secret used to match a post with its good."""
    return hashlib.md5(secrets.token_bytes(1024)).hexdigest()


class AdminPlugin:
    """Event callbacks for posts and settings.

    Each handler does at most one outbound API call (or one batch call).
    API failures are logged and turned into admin notices, except when
    deleting a post: there the error propagates so the post, and with it
    the remote good id, is kept.
    """

    def __init__(
        self,
        db: Database,
        config: Config,
        notices: Optional[NoticeBoard] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        """Initialize the admin plugin.

        Args:
            db: Storage for posts, metadata and options
            config: Application configuration
            notices: Admin notice board (created on db if omitted)
            client_factory: Builds an API client for given credentials
        """
        self.db = db
        self.config = config
        self.notices = notices or NoticeBoard(db)
        self.client_factory = client_factory or self._default_client

    def _default_client(self, credentials: ApiCredentials) -> ApiClient:
        return ApiClient(
            credentials,
            server_url=self.config.provider.api_url,
            home_url=self.config.site.home_url,
            timeout=self.config.provider.timeout,
        )

    @property
    def use_ad_blocker_detection(self) -> bool:
        return self.config.provider.use_ad_blocker_detection

    # ------------------------------------------------------------------
    # Credentials and options
    # ------------------------------------------------------------------

    def get_credentials(self) -> ApiCredentials:
        return ApiCredentials(**(self.db.get_option(OPTION_API) or DEFAULT_API_SETTINGS))

    def valid_credentials(
        self, credentials: Optional[ApiCredentials] = None, use_cache: bool = False
    ) -> bool:
        """Check credentials against the provider.

        Args:
            credentials: Credentials to check (stored credentials if omitted)
            use_cache: Return the result of the last check, if there is one

        Returns:
            True if the provider accepts the credentials
        """
        if credentials is None:
            credentials = self.get_credentials()

        if use_cache and self.db.get_option(OPTION_CHECKED_CREDENTIALS):
            return bool(self.db.get_option(OPTION_VALID_CREDENTIALS, False))

        if not credentials.is_complete:
            valid = False
        else:
            with self.client_factory(credentials) as client:
                valid = client.test_credentials()

        self.db.update_option(OPTION_CHECKED_CREDENTIALS, True)
        self.db.update_option(OPTION_VALID_CREDENTIALS, valid)
        return valid

    def get_settings(self) -> dict:
        credentials = self.get_credentials()
        return {
            "api": {"auth_key": credentials.auth_key, "has_secret": bool(credentials.auth_secret)},
            "ad_blocker_detection": self.db.get_option(
                OPTION_AD_BLOCKER_DETECTION, DEFAULT_AD_BLOCKER_DETECTION_SETTINGS
            ),
            "client": self.db.get_option(
                OPTION_CLIENT, {"client_url": self.config.provider.client_url}
            ),
            "use_ad_blocker_detection": self.use_ad_blocker_detection,
        }

    def update_api_settings(self, data: Mapping[str, Any]) -> list[SettingsError]:
        """Sanitize and store API credentials.

        Invalid credentials are not stored; the previous value is kept.
        """
        output, errors = sanitize_api_settings(data)

        if not self.valid_credentials(ApiCredentials(**output)):
            errors.append(
                SettingsError(
                    setting="auth_validcredentials",
                    code="auth_validcredentials",
                    message="The new API key/secret credentials are invalid and were not saved.",
                )
            )
            logger.warning("Rejected invalid API credentials")
            return errors

        self._store_option(OPTION_API, output)
        return errors

    def update_ad_blocker_detection_settings(self, data: Mapping[str, Any]) -> list[SettingsError]:
        current = self.db.get_option(
            OPTION_AD_BLOCKER_DETECTION, DEFAULT_AD_BLOCKER_DETECTION_SETTINGS
        )
        output, errors = sanitize_ad_blocker_detection_settings(data, current)
        self._store_option(OPTION_AD_BLOCKER_DETECTION, output)
        return errors

    def update_client_settings(self, data: Mapping[str, Any]) -> list[SettingsError]:
        self._store_option(OPTION_CLIENT, sanitize_client_settings(data))
        return []

    def _store_option(self, name: str, value: Any):
        if self.db.update_option(name, value):
            logger.info(f"Option {name} updated")
            self.on_updated_option(name)

    def on_updated_option(self, name: str):
        """React to changed settings by resyncing all posts."""
        if name == OPTION_AD_BLOCKER_DETECTION and not self.use_ad_blocker_detection:
            return

        if name in (OPTION_API, OPTION_AD_BLOCKER_DETECTION):
            self.update_metadata()

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def get_pricing(self, post_id: int, form: Optional[Mapping[str, Any]] = None) -> dict:
        """Stored pricing of a post merged with submitted form data."""
        current = self.db.get_post_meta(post_id, META_PRICING)
        return merge_pricing(current or DEFAULT_PRICING, form or {})

    def permalink(self, post_id: int) -> str:
        return f"{self.config.site.home_url.rstrip('/')}/?p={post_id}"

    def on_save_post(self, post_id: int, form: Optional[Mapping[str, Any]] = None):
        """Store pricing and create or update the post's good."""
        post = self.db.get_post(post_id)
        if not post:
            return
        self.save_metadata(post, form or {})

    def save_metadata(self, post: Post, form: Mapping[str, Any]):
        if post.post_status == "auto-draft" or post.post_type == "revision":
            return

        self.db.add_post_meta(post.id, META_SECRET, generate_secret())

        pricing = sanitize_pricing(self.get_pricing(post.id, form))
        self.db.update_post_meta(post.id, META_PRICING, pricing)

        credentials = self.get_credentials()
        if not self.valid_credentials(credentials):
            logger.debug(f"Skipping good sync for post {post.id}: invalid credentials")
            return

        metadata = {"adblock": False}
        enabled = pricing["enabled"]
        price = pricing.get("satoshi", 0)

        if self.use_ad_blocker_detection and not enabled:
            options = self.db.get_option(OPTION_AD_BLOCKER_DETECTION)
            enabled = bool(validate_ad_blocker_detection_option(options))
            price = validate_ad_blocker_detection_price(options) or 0
            metadata["adblock"] = enabled

        if not (enabled and price):
            return

        good = Good(
            good_id=post.id,
            price=price,
            shared_secret=self.db.get_post_meta(post.id, META_SECRET),
            title=post.post_title,
            url=self.permalink(post.id),
            spmeta=json.dumps(metadata, separators=(",", ":")),
        )
        good_id = self.db.get_post_meta(post.id, META_GOOD_ID)

        try:
            with self.client_factory(credentials) as client:
                if good_id:
                    good_id = client.update_good(good_id, good)
                else:
                    good_id = client.create_good(good)
        except ApiError as e:
            logger.error(f"Syncing good for post {post.id} failed: {e}")
            self.notices.add_error("api_request_failed", escape(str(e)), post_id=post.id)
            return

        if good_id:
            self.db.update_post_meta(post.id, META_GOOD_ID, good_id)
            logger.info(f"Synced good {good_id} for post {post.id} (price={price})")

    def on_before_delete_post(self, post_id: int):
        """Delete the post's remote good before the post goes away.

        There is no live credential check first, so an unreachable provider
        raises instead of letting the post go.

        Raises:
            ApiError: If the provider refused or could not be reached
        """
        post = self.db.get_post(post_id)
        if not post:
            return

        good_id = self.db.get_post_meta(post.id, META_GOOD_ID)
        if not good_id:
            return

        credentials = self.get_credentials()
        if not credentials.is_complete:
            logger.warning(
                f"Deleting post {post.id} without credentials; remote good {good_id} is left in place"
            )
            return

        with self.client_factory(credentials) as client:
            client.delete_good(good_id)

        self.db.delete_post_meta(post.id, META_GOOD_ID)
        logger.info(f"Deleted good {good_id} of post {post.id}")

    def delete_post(self, post_id: int) -> bool:
        self.on_before_delete_post(post_id)
        return self.db.delete_post(post_id)

    def on_edit_post(self, post_id: int, user_id: int = 0):
        """Queue warnings shown when a post is opened in the editor."""
        post = self.db.get_post(post_id)
        if not post:
            return

        if not self.valid_credentials():
            self.notices.add_error(
                "api_credentials_invalid",
                "<strong>SatoshiPay Warning:</strong> No API credentials set. To use SatoshiPay, "
                "API Key and Secret need to be supplied in the SatoshiPay Settings.",
                user_id=user_id,
            )

        self.check_metadata(post, user_id=user_id)

    def on_update_post(self, post_id: int, user_id: int = 0):
        post = self.db.get_post(post_id)
        if not post:
            return
        self.check_metadata(post, user_id=user_id)

    def check_metadata(self, post: Post, user_id: int = 0):
        pricing = self.db.get_post_meta(post.id, META_PRICING)
        for notice in check_paid_content(post, pricing):
            self.notices.add(notice, user_id=user_id)

    def set_pricing(self, post_id: int, form: Mapping[str, Any]) -> dict:
        """Save pricing submitted from the editor sidebar.

        Raises:
            LookupError: If the post does not exist
        """
        post = self.db.get_post(post_id)
        if not post:
            raise LookupError(f"Post {post_id} not found")

        self.save_metadata(post, form)
        return {"post_id": post.id, "satoshipay_pricing": self.get_pricing(post.id)}

    def prepare_attachment(self, payload: dict) -> dict:
        """Add the price to an attachment payload if it is paid."""
        if "id" in payload:
            pricing = self.get_pricing(payload["id"])
            if pricing.get("enabled") and pricing.get("satoshi"):
                payload["price"] = pricing["satoshi"]
        return payload

    # ------------------------------------------------------------------
    # Site-wide sync
    # ------------------------------------------------------------------

    def update_metadata(self):
        self.add_secret_metadata()
        self.update_provider_metadata()

    def add_secret_metadata(self) -> int:
        """Give every priceable post without a secret a new one."""
        post_ids = self.db.get_post_ids_without_meta(META_SECRET)
        for post_id in post_ids:
            self.db.add_post_meta(post_id, META_SECRET, generate_secret())

        if post_ids:
            logger.info(f"Added secrets to {len(post_ids)} posts")
        return len(post_ids)

    def build_batch_requests(self, price: int) -> list[BatchRequest]:
        """One create or update per priceable post that is not paid content."""
        metadata = {"adblock": True, "homeUrl": self.config.site.home_url}
        requests = []

        for post_id in self.db.get_post_ids():
            pricing = self.db.get_post_meta(post_id, META_PRICING) or {}
            if pricing.get("enabled") is True:
                continue

            post = self.db.get_post(post_id)
            good_id = self.db.get_post_meta(post_id, META_GOOD_ID)

            body = Good(
                good_id=post.id,
                price=price,
                shared_secret=self.db.get_post_meta(post_id, META_SECRET) or "",
                title=post.post_title,
                url=self.permalink(post.id),
                spmeta=metadata,
            ).to_payload()

            if good_id:
                requests.append(BatchRequest(method="PUT", path=f"/goods/{good_id}", body=body))
            else:
                requests.append(BatchRequest(method="POST", path="/goods", body=body))

        return requests

    def update_provider_metadata(self) -> int:
        """Push the ad blocker price of all free posts as one batch.

        Returns:
            Number of posts whose good id was stored
        """
        options = self.db.get_option(OPTION_AD_BLOCKER_DETECTION)
        enabled = validate_ad_blocker_detection_option(options)
        price = validate_ad_blocker_detection_price(options)

        credentials = self.get_credentials()
        if enabled != 1 or price is None or not self.valid_credentials(credentials):
            return 0

        requests = self.build_batch_requests(price)
        if not requests:
            return 0

        logger.info(f"Sending batch of {len(requests)} goods")
        try:
            with self.client_factory(credentials) as client:
                responses = client.batch(requests)
        except ApiError as e:
            logger.error(f"Batch sync failed: {e}")
            self.notices.add_error("api_request_failed", escape(str(e)))
            return 0

        return self.reconcile_batch(responses)

    def reconcile_batch(self, responses: list[BatchResponse]) -> int:
        """Store good ids from batch responses, matching posts by secret.

        Response order is not trusted; failed or malformed items are skipped
        and those posts stay unsynced until their next save.
        """
        updated = 0
        for response in responses:
            if response.status is None or response.body is None:
                continue

            try:
                status = int(response.status)
            except (TypeError, ValueError):
                continue

            if status != 200:
                continue

            body = response.body
            if not isinstance(body, dict) or body.get("id") is None or body.get("secret") is None:
                continue

            post_id = self.db.find_post_id_by_meta(META_SECRET, body["secret"])
            if post_id is None:
                continue

            self.db.update_post_meta(post_id, META_GOOD_ID, body["id"])
            updated += 1

        logger.info(f"Reconciled {updated} of {len(responses)} batch responses")
        return updated
