"""Input sanitization for admin settings forms and post pricing."""

import re
from typing import Any, Mapping, Optional

from pydantic import BaseModel, HttpUrl, TypeAdapter, ValidationError

_TAG_RE = re.compile(r"<!--.*?-->|<[^>]*>", re.DOTALL)
_SLASH_RE = re.compile(r"\\(.?)", re.DOTALL)
_DIGITS_RE = re.compile(r"[0-9]+")

_http_url = TypeAdapter(HttpUrl)

DEFAULT_PRICING = {"enabled": False, "satoshi": ""}


class SettingsError(BaseModel):
    """A validation message for one settings field."""

    setting: str
    code: str
    message: str


def strip_slashes(value: str) -> str:
    """Un-quote a backslash-escaped string."""
    return _SLASH_RE.sub(r"\1", value)


def strip_tags(value: str) -> str:
    """Remove HTML tags and comments."""
    return _TAG_RE.sub("", value)


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    return strip_tags(strip_slashes(str(value)))


def is_digits(value: str) -> bool:
    """True for non-empty ASCII digit strings only."""
    return bool(_DIGITS_RE.fullmatch(value))


def _as_text(value: Any) -> str:
    # bool is an int subclass; True must not pass as "1"
    if value is None or isinstance(value, bool):
        return ""
    return str(value)


def sanitize_pricing(pricing: Optional[Mapping[str, Any]]) -> dict:
    """Sanitize per-post pricing.

    Anything but an enabled pricing with a positive whole-number price
    collapses to the disabled default ``{"enabled": False}``.
    """
    result: dict[str, Any] = {"enabled": False}

    if not pricing or "enabled" not in pricing:
        return result

    if not _truthy(pricing["enabled"]):
        return result

    if pricing.get("satoshi") is None:
        return result

    price = clean_text(_as_text(pricing["satoshi"])).strip()
    if not is_digits(price):
        return result

    price = int(price)
    if price <= 0:
        return result

    result["enabled"] = True
    result["satoshi"] = price
    return result


def merge_pricing(current: Optional[Mapping[str, Any]], form: Mapping[str, Any]) -> dict:
    """Apply pricing fields of a submitted post form to stored pricing."""
    pricing = dict(current) if current else dict(DEFAULT_PRICING)

    if "satoshipay_pricing_enabled" in form:
        pricing["enabled"] = _truthy(form["satoshipay_pricing_enabled"])
    elif "satoshipay_pricing_disabled" in form:
        pricing["enabled"] = False

    if "satoshipay_pricing_satoshi" in form:
        pricing["satoshi"] = form["satoshipay_pricing_satoshi"]

    return pricing


def _truthy(value: Any) -> bool:
    # Form checkboxes post strings; "0" and "" are off
    if isinstance(value, str):
        return value.strip() not in ("", "0")
    return bool(value)


def validate_ad_blocker_detection_option(data: Optional[Mapping[str, Any]]) -> Optional[int]:
    """Return 0 or 1 for a valid `enabled` field, None otherwise."""
    if not data or data.get("enabled") is None:
        return None

    value = _as_text(data["enabled"]).strip()
    if not is_digits(value):
        return None

    value = int(value)
    if value not in (0, 1):
        return None

    return value


def validate_ad_blocker_detection_price(data: Optional[Mapping[str, Any]]) -> Optional[int]:
    """Return the ad blocker price if it is a positive whole number."""
    if not data or data.get("price") is None:
        return None

    value = clean_text(_as_text(data["price"])).strip()
    if not is_digits(value):
        return None

    value = int(value)
    if value <= 0:
        return None

    return value


def sanitize_api_settings(data: Mapping[str, Any]) -> tuple[dict, list[SettingsError]]:
    """Clean the API key/secret form.

    Credential validity is not checked here; see AdminPlugin.
    """
    output: dict[str, str] = {}
    errors: list[SettingsError] = []

    if data.get("auth_key") is not None:
        output["auth_key"] = clean_text(data["auth_key"])
    else:
        errors.append(SettingsError(setting="auth_key", code="auth_key", message="Please enter an API Key."))

    if data.get("auth_secret") is not None:
        output["auth_secret"] = clean_text(data["auth_secret"])
    else:
        errors.append(
            SettingsError(setting="auth_secret", code="auth_secret", message="Please enter an API Secret.")
        )

    return output, errors


def sanitize_ad_blocker_detection_settings(
    data: Mapping[str, Any], current: Optional[Mapping[str, Any]]
) -> tuple[dict, list[SettingsError]]:
    """Validate the ad blocker detection form against the stored settings."""
    current = dict(current or {"enabled": 0})
    errors: list[SettingsError] = []
    output: dict[str, Any] = {}

    enabled = validate_ad_blocker_detection_option(data)
    if enabled is None:
        errors.append(
            SettingsError(
                setting="enabled",
                code="enabled",
                message="The option you chose for ad blocker detection is not valid.",
            )
        )
        enabled = current.get("enabled", 0)
    output["enabled"] = enabled

    # Price only matters while the feature is on
    if enabled == 1:
        price = validate_ad_blocker_detection_price(data)
        if price is None:
            errors.append(
                SettingsError(
                    setting="price",
                    code="price",
                    message=(
                        "The price you entered does not appear to be valid. "
                        "Please enter a whole number for satoshis per post/page."
                    ),
                )
            )
            return current, errors
        output["price"] = price

    return output, errors


def sanitize_client_url(value: Any) -> str:
    """Accept http(s) URLs only; anything else becomes an empty string."""
    text = clean_text(value).strip()
    if not text:
        return ""

    try:
        _http_url.validate_python(text)
    except ValidationError:
        return ""

    return text


def sanitize_client_settings(data: Mapping[str, Any]) -> dict:
    output: dict[str, str] = {}
    if data.get("client_url") is not None:
        output["client_url"] = sanitize_client_url(data["client_url"])
    return output
