"""HTTP client for the SatoshiPay goods API."""

import base64
from typing import Any, Iterable, Optional, Union

import httpx
from loguru import logger

from ..utils.config import DEFAULT_API_URL, VERSION
from .exceptions import ApiError
from .models import ApiCredentials, BatchRequest, BatchResponse, Good

ERROR_PREFIX = "API request failed. We got the following error: "


class ApiClient:
    """Synchronous client for the provider's REST endpoints.

    Every call is a single request authenticated with HTTP Basic auth built
    from the key/secret pair. There is no retry: failures surface once as
    :class:`ApiError` and are handled by the caller.
    """

    def __init__(
        self,
        credentials: Optional[ApiCredentials] = None,
        server_url: str = DEFAULT_API_URL,
        home_url: str = "",
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize API client.

        Args:
            credentials: API key/secret pair
            server_url: Base URL of the provider API
            home_url: Site URL reported in the user agent
            timeout: Request timeout in seconds (httpx default when omitted)
            transport: Optional httpx transport, used to fake the API in tests
        """
        self.credentials = credentials or ApiCredentials()
        self.server_url = server_url.rstrip("/")
        self.user_agent = f"SatoshiPayPublisher/{VERSION}; {home_url}".rstrip("; ")

        client_kwargs: dict[str, Any] = {"headers": self.get_request_headers()}
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        if transport is not None:
            client_kwargs["transport"] = transport
        self._http = httpx.Client(**client_kwargs)

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def get_request_headers(self) -> dict[str, str]:
        token = f"{self.credentials.auth_key}:{self.credentials.auth_secret}"
        encoded = base64.b64encode(token.encode("utf-8")).decode("ascii")
        return {
            "Authorization": f"Basic {encoded}",
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }

    def create_good(self, good: Union[Good, dict]) -> Optional[str]:
        """Create a new good.

        Args:
            good: Good to create

        Returns:
            Id assigned by the provider
        """
        data = self._request_json("POST", "/goods", _payload(good))
        return data.get("id")

    def update_good(self, good_id: str, good: Union[Good, dict]) -> Optional[str]:
        """Update an existing good.

        Args:
            good_id: Provider id of the good
            good: New good data

        Returns:
            Id of the updated good
        """
        if not good_id:
            raise ValueError("good_id is required to update a good")

        data = self._request_json("PUT", f"/goods/{good_id}", _payload(good))
        return data.get("id")

    def delete_good(self, good_id: str) -> Optional[str]:
        """Delete an existing good.

        Args:
            good_id: Provider id of the good

        Returns:
            Id of the deleted good
        """
        if not good_id:
            raise ValueError("good_id is required to delete a good")

        data = self._request_json("DELETE", f"/goods/{good_id}")
        return data.get("id")

    def batch(self, requests: Iterable[Union[BatchRequest, dict]]) -> list[BatchResponse]:
        """Submit several good operations as one batch call.

        The provider does not promise that responses come back in request
        order; callers reconcile them by the good's shared secret.

        Args:
            requests: Batch operations

        Returns:
            One response per operation, in provider order
        """
        payload = {
            "requests": [
                r.model_dump() if isinstance(r, BatchRequest) else BatchRequest(**r).model_dump()
                for r in requests
            ]
        }
        data = self._request_json("POST", "/batch", payload)

        responses = data.get("responses") or []
        return [BatchResponse(**item) for item in responses if isinstance(item, dict)]

    def test_credentials(self) -> bool:
        """Check whether the configured credentials are accepted.

        Returns:
            True only if the provider answered HTTP 200
        """
        try:
            response = self._request("GET", "/permissions")
        except ApiError as e:
            logger.warning(f"Credential check failed: {e}")
            return False

        return response.status_code == 200

    def _request(self, method: str, path: str, payload: Optional[Any] = None) -> httpx.Response:
        """Send one HTTP request, mapping transport failures to ApiError."""
        url = f"{self.server_url}{path}"
        logger.debug(f"{method} {url}")

        try:
            if payload is None:
                return self._http.request(method, url)
            return self._http.request(method, url, json=payload)
        except httpx.TransportError as e:
            raise ApiError(f'{ERROR_PREFIX}"{e}"') from e

    def _request_json(self, method: str, path: str, payload: Optional[Any] = None) -> dict:
        """Send one HTTP request and return its JSON body, raising on non-200."""
        response = self._request(method, path, payload)

        if response.status_code != 200:
            raise _error_from_response(response)

        try:
            data = response.json()
        except ValueError:
            return {}

        return data if isinstance(data, dict) else {}


def _payload(good: Union[Good, dict]) -> dict:
    if isinstance(good, Good):
        return good.to_payload()
    return dict(good)


def _error_from_response(response: httpx.Response) -> ApiError:
    name = None
    message = None

    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        name = data.get("name") or None
        message = data.get("message") or None
        detail = " / ".join(str(part) for part in (name, message) if part)
    else:
        detail = response.text

    return ApiError(
        f'{ERROR_PREFIX}"{detail}" (HTTP status code {response.status_code})',
        status_code=response.status_code,
        provider_name=name,
        provider_message=message,
    )
