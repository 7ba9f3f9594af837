"""
Pytest configuration and shared fixtures
"""

import base64
import json
from typing import Any, Optional

import httpx
import pytest

from src.plugin.admin import OPTION_API, AdminPlugin
from src.provider import ApiClient
from src.storage import Database
from src.utils.config import Config, ProviderConfig, SiteConfig

API_URL = "https://api.test/v1"
HOME_URL = "https://blog.example"


class RecordedCall:
    def __init__(self, method: str, path: str, body: Any, headers: httpx.Headers):
        self.method = method
        self.path = path
        self.body = body
        self.headers = headers


class FakeProvider:
    """In-process stand-in for the SatoshiPay goods API."""

    def __init__(self, auth_key: str = "key", auth_secret: str = "secret"):
        token = base64.b64encode(f"{auth_key}:{auth_secret}".encode()).decode()
        self.expected_auth = f"Basic {token}"
        self.recorded: list[RecordedCall] = []
        self.failures: dict[tuple[str, str], tuple[int, Any]] = {}
        self.batch_responses: Optional[list[dict]] = None
        self._next_id = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/v1")
        body = json.loads(request.content) if request.content else None
        self.recorded.append(RecordedCall(request.method, path, body, request.headers))

        if (request.method, path) in self.failures:
            status, payload = self.failures[(request.method, path)]
            if isinstance(payload, str):
                return httpx.Response(status, text=payload)
            return httpx.Response(status, json=payload)

        if request.headers.get("Authorization") != self.expected_auth:
            return httpx.Response(401, json={"name": "Unauthorized", "message": "Bad credentials"})

        if path == "/permissions":
            return httpx.Response(200, json={"permissions": ["goods"]})

        if request.method == "POST" and path == "/goods":
            self._next_id += 1
            return httpx.Response(200, json={"id": f"good-{self._next_id}"})

        if path.startswith("/goods/"):
            return httpx.Response(200, json={"id": path.split("/")[-1]})

        if request.method == "POST" and path == "/batch":
            if self.batch_responses is not None:
                return httpx.Response(200, json={"responses": self.batch_responses})

            responses = []
            for item in body["requests"]:
                good = item["body"]
                if item["method"] == "POST":
                    good_id = f"batch-{good['goodId']}"
                else:
                    good_id = item["path"].split("/")[-1]
                responses.append(
                    {"status": 200, "body": {"id": good_id, "secret": good["sharedSecret"]}}
                )
            # The provider does not keep request order
            return httpx.Response(200, json={"responses": list(reversed(responses))})

        return httpx.Response(404, json={"message": "Unknown route"})

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> list[RecordedCall]:
        """Recorded calls, excluding credential checks unless asked for."""
        result = []
        for call in self.recorded:
            if path is None and call.path == "/permissions":
                continue
            if method is not None and call.method != method:
                continue
            if path is not None and call.path != path:
                continue
            result.append(call)
        return result


def store_credentials(db: Database, auth_key: str = "key", auth_secret: str = "secret"):
    db.update_option(OPTION_API, {"auth_key": auth_key, "auth_secret": auth_secret})


@pytest.fixture
def db():
    return Database("sqlite:///:memory:")


@pytest.fixture
def config():
    return Config(
        provider=ProviderConfig(api_url=API_URL, use_ad_blocker_detection=True),
        site=SiteConfig(home_url=HOME_URL),
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def plugin(db, config, provider):
    def client_factory(credentials):
        return ApiClient(
            credentials,
            server_url=config.provider.api_url,
            home_url=config.site.home_url,
            transport=httpx.MockTransport(provider.handler),
        )

    return AdminPlugin(db, config, client_factory=client_factory)


@pytest.fixture
def credentials(db):
    store_credentials(db)
    return {"auth_key": "key", "auth_secret": "secret"}
