"""Wire models for the SatoshiPay goods API."""

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ApiCredentials(BaseModel):
    """API key/secret pair as stored in the `satoshipay_api` option."""

    auth_key: str = ""
    auth_secret: str = ""

    model_config = ConfigDict(extra="ignore")

    @property
    def is_complete(self) -> bool:
        return bool(self.auth_key) and bool(self.auth_secret)


class Good(BaseModel):
    """A priced, payable item on the provider's ledger."""

    good_id: int = Field(alias="goodId")
    price: int  # satoshi
    shared_secret: str = Field(alias="sharedSecret")
    title: str = ""
    url: str = ""
    spmeta: Union[str, dict[str, Any]] = ""

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class BatchRequest(BaseModel):
    """One operation inside a batch call."""

    method: Literal["POST", "PUT", "DELETE"]
    path: str
    body: dict[str, Any] = Field(default_factory=dict)


class BatchResponse(BaseModel):
    """One result of a batch call. Fields may be missing in malformed items."""

    status: Optional[Any] = None
    body: Optional[Any] = None

    model_config = ConfigDict(extra="ignore")
