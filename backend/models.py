import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from backend.extraction.currency import KNOWN_CURRENCIES

_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)


class Offer(BaseModel):
    model_config = ConfigDict(frozen=True)

    store: str
    url: str
    selector: str | None = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        if not _HTTP_URL.match(value):
            raise ValueError("offer url must start with http:// or https://")
        return value

    @field_validator("selector")
    @classmethod
    def _blank_selector(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


class Item(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    offers: list[Offer] = []


class CatalogConfig(BaseModel):
    currency: str | None = None
    items: list[Item]

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str | None) -> str | None:
        if not value or not value.strip():
            return None
        code = value.strip().upper()
        if code not in KNOWN_CURRENCIES:
            raise ValueError(f"unknown currency code '{value.strip()}'")
        return code

    @model_validator(mode="after")
    def _unique_item_ids(self) -> "CatalogConfig":
        seen: set[str] = set()
        for item in self.items:
            if item.id in seen:
                raise ValueError(f"duplicate item id '{item.id}'")
            seen.add(item.id)
        return self


class ExtractionResult(BaseModel):
    amount: float | None = None
    currency: str | None = None
    source: str | None = None

    @property
    def found(self) -> bool:
        return self.amount is not None


class FetchResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    url: str | None = None
    status: int | None = None
    html: str | None = None
    fetched_at: datetime | None = Field(default=None, alias="fetchedAt")
    rendered: bool = False
    error: str | None = None


class OfferStatus(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RESOLVED = "resolved"
    FAILED = "failed"


class ResolvedOffer(BaseModel):
    offer: Offer
    status: OfferStatus = OfferStatus.IDLE
    amount: float | None = None
    currency: str | None = None
    source: str | None = None
    rendered: bool = False
    message: str | None = None
    error: str | None = None
    best: bool = False


class ResolvedItem(BaseModel):
    id: str
    name: str
    offers: list[ResolvedOffer]


class PricesResponse(BaseModel):
    currency: str | None = None
    items: list[ResolvedItem]
    updated_at: datetime | None = None
