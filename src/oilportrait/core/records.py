"""Data models for artwork records and tenant scoping."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .errors import ValidationError


def utcnow() -> datetime:
    """Timezone-aware current time used for every stored timestamp."""
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Tenant:
    """Scope every store read is bound to.

    A tenant is a shop.  Customer-facing reads additionally narrow the scope
    to one user of that shop; the admin view reads the whole shop and leaves
    ``user_id`` unset.
    """

    shop_id: str
    user_id: str | None = None

    def __post_init__(self) -> None:
        if not self.shop_id:
            raise ValueError("Tenant requires a shop_id")


class PurchaseFilter(str, Enum):
    """Listing filter on purchase state."""

    ALL = "all"
    PURCHASED = "purchased"
    NOT_PURCHASED = "not-purchased"

    @classmethod
    def parse(cls, value: str | None) -> PurchaseFilter:
        """Parse a query-string value, defaulting to ``all``.

        Raises:
            ValidationError: If the value is not a known filter.
        """
        if not value:
            return cls.ALL
        try:
            return cls(value)
        except ValueError as e:
            allowed = ", ".join(f.value for f in cls)
            raise ValidationError(f"Unknown filter '{value}' (expected one of: {allowed})") from e


@dataclass
class ArtworkRecord:
    """One generated painting and its purchase state.

    ``generated_key`` points at the full-resolution painting in private
    storage and is never serialised into API responses; the watermarked
    preview and thumbnail are public URLs.
    """

    user_id: str
    shop_id: str
    style: str
    original_key: str
    original_url: str
    original_filename: str
    original_mime_type: str
    original_width: int
    original_height: int
    original_size: int
    generated_key: str
    generated_width: int
    generated_height: int
    watermarked_url: str
    thumbnail_url: str
    product_id: str | None = None
    customization_details: str | None = None
    generation_prompt: str = ""
    processing_time_ms: int = 0
    is_purchased: bool = False
    order_id: str | None = None
    order_line_item_id: str | None = None
    purchased_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    generation_date: datetime | None = None
    id: str = field(default_factory=new_record_id)

    @property
    def generated_extension(self) -> str:
        """File extension of the full-resolution painting (without the dot)."""
        _, _, ext = self.generated_key.rpartition(".")
        return ext.lower() if ext and "/" not in ext else "png"
