"""Pydantic request and response models for the Oil Portrait API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for request validation, serialisation, and OpenAPI documentation.  Field
names are snake_case in Python and camelCase on the wire (``isPurchased``,
``watermarkedImageUrl``), matching what the storefront components consume.

Models
------
ArtworkOut
    Public view of an artwork record.  The full-resolution painting has no
    field here: it is only reachable through the download endpoint.
ArtworkListResponse
    One page of the gallery or admin listing.
GenerateResponse
    Result of ``POST /api/images/generate``.
CheckoutRequest / CheckoutResponse
    Payload and result of ``POST /api/checkout/create``.
StylesResponse
    Style presets for the generate form.
StatsResponse
    Shop-wide counts for the admin dashboard.
WebhookResponse
    Acknowledgement returned to the commerce platform.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from oilportrait.core.records import ArtworkRecord


class ApiModel(BaseModel):
    """Base model serialising to camelCase and accepting either case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ArtworkOut(ApiModel):
    """Public representation of an artwork record."""

    id: str
    user_id: str
    shop_id: str
    product_id: str | None = None
    style_selected: str
    customization_details: str | None = None
    original_image_url: str
    original_mime_type: str
    original_width: int
    original_height: int
    generated_width: int
    generated_height: int
    watermarked_image_url: str
    thumbnail_url: str
    is_purchased: bool
    order_id: str | None = None
    processing_time_ms: int
    created_at: datetime
    generation_date: datetime | None = None
    purchased_at: datetime | None = None

    @classmethod
    def from_record(cls, record: ArtworkRecord) -> ArtworkOut:
        return cls(
            id=record.id,
            user_id=record.user_id,
            shop_id=record.shop_id,
            product_id=record.product_id,
            style_selected=record.style,
            customization_details=record.customization_details,
            original_image_url=record.original_url,
            original_mime_type=record.original_mime_type,
            original_width=record.original_width,
            original_height=record.original_height,
            generated_width=record.generated_width,
            generated_height=record.generated_height,
            watermarked_image_url=record.watermarked_url,
            thumbnail_url=record.thumbnail_url,
            is_purchased=record.is_purchased,
            order_id=record.order_id,
            processing_time_ms=record.processing_time_ms,
            created_at=record.created_at,
            generation_date=record.generation_date,
            purchased_at=record.purchased_at,
        )


class ArtworkListResponse(ApiModel):
    """One page of artworks.

    Attributes:
        images: Records on this page, newest first.
        total: Number of records matching the filter.
        page: Resolved (clamped) one-based page number.
        page_size: Fixed page size of the listing.
        total_pages: ``ceil(total / page_size)``.
    """

    images: list[ArtworkOut]
    total: int
    page: int
    page_size: int
    total_pages: int


class GenerateResponse(ApiModel):
    """Response body for ``POST /api/images/generate``."""

    success: bool = True
    id: str
    watermarked_image_url: str
    thumbnail_url: str
    style_selected: str


class CheckoutRequest(ApiModel):
    """Request body for ``POST /api/checkout/create``.

    Attributes:
        image_id: Id of the artwork to buy (``imageId`` on the wire).
    """

    image_id: str = Field(
        ...,
        min_length=1,
        description="Id of the artwork record to check out.",
    )


class CheckoutResponse(ApiModel):
    checkout_url: str


class StyleOut(ApiModel):
    id: str
    label: str
    description: str


class StylesResponse(ApiModel):
    styles: list[StyleOut]


class StatsResponse(ApiModel):
    """Shop-wide artwork counts."""

    total: int
    purchased: int
    not_purchased: int
    style_counts: dict[str, int]


class WebhookResponse(ApiModel):
    """Acknowledgement for a webhook delivery.

    Attributes:
        success: Always ``True`` for an accepted delivery.
        topic: Topic header of the delivery.
        updated: Ids of records that became purchased in this delivery.
    """

    success: bool = True
    topic: str | None = None
    updated: list[str] = Field(default_factory=list)
