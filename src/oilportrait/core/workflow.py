"""Artwork workflow: generate, check out, reconcile, download.

:class:`ArtworkWorkflow` is the single place where the persistence handle,
object storage, generation service and checkout client meet.  Route handlers
authenticate, parse the request, and delegate here; every method either
returns a result or raises an :class:`~oilportrait.core.errors.OilPortraitError`.

Generation pipeline
-------------------
1. Validate the upload and the style.
2. Store the original portrait (public).
3. Ask the generation service for the painting.
4. Store the full-resolution painting (private).
5. Store the watermarked preview and a thumbnail (public).
6. Insert the record, unpurchased.

Any failure in steps 2-6 removes the objects already written and raises a
generic :class:`~oilportrait.core.errors.GenerationError`; no record exists
for a failed attempt.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Iterator
from dataclasses import dataclass

from .artwork_store import ArtworkStore
from .checkout import ARTWORK_LINE_ATTRIBUTE, CheckoutClientBase, CheckoutClientError
from .config import OilPortraitConfig
from .errors import (
    CheckoutError,
    ForbiddenError,
    GenerationError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .generation import GenerationRequest, GenerationServiceBase, GenerationServiceError
from .imaging import (
    SUPPORTED_FORMATS,
    apply_watermark,
    content_type_for_extension,
    encode_image,
    inspect_upload,
    make_thumbnail,
)
from .records import ArtworkRecord, PurchaseFilter, Tenant, new_record_id, utcnow
from .storage import ObjectStorage
from .styles import StylePreset, build_generation_prompt, normalize_details

logger = logging.getLogger(__name__)


@dataclass
class Download:
    """A purchased painting ready to be streamed."""

    filename: str
    content_type: str
    chunks: Iterator[bytes]


class ArtworkWorkflow:
    """Orchestrates every artwork operation over injected collaborators."""

    def __init__(
        self,
        config: OilPortraitConfig,
        store: ArtworkStore,
        storage: ObjectStorage,
        generation_service: GenerationServiceBase,
        checkout_client: CheckoutClientBase,
        styles: dict[str, StylePreset],
    ) -> None:
        self.config = config
        self.store = store
        self.storage = storage
        self.generation_service = generation_service
        self.checkout_client = checkout_client
        self.styles = styles

    # -- Reads ----------------------------------------------------------------

    def get_artwork(self, tenant: Tenant, record_id: str) -> ArtworkRecord:
        """Fetch a record of the tenant.

        Raises:
            NotFoundError: If the record is absent or belongs to another
                tenant (the two cases are indistinguishable to the caller).
        """
        record = self.store.get(tenant, record_id)
        if record is None:
            raise NotFoundError()
        return record

    def stats(self, tenant: Tenant) -> dict:
        """Counts for the admin dashboard."""
        total = self.store.count(tenant)
        purchased = self.store.count(tenant, PurchaseFilter.PURCHASED)
        return {
            "total": total,
            "purchased": purchased,
            "not_purchased": total - purchased,
            "style_counts": self.store.style_counts(tenant),
        }

    # -- Generation -----------------------------------------------------------

    def _resolve_style(self, style: str | None) -> StylePreset:
        if style is None or not style.strip():
            raise ValidationError("Missing required fields")
        preset = self.styles.get(style.strip())
        if preset is None:
            raise ValidationError(f"Unknown style: {style}")
        return preset

    async def generate(
        self,
        tenant: Tenant,
        image_data: bytes | None,
        style: str | None,
        details: str | None = None,
        filename: str | None = None,
    ) -> ArtworkRecord:
        """Run the generation pipeline for one portrait.

        Args:
            tenant: Owner of the new record (shop and user).
            image_data: Uploaded portrait bytes, or None if no file was sent.
            style: Selected style id.
            details: Optional customization details.
            filename: Client-side filename of the upload.

        Returns:
            The persisted, unpurchased record.

        Raises:
            ValidationError: Missing image or style, unknown style, oversize
                or unreadable upload.
            GenerationError: The generation service or storage failed.
        """
        if image_data is None:
            raise ValidationError("Missing required fields")
        preset = self._resolve_style(style)
        if tenant.user_id is None:
            raise ValueError("Artworks must be created for a user of the shop")
        if len(image_data) > self.config.max_upload_bytes:
            raise ValidationError(
                f"Image is larger than {self.config.max_upload_bytes // (1024 * 1024)} MB"
            )

        source = inspect_upload(image_data)
        details = normalize_details(details)
        prompt = build_generation_prompt(preset, details)
        record_id = new_record_id()
        started = time.perf_counter()

        written: list[tuple[str, bool]] = []

        def _put(key: str, data: bytes, content_type: str, *, public: bool) -> str:
            url = self.storage.put(key, data, content_type, public=public)
            written.append((key, public))
            return url

        try:
            original_url = _put(
                f"originals/{record_id}.{source.extension}",
                image_data,
                source.mime_type,
                public=True,
            )

            painting = await self.generation_service.generate(
                GenerationRequest(
                    style=preset,
                    prompt=prompt,
                    source=source,
                    source_url=original_url,
                    details=details,
                )
            )

            painting_format = (painting.format or "PNG").upper()
            if painting_format not in SUPPORTED_FORMATS:
                painting_format = "PNG"
            extension, mime_type = SUPPORTED_FORMATS[painting_format]
            generated_key = f"paintings/{record_id}.{extension}"
            _put(generated_key, encode_image(painting, painting_format), mime_type, public=False)

            preview = apply_watermark(
                painting,
                self.config.watermark_text,
                opacity=self.config.watermark_opacity,
                max_size=self.config.preview_max_size,
            )
            watermarked_url = _put(
                f"previews/{record_id}.jpg",
                encode_image(preview, "JPEG", quality=80),
                "image/jpeg",
                public=True,
            )

            thumbnail = make_thumbnail(preview, self.config.thumbnail_size)
            thumbnail_url = _put(
                f"thumbnails/{record_id}.jpg",
                encode_image(thumbnail, "JPEG", quality=80),
                "image/jpeg",
                public=True,
            )

            record = ArtworkRecord(
                id=record_id,
                user_id=tenant.user_id,
                shop_id=tenant.shop_id,
                product_id=preset.product_id,
                style=preset.id,
                customization_details=details,
                generation_prompt=prompt,
                original_key=f"originals/{record_id}.{source.extension}",
                original_url=original_url,
                original_filename=filename or f"portrait.{source.extension}",
                original_mime_type=source.mime_type,
                original_width=source.width,
                original_height=source.height,
                original_size=source.size,
                generated_key=generated_key,
                generated_width=painting.width,
                generated_height=painting.height,
                watermarked_url=watermarked_url,
                thumbnail_url=thumbnail_url,
                processing_time_ms=int((time.perf_counter() - started) * 1000),
                generation_date=utcnow(),
            )
            self.store.insert(record)

        except (GenerationServiceError, StorageError, sqlite3.Error, OSError, ValueError) as e:
            logger.exception("Generation failed for %s (style=%s)", record_id, preset.id)
            self._discard(written)
            raise GenerationError() from e

        return record

    def _discard(self, written: list[tuple[str, bool]]) -> None:
        """Best-effort removal of objects written by a failed generation."""
        for key, public in written:
            try:
                self.storage.delete(key, public=public)
            except (StorageError, OSError):
                logger.warning("Could not remove orphaned object %s", key)

    # -- Checkout -------------------------------------------------------------

    async def create_checkout(self, tenant: Tenant, record_id: str) -> str:
        """Create a checkout session for one of the tenant's artworks.

        No local state changes; the purchase is recorded by the webhook.

        Raises:
            NotFoundError: Record absent or foreign.
            ValidationError: Record already purchased.
            CheckoutError: The checkout session could not be created.
        """
        record = self.get_artwork(tenant, record_id)
        if record.is_purchased:
            raise ValidationError("Artwork is already purchased")

        preset = self.styles.get(record.style)
        if preset is None or not preset.variant_id:
            logger.error("Style '%s' has no product variant configured", record.style)
            raise CheckoutError()

        try:
            return await self.checkout_client.create_checkout(
                tenant.shop_id, preset.variant_id, record.id
            )
        except CheckoutClientError as e:
            logger.exception("Checkout creation failed for artwork %s", record.id)
            raise CheckoutError() from e

    # -- Webhook reconciliation -----------------------------------------------

    def reconcile_order_paid(self, shop_id: str, order: dict) -> list[ArtworkRecord]:
        """Mark the artworks bought by a paid order as purchased.

        Each line item is matched to at most one unpurchased record of the
        shop: the record named by its ``_artwork_id`` property when present,
        otherwise the oldest unpurchased record for its product.  Unmatched
        line items are skipped.  Replaying the same order changes nothing.

        Args:
            shop_id: Shop domain the webhook was delivered for.
            order: Parsed ``orders/paid`` payload.

        Returns:
            The records that changed state during this call.

        Raises:
            ValidationError: If the payload has no order id or line items.
        """
        if not isinstance(order, dict):
            raise ValidationError("Malformed order payload")
        order_id = order.get("id")
        line_items = order.get("line_items")
        if order_id is None or not isinstance(line_items, list):
            raise ValidationError("Malformed order payload")

        updated: list[ArtworkRecord] = []
        for index, item in enumerate(line_items):
            if not isinstance(item, dict):
                continue

            product_id = item.get("product_id")
            artwork_id = _line_property(item, ARTWORK_LINE_ATTRIBUTE)
            if product_id is None and artwork_id is None:
                logger.debug("Skipping line item %s of order %s: no product", index, order_id)
                continue

            record = self.store.mark_purchased(
                shop_id,
                str(order_id),
                str(item.get("id", index)),
                product_id=str(product_id) if product_id is not None else None,
                artwork_id=artwork_id,
            )
            if record is None:
                logger.debug(
                    "No unpurchased artwork for line item %s of order %s",
                    item.get("id", index),
                    order_id,
                )
                continue

            logger.info("Image %s marked as purchased (order %s)", record.id, order_id)
            updated.append(record)

        return updated

    # -- Download -------------------------------------------------------------

    def open_download(self, tenant: Tenant, record_id: str) -> Download:
        """Open the full-resolution painting of a purchased artwork.

        Raises:
            NotFoundError: Record absent or foreign.
            ForbiddenError: Record not purchased.
            StorageError: The stored painting cannot be read.
        """
        record = self.get_artwork(tenant, record_id)
        if not record.is_purchased:
            raise ForbiddenError()

        try:
            chunks = self.storage.stream(record.generated_key)
        except StorageError:
            logger.exception("Stored painting missing for artwork %s", record.id)
            raise

        extension = record.generated_extension
        return Download(
            filename=f"custom-painting-{record.id}.{extension}",
            content_type=content_type_for_extension(extension),
            chunks=chunks,
        )


def _line_property(item: dict, name: str) -> str | None:
    """Read a named property of an order line item (``[{name, value}]``)."""
    properties = item.get("properties") or []
    if not isinstance(properties, list):
        return None
    for prop in properties:
        if isinstance(prop, dict) and prop.get("name") == name and prop.get("value"):
            return str(prop["value"])
    return None
