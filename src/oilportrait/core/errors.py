"""Error taxonomy for Oil Portrait Studio.

Every error a request can end with is an :class:`OilPortraitError` carrying
the HTTP status it maps to and a message that is safe to show to the caller.
The API layer renders them as ``{"detail": message}``; anything else that
escapes a handler becomes a generic 500.
"""

from __future__ import annotations


class OilPortraitError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(OilPortraitError):
    """Missing or invalid principal, or a webhook with a bad signature."""

    status_code = 401
    default_message = "Unauthorized"


class ValidationError(OilPortraitError):
    """User-friendly validation error.

    The message is intended to be displayed directly to the user.
    """

    status_code = 400
    default_message = "Missing required fields"


class ForbiddenError(OilPortraitError):
    """The record exists and belongs to the caller, but is not purchased."""

    status_code = 403
    default_message = "Purchase required to download"


class NotFoundError(OilPortraitError):
    """The record is absent or belongs to another tenant."""

    status_code = 404
    default_message = "Image not found"


class UpstreamError(OilPortraitError):
    """An external collaborator (AI service, storage, checkout) failed."""

    status_code = 500
    default_message = "An upstream service failed"


class GenerationError(UpstreamError):
    default_message = "Failed to generate image"


class CheckoutError(UpstreamError):
    default_message = "Failed to create checkout"


class StorageError(UpstreamError):
    default_message = "Failed to access image storage"
