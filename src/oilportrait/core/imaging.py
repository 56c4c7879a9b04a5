"""Image inspection, watermarking and encoding helpers."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from .errors import ValidationError

logger = logging.getLogger(__name__)

# Pillow format name -> (file extension, MIME type)
SUPPORTED_FORMATS: dict[str, tuple[str, str]] = {
    "JPEG": ("jpg", "image/jpeg"),
    "PNG": ("png", "image/png"),
    "WEBP": ("webp", "image/webp"),
}

_EXTENSION_CONTENT_TYPES = {ext: mime for ext, mime in SUPPORTED_FORMATS.values()}
_EXTENSION_CONTENT_TYPES["jpeg"] = "image/jpeg"


@dataclass
class SourceImage:
    """A decoded portrait upload."""

    image: Image.Image
    format: str
    mime_type: str
    extension: str
    width: int
    height: int
    size: int


def inspect_upload(data: bytes) -> SourceImage:
    """Decode an uploaded portrait and describe it.

    EXIF orientation is applied so that phone photos are upright before they
    are sent for generation.

    Args:
        data: Raw upload bytes.

    Returns:
        The decoded image with its format, MIME type and dimensions.

    Raises:
        ValidationError: If the bytes are empty, not an image, or in a format
            other than JPEG, PNG or WebP.
    """
    if not data:
        raise ValidationError("Uploaded image is empty")

    try:
        with Image.open(io.BytesIO(data)) as probe:
            probe.verify()
        image = Image.open(io.BytesIO(data))
        image.load()
    except Image.DecompressionBombError as e:
        raise ValidationError("Uploaded image has too many pixels") from e
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationError("Uploaded file is not a readable image") from e

    image_format = (image.format or "").upper()
    if image_format not in SUPPORTED_FORMATS:
        raise ValidationError(f"Unsupported image format: {image.format or 'unknown'}")

    extension, mime_type = SUPPORTED_FORMATS[image_format]
    upright = ImageOps.exif_transpose(image)
    upright.format = image_format

    return SourceImage(
        image=upright,
        format=image_format,
        mime_type=mime_type,
        extension=extension,
        width=upright.width,
        height=upright.height,
        size=len(data),
    )


def content_type_for_extension(extension: str) -> str:
    """Map a file extension to its image MIME type (``jpg`` -> ``image/jpeg``)."""
    ext = extension.lower().lstrip(".")
    return _EXTENSION_CONTENT_TYPES.get(ext, f"image/{ext}")


def format_for_extension(extension: str) -> str:
    ext = extension.lower().lstrip(".")
    for image_format, (known_ext, _) in SUPPORTED_FORMATS.items():
        if ext == known_ext or (ext == "jpeg" and image_format == "JPEG"):
            return image_format
    return "PNG"


def encode_image(image: Image.Image, image_format: str, *, quality: int = 92) -> bytes:
    """Serialise an image to bytes.

    JPEG has no alpha channel, so RGBA and palette images are flattened to
    RGB first.
    """
    buffer = io.BytesIO()
    if image_format == "JPEG":
        if image.mode != "RGB":
            image = image.convert("RGB")
        image.save(buffer, format="JPEG", quality=quality)
    else:
        image.save(buffer, format=image_format)
    return buffer.getvalue()


def _load_font(size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.truetype("DejaVuSans-Bold.ttf", size)
    except OSError:
        return ImageFont.load_default(size=size)


def apply_watermark(
    image: Image.Image,
    text: str = "PREVIEW",
    *,
    opacity: int = 96,
    max_size: int = 1024,
) -> Image.Image:
    """Produce the degraded preview shown before purchase.

    The painting is downscaled to fit ``max_size`` and the watermark text is
    tiled across the whole canvas in staggered rows, so cropping cannot
    recover a clean region.

    Args:
        image: Full-resolution painting.
        text: Watermark text.
        opacity: Alpha of the text (0-255).
        max_size: Longest edge of the preview in pixels.

    Returns:
        A new RGB image.
    """
    preview = image.convert("RGBA")
    preview.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
    w, h = preview.size

    overlay = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)

    font_size = max(14, int(min(w, h) * 0.07))
    font = _load_font(font_size)
    bbox = draw.textbbox((0, 0), text, font=font)
    tw = max(1, bbox[2] - bbox[0])
    th = max(1, bbox[3] - bbox[1])

    step_x = tw + font_size * 2
    step_y = th + font_size * 2
    for row, y in enumerate(range(-th, h + th, step_y)):
        offset = (step_x // 2) if row % 2 else 0
        for x in range(-tw + offset, w + tw, step_x):
            # Dark shadow first so the mark stays visible on light paint.
            draw.text((x + 2, y + 2), text, font=font, fill=(0, 0, 0, opacity // 2))
            draw.text((x, y), text, font=font, fill=(255, 255, 255, opacity))

    return Image.alpha_composite(preview, overlay).convert("RGB")


def make_thumbnail(image: Image.Image, size: int = 256) -> Image.Image:
    """Return an RGB copy of the image that fits in ``size`` x ``size``."""
    thumb = image.convert("RGB")
    thumb.thumbnail((size, size), Image.Resampling.LANCZOS)
    return thumb
