"""Painting style presets and generation prompt compilation.

The style catalogue lives in a JSON file (``data/styles.json`` by default).
Each preset names the commerce product the style is sold as, so a generated
artwork can later be matched against the line items of a paid order.

Prompt Structure
----------------
The prompt sent to the generation service is composed of three parts::

    [Fixed: oil-on-canvas portrait boilerplate]

    [Style preset prompt]

    Customer details: [free-text customization details]

Sections are separated by double newlines.  Empty details are omitted.

Usage
-----
::

    presets = load_style_presets(config.styles_file)
    prompt = build_generation_prompt(presets["anime"], "wearing a red scarf")
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Fixed boilerplate.
# Constant rather than configuration: it keeps every style recognisably an
# oil painting of the uploaded person.
# ---------------------------------------------------------------------------

_PORTRAIT_BOILERPLATE = (
    "A hand-painted oil on canvas portrait of the person in the reference photo. "
    "Preserve their facial features, expression and pose. Visible brush texture, "
    "layered impasto highlights and a fine canvas weave."
)

# Longest details string passed on to the generation service.
MAX_DETAILS_LENGTH = 500


@dataclass(frozen=True)
class StylePreset:
    """One selectable painting style.

    Attributes:
        id: Style tag stored on records (e.g. ``"anime"``).
        label: Human-readable name.
        description: Short description for the generate form.
        prompt: Style-specific prompt fragment.
        product_id: Commerce product the style is sold as.
        variant_id: Product variant added to the checkout cart.
    """

    id: str
    label: str
    description: str
    prompt: str
    product_id: str | None = None
    variant_id: str | None = None

    def to_public_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "description": self.description}


def load_style_presets(path: Path) -> dict[str, StylePreset]:
    """Load the style catalogue from a JSON file.

    Unlike gallery metadata this file is configuration: a missing or broken
    catalogue is a deployment error and is raised rather than defaulted.

    Args:
        path: Path to the styles JSON file.

    Returns:
        Mapping of style id to preset, in file order.

    Raises:
        ValueError: If the file is malformed or a style id is duplicated.
    """
    with open(path, encoding="utf-8") as handle:
        data = json.load(handle)

    entries = data.get("styles") if isinstance(data, dict) else None
    if not isinstance(entries, list) or not entries:
        raise ValueError(f"{path} must contain a non-empty 'styles' list")

    presets: dict[str, StylePreset] = {}
    for entry in entries:
        try:
            preset = StylePreset(
                id=entry["id"],
                label=entry["label"],
                description=entry.get("description", ""),
                prompt=entry["prompt"],
                product_id=_optional_str(entry.get("product_id")),
                variant_id=_optional_str(entry.get("variant_id")),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid style entry in {path}: {entry!r}") from e

        if preset.id in presets:
            raise ValueError(f"Duplicate style id '{preset.id}' in {path}")
        presets[preset.id] = preset

    logger.info("Loaded %d style presets from %s", len(presets), path)
    return presets


def _optional_str(value) -> str | None:
    # Shopify ids are large integers; JSON may carry them either way.
    if value is None or value == "":
        return None
    return str(value)


def normalize_details(details: str | None) -> str | None:
    """Strip free-text details, returning None when nothing is left."""
    if details is None:
        return None
    stripped = details.strip()
    if not stripped:
        return None
    return stripped[:MAX_DETAILS_LENGTH]


def build_generation_prompt(preset: StylePreset, details: str | None = None) -> str:
    """Compile the prompt sent to the generation service.

    Args:
        preset: Selected style preset.
        details: Optional customer customization details (e.g. "smile,
            background of stars").  Blank details are omitted.

    Returns:
        The compiled prompt with sections separated by double newlines.
    """
    parts: list[str] = [_PORTRAIT_BOILERPLATE, preset.prompt.strip()]

    cleaned = normalize_details(details)
    if cleaned:
        parts.append(f"Customer details: {cleaned}")

    return "\n\n".join(parts)
