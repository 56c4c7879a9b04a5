"""Oil Portrait Studio - AI oil-painting portraits sold through a Shopify storefront."""

__version__ = "0.3.0"

from oilportrait.core.config import OilPortraitConfig, config

__all__ = [
    "OilPortraitConfig",
    "config",
]
