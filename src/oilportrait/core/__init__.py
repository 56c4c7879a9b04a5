"""Core functionality for Oil Portrait Studio.

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with OILPORTRAIT_ in .env files

2. **Persistence Layer** (records.py, artwork_store.py):
   - ``ArtworkRecord`` and the ``Tenant`` scope every read requires
   - SQLite store with an atomic purchase transition

3. **Collaborators** (storage.py, generation.py, checkout.py):
   - Object storage (local directory or S3)
   - Generation services behind a registry (local Pillow rendition or a
     remote AI endpoint)
   - Storefront checkout client

4. **Workflow** (workflow.py):
   - Generation, checkout, webhook reconciliation and download over the
     injected collaborators

5. **Support Utilities**:
   - styles.py: style presets and prompt compilation
   - imaging.py: upload inspection, watermark and thumbnails
   - errors.py: error taxonomy mapped onto HTTP statuses
"""

from oilportrait.core.artwork_store import ArtworkStore
from oilportrait.core.config import OilPortraitConfig, config
from oilportrait.core.generation import GenerationServiceBase, generation_registry
from oilportrait.core.records import ArtworkRecord, PurchaseFilter, Tenant
from oilportrait.core.workflow import ArtworkWorkflow

__all__ = [
    "ArtworkRecord",
    "ArtworkStore",
    "ArtworkWorkflow",
    "GenerationServiceBase",
    "OilPortraitConfig",
    "PurchaseFilter",
    "Tenant",
    "config",
    "generation_registry",
]
