"""Paginated listing helpers for the gallery and admin views.

Pagination runs in the database (``LIMIT``/``OFFSET``) against the same
tenant scope and filter used for the total count, so ``total`` and
``total_pages`` always describe the filtered listing the page was cut from.
"""

from __future__ import annotations

import math

from oilportrait.core.artwork_store import ArtworkStore
from oilportrait.core.records import PurchaseFilter, Tenant


def page_bounds(total: int, page: int, per_page: int) -> tuple[int, int]:
    """Clamp the requested page and compute the page count.

    Clamping matters when the client asks for a page past the end (for
    example after changing the filter): the last page is returned instead of
    an empty one.  An empty listing has zero pages and resolves to page 1.

    Args:
        total: Number of records matching the filter.
        page: Requested one-based page number.
        per_page: Fixed page size.

    Returns:
        Tuple of ``(resolved_page, total_pages)``.
    """
    total_pages = math.ceil(total / per_page) if total > 0 else 0
    resolved_page = min(max(page, 1), max(total_pages, 1))
    return resolved_page, total_pages


def list_artworks_page(
    store: ArtworkStore,
    tenant: Tenant,
    purchase_filter: PurchaseFilter,
    page: int,
    per_page: int,
) -> dict:
    """Read one page of a tenant's records, newest first.

    Args:
        store: Persistence handle.
        tenant: Scope of the listing.
        purchase_filter: Purchase-state filter.
        page: Requested one-based page number.
        per_page: Fixed page size.

    Returns:
        Dictionary containing ``images``, ``total``, ``page``, ``page_size``
        and ``total_pages``.
    """
    total = store.count(tenant, purchase_filter)
    resolved_page, total_pages = page_bounds(total, page, per_page)

    records = []
    if total:
        records = store.list_records(
            tenant,
            purchase_filter,
            limit=per_page,
            offset=(resolved_page - 1) * per_page,
        )

    return {
        "images": records,
        "total": total,
        "page": resolved_page,
        "page_size": per_page,
        "total_pages": total_pages,
    }
