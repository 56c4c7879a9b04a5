"""SQLite persistence for artwork records.

Every read takes a :class:`~oilportrait.core.records.Tenant`; there is no way
to list or fetch a record without naming the shop it belongs to.  The only
mutation after creation is :meth:`ArtworkStore.mark_purchased`, a
compare-and-set UPDATE that moves ``is_purchased`` from 0 to 1 at most once
per order line.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from .records import ArtworkRecord, PurchaseFilter, Tenant, utcnow

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "user_id",
    "shop_id",
    "product_id",
    "style",
    "customization_details",
    "generation_prompt",
    "original_key",
    "original_url",
    "original_filename",
    "original_mime_type",
    "original_width",
    "original_height",
    "original_size",
    "generated_key",
    "generated_width",
    "generated_height",
    "watermarked_url",
    "thumbnail_url",
    "processing_time_ms",
    "is_purchased",
    "order_id",
    "order_line_item_id",
    "purchased_at",
    "created_at",
    "generation_date",
)

_DATETIME_COLUMNS = {"purchased_at", "created_at", "generation_date"}


class ArtworkStore:
    """Manage artwork records using SQLite.

    A short-lived connection is opened for every operation, so one store
    instance can be shared by all requests of the application.
    """

    def __init__(self, db_path: Path):
        """Initialize the artwork database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()
        logger.info(f"Initialized artwork database at {self.db_path}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, roll back on error, always close."""
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_db(self) -> None:
        """Create database schema if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS artworks (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    shop_id TEXT NOT NULL,
                    product_id TEXT,
                    style TEXT NOT NULL,
                    customization_details TEXT,
                    generation_prompt TEXT NOT NULL DEFAULT '',
                    original_key TEXT NOT NULL,
                    original_url TEXT NOT NULL,
                    original_filename TEXT NOT NULL,
                    original_mime_type TEXT NOT NULL,
                    original_width INTEGER NOT NULL,
                    original_height INTEGER NOT NULL,
                    original_size INTEGER NOT NULL,
                    generated_key TEXT NOT NULL,
                    generated_width INTEGER NOT NULL,
                    generated_height INTEGER NOT NULL,
                    watermarked_url TEXT NOT NULL,
                    thumbnail_url TEXT NOT NULL,
                    processing_time_ms INTEGER NOT NULL DEFAULT 0,
                    is_purchased INTEGER NOT NULL DEFAULT 0,
                    order_id TEXT,
                    order_line_item_id TEXT,
                    purchased_at TEXT,
                    created_at TEXT NOT NULL,
                    generation_date TEXT
                )
                """)

            # Listing: tenant + newest first
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_artworks_tenant_created
                ON artworks(shop_id, user_id, created_at DESC)
                """)

            # Webhook matching: oldest unpurchased record for a product
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_artworks_product_unpurchased
                ON artworks(shop_id, product_id, is_purchased, created_at)
                """)

            # One record per paid order line
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_artworks_order_line
                ON artworks(shop_id, order_id, order_line_item_id)
                WHERE order_line_item_id IS NOT NULL
                """)

    # -- Row mapping --------------------------------------------------------

    @staticmethod
    def _to_row(record: ArtworkRecord) -> tuple:
        values = []
        for column in _COLUMNS:
            value = getattr(record, column)
            if column in _DATETIME_COLUMNS and value is not None:
                value = value.isoformat(timespec="microseconds")
            elif column == "is_purchased":
                value = int(value)
            values.append(value)
        return tuple(values)

    @staticmethod
    def _from_row(row: sqlite3.Row) -> ArtworkRecord:
        data = {column: row[column] for column in _COLUMNS}
        for column in _DATETIME_COLUMNS:
            if data[column] is not None:
                data[column] = datetime.fromisoformat(data[column])
        data["is_purchased"] = bool(data["is_purchased"])
        return ArtworkRecord(**data)

    @staticmethod
    def _tenant_clause(tenant: Tenant, purchase_filter: PurchaseFilter) -> tuple[str, list]:
        """Build the WHERE clause shared by every tenant-scoped read."""
        clauses = ["shop_id = ?"]
        params: list = [tenant.shop_id]
        if tenant.user_id is not None:
            clauses.append("user_id = ?")
            params.append(tenant.user_id)
        if purchase_filter is PurchaseFilter.PURCHASED:
            clauses.append("is_purchased = 1")
        elif purchase_filter is PurchaseFilter.NOT_PURCHASED:
            clauses.append("is_purchased = 0")
        return " AND ".join(clauses), params

    # -- Writes -------------------------------------------------------------

    def insert(self, record: ArtworkRecord) -> ArtworkRecord:
        """Persist a newly generated record.

        Args:
            record: Record to store; must not be purchased yet

        Returns:
            The stored record
        """
        if record.is_purchased:
            raise ValueError("New artwork records must start unpurchased")

        placeholders = ", ".join("?" for _ in _COLUMNS)
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO artworks ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                self._to_row(record),
            )
        logger.info(
            "Stored artwork %s (shop=%s, user=%s, style=%s)",
            record.id,
            record.shop_id,
            record.user_id,
            record.style,
        )
        return record

    def mark_purchased(
        self,
        shop_id: str,
        order_id: str,
        line_item_id: str,
        *,
        product_id: str | None = None,
        artwork_id: str | None = None,
    ) -> ArtworkRecord | None:
        """Flip one matching unpurchased record of a shop to purchased.

        The record is chosen by ``artwork_id`` when given, otherwise it is the
        oldest unpurchased record of the shop for ``product_id``.  The UPDATE
        only applies while the record is still unpurchased and no record of
        the shop already carries ``(order_id, line_item_id)``, so replaying
        the same order line is a no-op.

        Args:
            shop_id: Shop the paid order belongs to
            order_id: Commerce order id
            line_item_id: Order line item id
            product_id: Product id of the line item
            artwork_id: Exact record id attached to the line item at checkout

        Returns:
            The updated record, or None if nothing matched or the line was
            already applied
        """
        if artwork_id is None and product_id is None:
            return None

        purchased_at = utcnow().isoformat(timespec="microseconds")

        with self._connect() as conn:
            while True:
                if artwork_id is not None:
                    candidate = conn.execute(
                        """
                        SELECT id FROM artworks
                        WHERE shop_id = ? AND id = ? AND is_purchased = 0
                        """,
                        (shop_id, artwork_id),
                    ).fetchone()
                else:
                    candidate = conn.execute(
                        """
                        SELECT id FROM artworks
                        WHERE shop_id = ? AND product_id = ? AND is_purchased = 0
                        ORDER BY created_at ASC, rowid ASC
                        LIMIT 1
                        """,
                        (shop_id, product_id),
                    ).fetchone()

                if candidate is None:
                    return None

                try:
                    cursor = conn.execute(
                        """
                        UPDATE artworks
                        SET is_purchased = 1, order_id = ?, order_line_item_id = ?,
                            purchased_at = ?
                        WHERE id = ? AND is_purchased = 0
                          AND NOT EXISTS (
                              SELECT 1 FROM artworks
                              WHERE shop_id = ? AND order_id = ? AND order_line_item_id = ?
                          )
                        """,
                        (
                            order_id,
                            line_item_id,
                            purchased_at,
                            candidate["id"],
                            shop_id,
                            order_id,
                            line_item_id,
                        ),
                    )
                except sqlite3.IntegrityError:
                    logger.debug(f"Order line {order_id}/{line_item_id} already applied")
                    return None

                if cursor.rowcount > 0:
                    row = conn.execute(
                        "SELECT * FROM artworks WHERE id = ?", (candidate["id"],)
                    ).fetchone()
                    return self._from_row(row)

                already_applied = conn.execute(
                    """
                    SELECT 1 FROM artworks
                    WHERE shop_id = ? AND order_id = ? AND order_line_item_id = ?
                    LIMIT 1
                    """,
                    (shop_id, order_id, line_item_id),
                ).fetchone()
                if already_applied or artwork_id is not None:
                    return None
                # Candidate was purchased by a concurrent delivery; try the next one.

    # -- Tenant-scoped reads ------------------------------------------------

    def get(self, tenant: Tenant, record_id: str) -> ArtworkRecord | None:
        """Fetch one record of the tenant.

        Returns:
            The record, or None if it does not exist within the tenant
        """
        where, params = self._tenant_clause(tenant, PurchaseFilter.ALL)
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM artworks WHERE id = ? AND {where}",
                [record_id, *params],
            ).fetchone()
        return self._from_row(row) if row else None

    def list_records(
        self,
        tenant: Tenant,
        purchase_filter: PurchaseFilter = PurchaseFilter.ALL,
        *,
        limit: int,
        offset: int = 0,
    ) -> list[ArtworkRecord]:
        """List the tenant's records, newest first."""
        where, params = self._tenant_clause(tenant, purchase_filter)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM artworks WHERE {where}
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()
        return [self._from_row(row) for row in rows]

    def count(self, tenant: Tenant, purchase_filter: PurchaseFilter = PurchaseFilter.ALL) -> int:
        """Count the tenant's records matching the filter."""
        where, params = self._tenant_clause(tenant, purchase_filter)
        with self._connect() as conn:
            result = conn.execute(f"SELECT COUNT(*) FROM artworks WHERE {where}", params).fetchone()
        return result[0] if result else 0

    def style_counts(self, tenant: Tenant) -> dict[str, int]:
        """Count the tenant's records per style."""
        where, params = self._tenant_clause(tenant, PurchaseFilter.ALL)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT style, COUNT(*) AS n FROM artworks WHERE {where} GROUP BY style",
                params,
            ).fetchall()
        return {row["style"]: row["n"] for row in rows}
