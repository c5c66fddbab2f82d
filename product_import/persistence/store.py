"""
Product Store
=============

Persistence boundary for imported products, plus the SQLite implementation.
"""

import asyncio
import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..models import ImageRecord, OptionRecord, PersistedProduct, VariantRecord


class ProductStore(ABC):
    """What the persistence gateway needs from a backing store."""

    @abstractmethod
    async def exists_by_url(
        self,
        canonical_url: str,
        offer_id: Optional[str] = None,
        marketplace: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Existing product row for this canonical URL, or for offer id within marketplace, else None."""
        pass

    @abstractmethod
    async def create_product(self, product: PersistedProduct) -> int:
        pass

    @abstractmethod
    async def create_images(self, product_id: int, images: List[ImageRecord]) -> None:
        pass

    @abstractmethod
    async def create_options(self, product_id: int, options: List[OptionRecord]) -> None:
        pass

    @abstractmethod
    async def create_variants(self, product_id: int, variants: List[VariantRecord]) -> None:
        pass

    @abstractmethod
    async def trigger_embedding(self, product_id: int) -> None:
        """Request embedding generation for a product. Best effort."""
        pass

    @abstractmethod
    async def delete_product(self, product_id: int) -> None:
        """Remove a partially written product and its children."""
        pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteProductStore(ProductStore):
    """
    ProductStore over a local SQLite file (schema.sql next to this module).

    Boundary operations run in a worker thread so the gateway's timeouts
    apply to them; one lock serializes access to the shared connection.
    """

    def __init__(self, db_path: str = "data/products.db"):
        """
        Args:
            db_path: Path to SQLite database file (':memory:' for tests)
        """
        self.db_path = db_path
        if db_path != ':memory:':
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.Lock()
        self._create_tables()

    def _create_tables(self):
        """Create tables if they don't exist"""
        schema_path = Path(__file__).parent / "schema.sql"

        with open(schema_path, 'r', encoding='utf-8') as f:
            schema_sql = f.read()

        self.conn.executescript(schema_sql)
        self.conn.commit()

    def close(self):
        with self._lock:
            self.conn.close()

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        def locked():
            with self._lock:
                return func(*args)
        return await asyncio.to_thread(locked)

    # =========================================================================
    # BOUNDARY OPERATIONS
    # =========================================================================

    async def exists_by_url(
        self,
        canonical_url: str,
        offer_id: Optional[str] = None,
        marketplace: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        return await self._run(self._exists_by_url, canonical_url, offer_id, marketplace)

    async def create_product(self, product: PersistedProduct) -> int:
        return await self._run(self._create_product, product)

    async def create_images(self, product_id: int, images: List[ImageRecord]) -> None:
        await self._run(self._create_images, product_id, images)

    async def create_options(self, product_id: int, options: List[OptionRecord]) -> None:
        await self._run(self._create_options, product_id, options)

    async def create_variants(self, product_id: int, variants: List[VariantRecord]) -> None:
        await self._run(self._create_variants, product_id, variants)

    async def trigger_embedding(self, product_id: int) -> None:
        await self._run(self._trigger_embedding, product_id)

    async def delete_product(self, product_id: int) -> None:
        await self._run(self._delete_product, product_id)

    # -- synchronous bodies --------------------------------------------

    def _exists_by_url(self, canonical_url, offer_id, marketplace):
        cursor = self.conn.cursor()
        columns = "id, name, canonical_url, offer_id, marketplace"
        cursor.execute(f"SELECT {columns} FROM products WHERE canonical_url = ?", (canonical_url,))
        row = cursor.fetchone()
        # Offer ids are only unique within one marketplace
        if row is None and offer_id and marketplace:
            cursor.execute(
                f"SELECT {columns} FROM products WHERE offer_id = ? AND marketplace = ?",
                (offer_id, marketplace),
            )
            row = cursor.fetchone()
        return dict(row) if row else None

    def _create_product(self, product: PersistedProduct) -> int:
        dims = product.dimensions
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO products (
                name, source_url, canonical_url, marketplace, offer_id, specs,
                base_price, final_price, domestic_fee, weight_kg,
                length_cm, width_cm, height_cm, shipping_method,
                main_image, is_restricted, reviews, ai_metadata, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            product.name,
            product.source_url,
            product.canonical_url,
            product.marketplace,
            product.offer_id,
            json.dumps(product.specs, ensure_ascii=False),
            product.base_price,
            product.final_price,
            product.domestic_fee,
            product.weight_kg,
            dims.length if dims else None,
            dims.width if dims else None,
            dims.height if dims else None,
            product.shipping_method.value,
            product.main_image,
            1 if product.is_restricted else 0,
            json.dumps([r.to_dict() for r in product.reviews], ensure_ascii=False),
            json.dumps(product.ai_metadata.to_dict(), ensure_ascii=False),
            _now(),
        ))
        self.conn.commit()
        return cursor.lastrowid

    def _create_images(self, product_id, images):
        self.conn.executemany(
            "INSERT INTO product_images (product_id, url, sort_order, type) VALUES (?, ?, ?, ?)",
            [(product_id, i.url, i.order, i.type.value) for i in images],
        )
        self.conn.commit()

    def _create_options(self, product_id, options):
        self.conn.executemany(
            "INSERT INTO product_options (product_id, name, option_values) VALUES (?, ?, ?)",
            [(product_id, o.name, json.dumps(o.values, ensure_ascii=False)) for o in options],
        )
        self.conn.commit()

    def _create_variants(self, product_id, variants):
        self.conn.executemany(
            "INSERT INTO product_variants (product_id, combination, price, base_price, image) VALUES (?, ?, ?, ?, ?)",
            [
                (product_id, json.dumps(v.combination, ensure_ascii=False), v.price, v.base_price, v.image)
                for v in variants
            ],
        )
        self.conn.commit()

    def _trigger_embedding(self, product_id):
        self.conn.execute(
            "INSERT INTO embedding_jobs (product_id, status, requested_at) VALUES (?, 'PENDING', ?)",
            (product_id, _now()),
        )
        self.conn.commit()

    def _delete_product(self, product_id):
        self.conn.execute("DELETE FROM products WHERE id = ?", (product_id,))
        self.conn.commit()

    # =========================================================================
    # READS
    # =========================================================================

    def count_products(self) -> int:
        with self._lock:
            return self.conn.execute("SELECT COUNT(*) FROM products").fetchone()[0]

    def get_product(self, product_id: int) -> Optional[Dict[str, Any]]:
        """Product row with decoded JSON columns and its child rows."""
        with self._lock:
            return self._get_product(product_id)

    def _get_product(self, product_id):
        row = self.conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
        if not row:
            return None

        product = dict(row)
        product['specs'] = json.loads(product['specs'])
        product['reviews'] = json.loads(product['reviews'])
        product['ai_metadata'] = json.loads(product['ai_metadata'])
        product['is_restricted'] = bool(product['is_restricted'])

        product['images'] = [
            dict(r) for r in self.conn.execute(
                "SELECT url, sort_order, type FROM product_images WHERE product_id = ? ORDER BY sort_order",
                (product_id,),
            )
        ]
        product['options'] = [
            {'name': r['name'], 'values': json.loads(r['option_values'])}
            for r in self.conn.execute(
                "SELECT name, option_values FROM product_options WHERE product_id = ? ORDER BY id", (product_id,))
        ]
        product['variants'] = [
            {'combination': json.loads(r['combination']), 'price': r['price'],
             'base_price': r['base_price'], 'image': r['image']}
            for r in self.conn.execute(
                "SELECT combination, price, base_price, image FROM product_variants WHERE product_id = ? ORDER BY id",
                (product_id,),
            )
        ]
        return product

    def pending_embedding_jobs(self) -> List[int]:
        with self._lock:
            rows = self.conn.execute("SELECT product_id FROM embedding_jobs WHERE status = 'PENDING' ORDER BY id").fetchall()
        return [r[0] for r in rows]
