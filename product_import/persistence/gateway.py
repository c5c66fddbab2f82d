"""
PersistenceGateway - deduplicates and writes one PersistedProduct.

Write order is product, images, options, variants. A failure after the
product row exists deletes it again so a later run can retry the item.
The embedding trigger runs in the background and never fails the write.
"""

import asyncio
from typing import Any, Awaitable, Optional, Set, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..errors import PersistenceError
from ..logger import get_component_logger
from ..models import ItemStatus, PersistedProduct
from .store import ProductStore

log = get_component_logger('persist')

# Query parameters that identify the item; everything else is tracking noise
IDENTITY_PARAMS = ('goods_id', 'id', 'itemId', 'item_id', 'offerId')

# Host suffix -> marketplace whose item ids share one namespace
MARKETPLACE_HOSTS = [
    ('pinduoduo', ('yangkeduo.com', 'pinduoduo.com')),
    ('taobao', ('taobao.com', 'tmall.com', 'tmall.hk')),
    ('1688', ('1688.com',)),
]


def canonical_url(url: str) -> str:
    """
    Stable form of a product URL for duplicate detection.

    Lowercases scheme and host, drops the fragment and keeps only the
    identifying query parameters in sorted order.
    """
    parts = urlsplit((url or '').strip())
    query = sorted((k, v) for k, v in parse_qsl(parts.query, keep_blank_values=False) if k in IDENTITY_PARAMS)
    path = parts.path.rstrip('/') or '/'
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, urlencode(query), ''))


def marketplace_of(url: str) -> str:
    """Marketplace key of a product URL; unknown hosts are their own marketplace."""
    host = (urlsplit((url or '').strip()).hostname or '').lower()
    for name, suffixes in MARKETPLACE_HOSTS:
        if any(host == s or host.endswith('.' + s) for s in suffixes):
            return name
    return host


class PersistenceGateway:
    """
    Args:
        store: ProductStore backend
        timeout_s: Limit for each store call
        embedding_timeout_s: Limit for the background embedding trigger
    """

    def __init__(self, store: ProductStore, timeout_s: float = 30.0, embedding_timeout_s: float = 10.0):
        self.store = store
        self.timeout_s = timeout_s
        self.embedding_timeout_s = embedding_timeout_s
        self._background: Set[asyncio.Task] = set()

    async def _call(self, what: str, call: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_s)
        except asyncio.TimeoutError:
            raise PersistenceError(f"{what} timed out after {self.timeout_s}s")
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"{what} failed: {e}") from e

    async def find_existing(self, url: str, offer_id: Optional[str] = None) -> Optional[int]:
        """Id of an already persisted product for this URL, or this offer id on the same marketplace."""
        record = await self._call(
            'existence check',
            self.store.exists_by_url(canonical_url(url), offer_id, marketplace_of(url)),
        )
        if record:
            return record.get('id')
        return None

    async def persist(self, product: PersistedProduct) -> Tuple[ItemStatus, Optional[int]]:
        """
        Write a product and its children once.

        Returns:
            (PERSISTED, new id) or (DUPLICATE, existing id)

        Raises:
            PersistenceError: a write failed; nothing is left behind
        """
        product.canonical_url = product.canonical_url or canonical_url(product.source_url)
        product.marketplace = product.marketplace or marketplace_of(product.source_url)

        existing = await self.find_existing(product.canonical_url, product.offer_id)
        if existing is not None:
            log.info(f"duplicate of product {existing}: {product.source_url}")
            return ItemStatus.DUPLICATE, existing

        product_id = await self._call('create product', self.store.create_product(product))
        try:
            if product.images:
                await self._call('create images', self.store.create_images(product_id, product.images))
            if product.options:
                await self._call('create options', self.store.create_options(product_id, product.options))
            if product.variants:
                await self._call('create variants', self.store.create_variants(product_id, product.variants))
        except PersistenceError as e:
            log.warning(f"rolling back product {product_id} ({product.source_url}): {e}")
            try:
                await self._call('delete product', self.store.delete_product(product_id))
            except PersistenceError as cleanup_error:
                log.error(f"could not remove partial product {product_id}: {cleanup_error}")
            raise

        product.id = product_id
        log.info(
            f"persisted product {product_id}: {len(product.images)} images, "
            f"{len(product.options)} options, {len(product.variants)} variants"
        )
        self._schedule_embedding(product_id)
        return ItemStatus.PERSISTED, product_id

    # -- embedding side effect -----------------------------------------

    def _schedule_embedding(self, product_id: int):
        task = asyncio.ensure_future(self._trigger_embedding(product_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _trigger_embedding(self, product_id: int):
        try:
            await asyncio.wait_for(self.store.trigger_embedding(product_id), timeout=self.embedding_timeout_s)
            log.debug(f"embedding requested for product {product_id}")
        except asyncio.CancelledError:
            log.warning(f"embedding trigger for product {product_id} cancelled")
        except Exception as e:
            log.warning(f"embedding trigger failed for product {product_id}: {e!r}")

    async def drain(self):
        """Wait for pending embedding triggers (used at shutdown and in tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
