"""
Persistence Tests
=================

PersistenceGateway over a real SQLiteProductStore in a temporary directory.
"""

import asyncio
import os
import tempfile
import time
import unittest

from product_import.errors import PersistenceError
from product_import.models import (
    DESCRIPTION_ORDER_OFFSET, ImageRecord, ImageType, ItemStatus, MarketingMetadata,
    OptionRecord, PersistedProduct, Review, VariantRecord,
)
from product_import.persistence import PersistenceGateway, SQLiteProductStore, canonical_url, marketplace_of

URL = 'https://mobile.yangkeduo.com/goods.html?goods_id=42&_oak_stage=3&refer_page_name=index#top'


def make_product(url=URL, offer_id='42') -> PersistedProduct:
    return PersistedProduct(
        name='تيشيرت قطني',
        source_url=url,
        canonical_url='',
        specs={'المادة': 'قطن'},
        base_price=29.9,
        final_price=9500,
        images=[
            ImageRecord('https://img.pddpic.com/g1.jpg', 0, ImageType.GALLERY),
            ImageRecord('https://img.pddpic.com/g2.jpg', 1, ImageType.GALLERY),
            ImageRecord('https://img.pddpic.com/d1.jpg', DESCRIPTION_ORDER_OFFSET, ImageType.DESCRIPTION),
        ],
        options=[OptionRecord('اللون', ['أسود'])],
        variants=[VariantRecord({'اللون': 'أسود'}, 9500, 29.9, 'https://img.pddpic.com/g1.jpg')],
        reviews=[Review(author='', text='جودة ممتازة')],
        ai_metadata=MarketingMetadata(synonyms=['قميص'], tags=['ملابس'], category_suggestion='ملابس'),
        offer_id=offer_id,
        weight_kg=0.3,
    )


class FailingEmbeddingStore(SQLiteProductStore):
    async def trigger_embedding(self, product_id):
        raise ConnectionError("embedding service unreachable")


class SlowEmbeddingStore(SQLiteProductStore):
    async def trigger_embedding(self, product_id):
        await asyncio.sleep(5)


class FailingVariantsStore(SQLiteProductStore):
    async def create_variants(self, product_id, variants):
        raise RuntimeError("disk I/O error")


class SlowLookupStore(SQLiteProductStore):
    def _exists_by_url(self, canonical_url, offer_id=None, marketplace=None):
        time.sleep(0.3)
        return super()._exists_by_url(canonical_url, offer_id, marketplace)


class PersistenceTestCase(unittest.IsolatedAsyncioTestCase):
    store_class = SQLiteProductStore

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmp.name, 'products.db')
        self.store = self.store_class(self.db_path)
        self.gateway = PersistenceGateway(self.store, timeout_s=5, embedding_timeout_s=0.05)

    def tearDown(self):
        self.store.close()
        self.tmp.cleanup()


class TestCanonicalUrl(unittest.TestCase):

    def test_tracking_params_and_fragment_dropped(self):
        self.assertEqual(canonical_url(URL), 'https://mobile.yangkeduo.com/goods.html?goods_id=42')
        self.assertEqual(
            canonical_url('HTTPS://Item.Taobao.com/item.htm?spm=a1z10&id=7&scm=1'),
            'https://item.taobao.com/item.htm?id=7',
        )
        self.assertEqual(canonical_url(canonical_url(URL)), canonical_url(URL))

    def test_marketplace_of(self):
        self.assertEqual(marketplace_of(URL), 'pinduoduo')
        self.assertEqual(marketplace_of('https://m.pinduoduo.com/goods2.html'), 'pinduoduo')
        self.assertEqual(marketplace_of('https://detail.tmall.com/item.htm?id=42'), 'taobao')
        self.assertEqual(marketplace_of('https://detail.1688.com/offer/42.html'), '1688')
        self.assertEqual(marketplace_of('https://shop.example.com/p/42'), 'shop.example.com')


class TestGateway(PersistenceTestCase):

    async def test_persist_writes_everything(self):
        status, product_id = await self.gateway.persist(make_product())
        await self.gateway.drain()

        self.assertEqual(status, ItemStatus.PERSISTED)
        row = self.store.get_product(product_id)
        self.assertEqual(row['name'], 'تيشيرت قطني')
        self.assertEqual(row['canonical_url'], 'https://mobile.yangkeduo.com/goods.html?goods_id=42')
        self.assertEqual(row['main_image'], 'https://img.pddpic.com/g1.jpg')
        self.assertEqual(row['specs'], {'المادة': 'قطن'})
        self.assertEqual(row['ai_metadata']['market_tags'], ['ملابس'])
        self.assertEqual(row['options'], [{'name': 'اللون', 'values': ['أسود']}])
        self.assertEqual(row['variants'][0]['price'], 9500)
        self.assertEqual(self.store.pending_embedding_jobs(), [product_id])

    async def test_image_order_gallery_then_description(self):
        _, product_id = await self.gateway.persist(make_product())
        images = self.store.get_product(product_id)['images']
        self.assertEqual([(i['sort_order'], i['type']) for i in images], [
            (0, 'GALLERY'), (1, 'GALLERY'), (DESCRIPTION_ORDER_OFFSET, 'DESCRIPTION'),
        ])

    async def test_second_run_is_a_duplicate(self):
        status1, id1 = await self.gateway.persist(make_product())
        other_tracking = 'https://mobile.yangkeduo.com/goods.html?refer_page_name=search&goods_id=42'
        status2, id2 = await self.gateway.persist(make_product(url=other_tracking))

        self.assertEqual(status1, ItemStatus.PERSISTED)
        self.assertEqual(status2, ItemStatus.DUPLICATE)
        self.assertEqual(id1, id2)
        self.assertEqual(self.store.count_products(), 1)

    async def test_duplicate_by_offer_id(self):
        await self.gateway.persist(make_product())
        status, _ = await self.gateway.persist(make_product(url='https://m.pinduoduo.com/goods2.html?x=1', offer_id='42'))
        self.assertEqual(status, ItemStatus.DUPLICATE)

    async def test_same_offer_id_on_another_marketplace_is_new(self):
        await self.gateway.persist(make_product())
        status, _ = await self.gateway.persist(make_product(url='https://item.taobao.com/item.htm?id=42', offer_id='42'))

        self.assertEqual(status, ItemStatus.PERSISTED)
        self.assertEqual(self.store.count_products(), 2)
        self.assertIsNone(await self.gateway.find_existing('https://detail.1688.com/offer/42.html', '42'))

    async def test_find_existing(self):
        self.assertIsNone(await self.gateway.find_existing(URL))
        _, product_id = await self.gateway.persist(make_product())
        self.assertEqual(await self.gateway.find_existing(URL), product_id)


class TestEmbeddingFailure(PersistenceTestCase):
    store_class = FailingEmbeddingStore

    async def test_failure_is_swallowed(self):
        with self.assertLogs('product_import.persist', level='WARNING') as logs:
            status, product_id = await self.gateway.persist(make_product())
            await self.gateway.drain()

        self.assertEqual(status, ItemStatus.PERSISTED)
        self.assertIsNotNone(self.store.get_product(product_id))
        self.assertTrue(any('embedding trigger failed' in line for line in logs.output))


class TestEmbeddingTimeout(PersistenceTestCase):
    store_class = SlowEmbeddingStore

    async def test_timeout_is_swallowed(self):
        status, product_id = await self.gateway.persist(make_product())
        await self.gateway.drain()
        self.assertEqual(status, ItemStatus.PERSISTED)
        self.assertEqual(self.store.count_products(), 1)


class TestStoreTimeout(PersistenceTestCase):
    store_class = SlowLookupStore

    async def test_blocking_lookup_times_out(self):
        gateway = PersistenceGateway(self.store, timeout_s=0.05, embedding_timeout_s=0.05)
        with self.assertRaises(PersistenceError) as ctx:
            await gateway.find_existing(URL)
        self.assertIn('timed out', str(ctx.exception))
        # Let the worker thread finish before the store is closed
        await asyncio.sleep(0.4)


class TestPartialWrite(PersistenceTestCase):
    store_class = FailingVariantsStore

    async def test_failed_child_write_removes_product(self):
        with self.assertRaises(PersistenceError):
            await self.gateway.persist(make_product())

        self.assertEqual(self.store.count_products(), 0)
        count = self.store.conn.execute("SELECT COUNT(*) FROM product_images").fetchone()[0]
        self.assertEqual(count, 0)


if __name__ == '__main__':
    unittest.main()
