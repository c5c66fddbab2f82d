"""
Pipeline Tests
==============

End-to-end runs of ItemPipeline.process() with a scripted page, a scripted
chat model and a real SQLite store.

Run:
    python -m unittest product_import.tests.test_pipeline
"""

import json
import os
import tempfile
import unittest

from product_import.config import PipelineConfig
from product_import.enrichment import TranslationClient
from product_import.extraction.scripts import (
    BASIC_SNAPSHOT_JS, DESCRIPTION_SNAPSHOT_JS, OPTIONS_SNAPSHOT_JS, REVIEWS_SNAPSHOT_JS,
)
from product_import.models import COLOR_OPTION_NAME, SIZE_OPTION_NAME, ItemStatus, RawProductCapture
from product_import.page_driver import (
    CLOSE_OVERLAY_JS, DESCRIPTION_VISIBLE_JS, FIND_BUY_BUTTON_JS, FIND_REVIEWS_BUTTON_JS,
    OPTIONS_OPEN_JS, OVERLAY_CLOSED_JS, PRODUCT_MARKER_JS, REVIEWS_OPEN_JS, NoDelay, SessionContext,
)
from product_import.persistence import PersistenceGateway, SQLiteProductStore
from product_import.pipeline import ItemPipeline, build_images, infer_dimensions, infer_weight_kg, option_labels

from .fakes import FakeTab, RecordingSleep, ScriptedChatClient

URL = 'https://mobile.yangkeduo.com/goods.html?goods_id=42&refer_page_name=index'

ENRICHMENT_REPLY = json.dumps({
    "product_name_ar": "تيشيرت قطني قصير الأكمام",
    "is_edible": False,
    "product_details_ar": {"المادة": "قطن"},
    "aiMetadata": {"synonyms": ["قميص قطني"], "market_tags": ["ملابس"], "category_suggestion": "ملابس > رجالي"},
}, ensure_ascii=False)

LABELS_AR = {'黑色': 'أسود', '白色': 'أبيض'}


def page_scripts(**overrides):
    scripts = {
        FIND_BUY_BUTTON_JS: {'x': 300, 'y': 800},
        OPTIONS_OPEN_JS: True,
        CLOSE_OVERLAY_JS: {'x': 370, 'y': 300},
        OVERLAY_CLOSED_JS: True,
        FIND_REVIEWS_BUTTON_JS: {'x': 200, 'y': 500},
        REVIEWS_OPEN_JS: True,
        PRODUCT_MARKER_JS: True,
        DESCRIPTION_VISIBLE_JS: True,
        BASIC_SNAPSHOT_JS: {
            'title': '纯棉短袖T恤 男',
            'priceText': '¥29.9',
            'galleryImages': ['//img.pddpic.com/g1.jpg', '//img.pddpic.com/g2.jpg'],
            'detailPairs': [['材质', '棉'], ['重量', '300g']],
        },
        OPTIONS_SNAPSHOT_JS: {'overlay': {
            'axes': [{'name': '颜色'}, {'name': '尺码'}],
            'entries': [
                {'values': ['黑色', 'M'], 'price': '¥29.9'},
                {'values': ['黑色', 'L'], 'price': '¥35'},
                {'values': ['白色', 'M'], 'price': '¥199'},
            ],
            'images': {'黑色': '//img.pddpic.com/sku/black.jpg'},
        }},
        REVIEWS_SNAPSHOT_JS: {'structured': [
            {'name': '张**', 'content': '质量很好，很舒服', 'meta': '黑色 M'},
            {'name': '李**', 'content': '物流很快'},
        ]},
        DESCRIPTION_SNAPSHOT_JS: {'container': ['//img.pddpic.com/g1.jpg', '//img.pddpic.com/d1.jpg']},
    }
    scripts.update(overrides)
    return scripts


def respond(model, prompt):
    if 'product data enrichment' in prompt:
        return ENRICHMENT_REPLY
    if 'option names' in prompt:
        labels = json.loads(prompt.rsplit('Input: ', 1)[1])
        return json.dumps({label: LABELS_AR.get(label, label) for label in labels}, ensure_ascii=False)
    if 'review comments' in prompt:
        return '[{"c": "جودة ممتازة ومريح"}, {"c": "شحن سريع"}]'
    raise AssertionError(f"unexpected prompt: {prompt[:60]}")


class PipelineTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.config = PipelineConfig(
            database_path=os.path.join(self.tmp.name, 'products.db'),
            min_delay_ms=0,
            max_delay_ms=0,
            transition_attempts=2,
            embedding_timeout_s=1,
        )
        self.store = SQLiteProductStore(self.config.database_path)
        self.gateway = PersistenceGateway(self.store, 5, self.config.embedding_timeout_s)

    def tearDown(self):
        self.store.close()
        self.tmp.cleanup()

    def make_pipeline(self, tab=None, chat=None, config=None):
        self.tab = tab or FakeTab(page_scripts())
        self.chat = chat or ScriptedChatClient(responder=respond)
        config = config or self.config
        translator = TranslationClient(self.chat, config, sleep=RecordingSleep())
        return ItemPipeline(self.tab, translator, self.gateway, config, delay=NoDelay())


class TestProcess(PipelineTestCase):

    async def test_persists_full_item(self):
        pipeline = self.make_pipeline()
        result = await pipeline.process(URL)
        await self.gateway.drain()

        self.assertEqual(result.status, ItemStatus.PERSISTED, result.reason)
        row = self.store.get_product(result.product_id)

        self.assertEqual(row['name'], 'تيشيرت قطني قصير الأكمام')
        self.assertEqual(row['canonical_url'], 'https://mobile.yangkeduo.com/goods.html?goods_id=42')
        self.assertEqual(row['offer_id'], '42')
        self.assertFalse(row['is_restricted'])

        # 0.3 kg by air: (29.9 + 4620) * 1.2 = 5579.88 -> 5750
        self.assertEqual(row['shipping_method'], 'AIR')
        self.assertAlmostEqual(row['weight_kg'], 0.3)
        self.assertEqual(row['final_price'], 5750)

        self.assertEqual([(i['url'], i['sort_order'], i['type']) for i in row['images']], [
            ('https://img.pddpic.com/g1.jpg', 0, 'GALLERY'),
            ('https://img.pddpic.com/g2.jpg', 1, 'GALLERY'),
            ('https://img.pddpic.com/d1.jpg', 100, 'DESCRIPTION'),
        ])
        self.assertEqual(row['options'], [
            {'name': COLOR_OPTION_NAME, 'values': ['أسود', 'أبيض']},
            {'name': SIZE_OPTION_NAME, 'values': ['M', 'L']},
        ])
        self.assertEqual([(v['combination'], v['price']) for v in row['variants']], [
            ({COLOR_OPTION_NAME: 'أسود', SIZE_OPTION_NAME: 'M'}, 5750),
            ({COLOR_OPTION_NAME: 'أسود', SIZE_OPTION_NAME: 'L'}, 5750),
            ({COLOR_OPTION_NAME: 'أبيض', SIZE_OPTION_NAME: 'M'}, 6000),
        ])
        self.assertEqual(row['variants'][0]['image'], 'https://img.pddpic.com/sku/black.jpg')
        self.assertEqual(row['variants'][2]['image'], 'https://img.pddpic.com/g1.jpg')
        self.assertEqual([r['text'] for r in row['reviews']], ['جودة ممتازة ومريح', 'شحن سريع'])
        self.assertEqual(self.store.pending_embedding_jobs(), [result.product_id])

    async def test_second_run_is_duplicate_without_loading(self):
        first = await self.make_pipeline().process(URL)
        pipeline = self.make_pipeline()
        second = await pipeline.process(URL + '&_x_share=1')

        self.assertEqual(second.status, ItemStatus.DUPLICATE)
        self.assertEqual(second.product_id, first.product_id)
        self.assertEqual(self.tab.committed_urls(), [])
        self.assertEqual(self.chat.calls, [])
        self.assertEqual(self.store.count_products(), 1)

    async def test_translation_failure_is_never_persisted(self):
        chat = ScriptedChatClient(responder=lambda model, prompt: '{"product_name_ar": "اسم غير متوفر"}')
        result = await self.make_pipeline(chat=chat).process(URL)

        self.assertEqual(result.status, ItemStatus.SKIPPED)
        self.assertIn('translation failed', result.reason)
        self.assertEqual(self.store.count_products(), 0)

    async def test_missing_price_skips(self):
        basic = dict(page_scripts()[BASIC_SNAPSHOT_JS], priceText='')
        tab = FakeTab(page_scripts(**{BASIC_SNAPSHOT_JS: basic}))
        result = await self.make_pipeline(tab=tab).process(URL)

        self.assertEqual(result.status, ItemStatus.SKIPPED)
        self.assertIn('no price', result.reason)
        self.assertEqual(self.chat.calls, [])

    async def test_zero_price_skips(self):
        basic = dict(page_scripts()[BASIC_SNAPSHOT_JS], priceText='¥0')
        tab = FakeTab(page_scripts(**{BASIC_SNAPSHOT_JS: basic}))
        result = await self.make_pipeline(tab=tab).process(URL)
        self.assertEqual(result.status, ItemStatus.SKIPPED)
        self.assertEqual(self.store.count_products(), 0)

    async def test_page_load_failure_skips(self):
        result = await self.make_pipeline(tab=FakeTab(fail_navigation=True)).process(URL)
        self.assertEqual(result.status, ItemStatus.SKIPPED)
        self.assertIn('page failed to load', result.reason)

    async def test_options_overlay_never_opens(self):
        tab = FakeTab(page_scripts(**{OPTIONS_OPEN_JS: False, OPTIONS_SNAPSHOT_JS: {}}))
        result = await self.make_pipeline(tab=tab).process(URL)

        self.assertEqual(result.status, ItemStatus.PERSISTED)
        row = self.store.get_product(result.product_id)
        self.assertEqual(row['options'], [])
        self.assertEqual(row['variants'], [])

    async def test_restricted_item_is_flagged(self):
        basic = dict(page_scripts()[BASIC_SNAPSHOT_JS], title='进口零食大礼包')
        tab = FakeTab(page_scripts(**{BASIC_SNAPSHOT_JS: basic}))
        result = await self.make_pipeline(tab=tab).process(URL)

        self.assertEqual(result.status, ItemStatus.PERSISTED)
        self.assertTrue(self.store.get_product(result.product_id)['is_restricted'])

    async def test_restricted_item_skipped_when_configured(self):
        config = PipelineConfig(
            database_path=self.config.database_path, min_delay_ms=0, max_delay_ms=0, skip_restricted=True,
        )
        basic = dict(page_scripts()[BASIC_SNAPSHOT_JS], title='进口零食大礼包')
        tab = FakeTab(page_scripts(**{BASIC_SNAPSHOT_JS: basic}))
        result = await self.make_pipeline(tab=tab, config=config).process(URL)

        self.assertEqual(result.status, ItemStatus.SKIPPED)
        self.assertEqual(self.store.count_products(), 0)

    async def test_intercepted_skus_do_not_leak_into_next_item(self):
        mtop_url = 'https://h5api.m.taobao.com/h5/mtop.taobao.detail.getdetail/6.0/'
        body = 'mtopjsonp1(' + json.dumps({'data': {
            'apiStack': [{'value': json.dumps({'skuCore': {'sku2info': {'1001': {'price': {'priceText': '29.9'}}}}})}],
            'skuBase': {
                'props': [
                    {'pid': '1627207', 'values': [{'vid': '11', 'name': '黑色'}]},
                    {'pid': '20509', 'values': [{'vid': '21', 'name': 'M'}]},
                ],
                'skus': [{'skuId': '1001', 'propPath': '1627207:11;20509:21'}],
            },
        }}, ensure_ascii=False) + ')'
        second_url = 'https://mobile.yangkeduo.com/goods.html?goods_id=43'
        tab = FakeTab(page_scripts(**{OPTIONS_SNAPSHOT_JS: {}}), page_responses={URL: [(mtop_url, body)]})
        pipeline = self.make_pipeline(tab=tab)

        first = await pipeline.process(URL)
        second = await pipeline.process(second_url)

        self.assertEqual(first.status, ItemStatus.PERSISTED, first.reason)
        self.assertEqual(second.status, ItemStatus.PERSISTED, second.reason)
        self.assertEqual([v['combination'] for v in self.store.get_product(first.product_id)['variants']], [
            {COLOR_OPTION_NAME: 'أسود', SIZE_OPTION_NAME: 'M'},
        ])
        row = self.store.get_product(second.product_id)
        self.assertEqual(row['options'], [])
        self.assertEqual(row['variants'], [])
        self.assertEqual(tab.resets, 2)

    async def test_rejected_cookies_do_not_fail_the_item(self):
        class CookieRejectingTab(FakeTab):
            async def add_cookies(self, cookies):
                raise ValueError("Cookie should have either url or domain")

        session = SessionContext(cookies=[{'name': 'pdd_user_id', 'value': '1'}])
        tab = CookieRejectingTab(page_scripts())
        translator = TranslationClient(ScriptedChatClient(responder=respond), self.config, sleep=RecordingSleep())
        pipeline = ItemPipeline(tab, translator, self.gateway, self.config, delay=NoDelay(), session=session)

        with self.assertLogs('product_import.driver', level='WARNING') as logs:
            result = await pipeline.process(URL)

        self.assertEqual(result.status, ItemStatus.PERSISTED, result.reason)
        self.assertIn('cookies rejected', logs.output[0])
        self.assertTrue(session.cookies_installed)


class TestHelpers(unittest.TestCase):

    def test_weight_from_attributes_and_description(self):
        capture = RawProductCapture(url='u', attributes={'净重': '1.2kg'})
        self.assertEqual(infer_weight_kg(capture, 0.5), 1.2)

        capture = RawProductCapture(url='u', description_text='颜色: 黑\n重量：800g')
        self.assertEqual(infer_weight_kg(capture, 0.5), 0.8)

        self.assertEqual(infer_weight_kg(RawProductCapture(url='u'), 0.5), 0.5)

    def test_fabric_content_is_not_a_weight(self):
        capture = RawProductCapture(url='u', attributes={'主面料成分含量': '90%（含）-95%（不含）'})
        self.assertEqual(infer_weight_kg(capture, 0.5), 0.5)

    def test_dimensions_fallbacks(self):
        capture = RawProductCapture(url='u', title='儿童拖鞋', description_text='包装尺寸 35*25*5cm')
        self.assertEqual(infer_dimensions(capture).to_dict(), {'length': 35, 'width': 25, 'height': 5})
        capture = RawProductCapture(url='u', title='儿童拖鞋')
        self.assertEqual(infer_dimensions(capture).to_dict(), {'length': 28, 'width': 15, 'height': 8})

    def test_option_labels_and_images(self):
        capture = RawProductCapture(
            url='u',
            sku_entries={'黑色\x1fM': '1', '黑色\x1fL': '1', '\x1fXL': '1'},
            image_urls=('a', 'b'),
            description_image_urls=('c',),
        )
        self.assertEqual(option_labels(capture), ['黑色', 'M', 'L', 'XL'])
        self.assertEqual([(i.url, i.order) for i in build_images(capture)], [('a', 0), ('b', 1), ('c', 100)])


if __name__ == '__main__':
    unittest.main()
