import unittest

from product_import.models import (
    COLOR_OPTION_NAME, SIZE_OPTION_NAME, Dimensions, make_composite_key,
)
from product_import.pricing import compute_price
from product_import.variants import VariantReconciler, build_option_records, build_variant_records, is_denied

# AIR at 0.5 kg: shipping 7700
BASE_QUOTE = compute_price(10000, 0, 0.5, Dimensions(30, 20, 12))
TRANSLATIONS = {'黑色': 'أسود', '黑': 'أسود', '白色': 'أبيض', 'M': 'M', 'L': 'L', 'S': 'S'}
BLACK_THUMB = 'https://img.pddpic.com/sku/black.jpg'


class TestReconcile(unittest.TestCase):

    def setUp(self):
        self.reconciler = VariantReconciler()

    def test_groups_by_color_and_price(self):
        entries = {
            make_composite_key('黑色', 'M'): '10000',
            make_composite_key('黑色', 'L'): '12000',
            make_composite_key('白色', 'M'): '10000',
            make_composite_key('白色', 'L'): '',
        }
        options = self.reconciler.reconcile(entries, TRANSLATIONS, BASE_QUOTE, {'黑色': BLACK_THUMB})

        self.assertEqual(BASE_QUOTE.final_price, 21250)
        self.assertEqual(
            [(o.color, o.unit_price, o.sizes) for o in options],
            [('أسود', 21250, ['M']), ('أسود', 23750, ['L']), ('أبيض', 21250, ['M', 'L'])],
        )
        self.assertEqual(options[0].thumbnail_url, BLACK_THUMB)
        self.assertIsNone(options[2].thumbnail_url)
        self.assertEqual(options[1].base_price, 12000)

    def test_sizes_partition_the_entries(self):
        entries = {make_composite_key(c, s): p for c, s, p in [
            ('黑色', 'S', '10000'), ('黑色', 'M', '12000'), ('黑色', 'L', '10000'),
            ('白色', 'S', '12000'), ('白色', 'M', '12000'),
        ]}
        options = self.reconciler.reconcile(entries, TRANSLATIONS, BASE_QUOTE)
        for color in ('أسود', 'أبيض'):
            sizes = [s for o in options if o.color == color for s in o.sizes]
            self.assertEqual(len(sizes), len(set(sizes)))
        self.assertEqual(sum(len(o.sizes) for o in options), len(entries))

    def test_denylisted_and_untranslated_entries_dropped(self):
        entries = {
            make_composite_key('黑色', 'M'): '10000',
            make_composite_key('定金 联系客服', 'M'): '1',
            make_composite_key('蓝色', 'M'): '10000',
        }
        options = self.reconciler.reconcile(entries, TRANSLATIONS, BASE_QUOTE)
        self.assertEqual([o.color for o in options], ['أسود'])

    def test_duplicate_pairs_after_translation(self):
        entries = {
            make_composite_key('黑色', 'M'): '10000',
            make_composite_key('黑', 'M'): '12000',
        }
        with self.assertLogs('product_import.variants', level='WARNING') as logs:
            options = self.reconciler.reconcile(entries, TRANSLATIONS, BASE_QUOTE)
        self.assertEqual([(o.color, o.sizes) for o in options], [('أسود', ['M'])])

        # Both raw keys are named so the collapsed SKU can be traced
        self.assertEqual(len(logs.output), 1)
        self.assertIn(repr(make_composite_key('黑色', 'M')), logs.output[0])
        self.assertIn(repr(make_composite_key('黑', 'M')), logs.output[0])
        self.assertIn("'12000'", logs.output[0])

    def test_single_size_axis_flattens(self):
        entries = {make_composite_key('', 'S'): '10000', make_composite_key('', 'M'): '12000'}
        options = self.reconciler.reconcile(entries, TRANSLATIONS, BASE_QUOTE)
        self.assertEqual([(o.color, o.sizes, o.unit_price) for o in options], [('S', [], 21250), ('M', [], 23750)])

    def test_currency_rate_applies_to_sku_prices(self):
        reconciler = VariantReconciler(currency_rate=200)
        options = reconciler.reconcile({make_composite_key('黑色', 'M'): '60'}, TRANSLATIONS, BASE_QUOTE)
        self.assertEqual(options[0].base_price, 12000)
        self.assertEqual(options[0].unit_price, 23750)

    def test_is_denied(self):
        self.assertTrue(is_denied('Custom order link'))
        self.assertTrue(is_denied(None, '补差价'))
        self.assertFalse(is_denied('黑色', 'XL'))


class TestRecords(unittest.TestCase):

    def test_options_and_variants(self):
        entries = {
            make_composite_key('黑色', 'M'): '10000',
            make_composite_key('黑色', 'L'): '12000',
            make_composite_key('白色', 'M'): '10000',
        }
        options = VariantReconciler().reconcile(entries, TRANSLATIONS, BASE_QUOTE, {'黑色': BLACK_THUMB})

        records = build_option_records(options)
        self.assertEqual([(r.name, r.values) for r in records], [
            (COLOR_OPTION_NAME, ['أسود', 'أبيض']),
            (SIZE_OPTION_NAME, ['M', 'L']),
        ])

        variants = build_variant_records(options, fallback_image='https://img.pddpic.com/main.jpg')
        self.assertEqual(len(variants), 3)
        self.assertEqual(variants[1].combination, {COLOR_OPTION_NAME: 'أسود', SIZE_OPTION_NAME: 'L'})
        self.assertEqual(variants[1].price, 23750)
        self.assertEqual(variants[1].image, BLACK_THUMB)
        self.assertEqual(variants[2].image, 'https://img.pddpic.com/main.jpg')

    def test_color_only_variants(self):
        options = VariantReconciler().reconcile({'黑色': '10000'}, TRANSLATIONS, BASE_QUOTE)
        self.assertEqual([r.name for r in build_option_records(options)], [COLOR_OPTION_NAME])
        self.assertEqual(build_variant_records(options)[0].combination, {COLOR_OPTION_NAME: 'أسود'})


if __name__ == '__main__':
    unittest.main()
