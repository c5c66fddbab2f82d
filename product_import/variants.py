"""
Variant Reconciler.

Merges raw SKU entries (composite key -> raw price text) with translated
labels into VariantOption groups, each priced from its own SKU price.
"""

from collections import OrderedDict
from typing import Dict, List, Mapping, Optional, Tuple

from .config import PricingConfig
from .logger import get_component_logger
from .models import (
    COLOR_OPTION_NAME, SIZE_OPTION_NAME,
    OptionRecord, PriceQuote, VariantOption, VariantRecord, make_composite_key, split_composite_key,
)
from .pricing import compute_price, parse_price_text

log = get_component_logger('variants')

# Groups that are not real purchasable variants
VARIANT_DENYLIST = [
    'custom order', 'customized', 'deposit', 'contact seller', 'contact customer service',
    'price difference', 'extra postage', 'shipping fee',
    '定制', '定金', '订金', '联系客服', '咨询客服', '补差价', '补拍', '补邮费', '邮费专拍', '不发货',
    'عربون', 'تواصل مع البائع', 'طلب مخصص', 'فرق السعر',
]


def is_denied(*labels: Optional[str]) -> bool:
    for label in labels:
        lowered = (label or '').lower()
        if lowered and any(term in lowered for term in VARIANT_DENYLIST):
            return True
    return False


def _find_thumbnail(label: str, variant_images: Mapping[str, str]) -> Optional[str]:
    if not label:
        return None
    if label in variant_images:
        return variant_images[label]
    for key, url in variant_images.items():
        if key and (key in label or label in key):
            return url
    return None


class VariantReconciler:
    """
    Args:
        pricing: Price Engine configuration
        currency_rate: Multiplier from scraped SKU prices to base-price units
    """

    def __init__(self, pricing: Optional[PricingConfig] = None, currency_rate: float = 1.0):
        self.pricing = pricing or PricingConfig()
        self.currency_rate = currency_rate

    def _price_entry(self, price_text: str, base_quote: PriceQuote) -> Tuple[int, float]:
        """(final, base) for one SKU; falls back to the item's own quote when the SKU has no price."""
        raw = parse_price_text(price_text)
        if raw is None or raw <= 0:
            return base_quote.final_price, base_quote.base_price

        quote = compute_price(
            raw * self.currency_rate,
            base_quote.domestic_fee,
            base_quote.weight_kg,
            base_quote.dimensions,
            base_quote.shipping_method,
            self.pricing,
        )
        if quote.final_price <= 0:
            return base_quote.final_price, base_quote.base_price
        return quote.final_price, quote.base_price

    def reconcile(
        self,
        sku_entries: Mapping[str, str],
        translations: Mapping[str, str],
        base_quote: PriceQuote,
        variant_images: Optional[Mapping[str, str]] = None,
    ) -> List[VariantOption]:
        """
        Build VariantOption groups.

        Entries are grouped by (translated color, unit price); sizes keep their
        first-seen order. When no entry has a color, every size becomes its
        own color group. Denylisted and untranslated entries are dropped.
        """
        variant_images = variant_images or {}

        kept = []
        for key, price_text in sku_entries.items():
            color_raw, size_raw = split_composite_key(key)
            color = translations.get(color_raw, '') if color_raw else ''
            size = translations.get(size_raw, '') if size_raw else ''

            if is_denied(color_raw, size_raw, color, size):
                log.info(f"dropping denylisted variant {key!r}")
                continue
            if (color_raw and not color) or (size_raw and not size):
                log.warning(f"dropping variant {key!r}: label not translated")
                continue
            kept.append((color_raw, size_raw, color, size or None, price_text))

        has_color_axis = any(color_raw for color_raw, _, _, _, _ in kept)

        groups: "OrderedDict[Tuple[str, int], VariantOption]" = OrderedDict()
        seen_pairs: Dict[Tuple[str, Optional[str]], str] = {}
        for color_raw, size_raw, color, size, price_text in kept:
            raw_key = make_composite_key(color_raw, size_raw)
            if not has_color_axis:
                # Flatten: each size is its own color group
                color, size, color_raw = size, None, size_raw

            pair = (color, size)
            if pair in seen_pairs:
                log.warning(
                    f"variant {raw_key!r} translates to the same {pair} as {seen_pairs[pair]!r}, "
                    f"keeping {seen_pairs[pair]!r} (price {price_text!r} dropped)"
                )
                continue
            seen_pairs[pair] = raw_key

            unit_price, base_price = self._price_entry(price_text, base_quote)
            group_key = (color, unit_price)
            if group_key not in groups:
                groups[group_key] = VariantOption(
                    color=color,
                    sizes=[],
                    unit_price=unit_price,
                    base_price=base_price,
                    thumbnail_url=_find_thumbnail(color_raw, variant_images),
                )
            if size:
                groups[group_key].sizes.append(size)

        options = list(groups.values())
        log.info(f"reconciled {len(sku_entries)} sku entries into {len(options)} groups")
        return options


def build_option_records(options: List[VariantOption]) -> List[OptionRecord]:
    """One record per populated axis, values deduplicated in first-seen order."""
    colors: Dict[str, None] = OrderedDict()
    sizes: Dict[str, None] = OrderedDict()
    for option in options:
        colors.setdefault(option.color, None)
        for size in option.sizes:
            sizes.setdefault(size, None)

    records = []
    if colors:
        records.append(OptionRecord(name=COLOR_OPTION_NAME, values=list(colors)))
    if sizes:
        records.append(OptionRecord(name=SIZE_OPTION_NAME, values=list(sizes)))
    return records


def build_variant_records(options: List[VariantOption], fallback_image: str = '') -> List[VariantRecord]:
    """One record per (group, size) pair, or per group when it has no sizes."""
    records = []
    for option in options:
        image = option.thumbnail_url or fallback_image
        if option.sizes:
            for size in option.sizes:
                records.append(VariantRecord(
                    combination={COLOR_OPTION_NAME: option.color, SIZE_OPTION_NAME: size},
                    price=option.unit_price,
                    base_price=option.base_price,
                    image=image,
                ))
        else:
            records.append(VariantRecord(
                combination={COLOR_OPTION_NAME: option.color},
                price=option.unit_price,
                base_price=option.base_price,
                image=image,
            ))
    return records
