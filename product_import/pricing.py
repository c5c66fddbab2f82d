"""
Price Engine.

Maps (base price, domestic fee, weight, dimensions, shipping method) to a
landed retail price:

    final = ceil(((base + domestic + shipping) * markup) / step) * step

AIR shipping is charged per kilogram, SEA shipping per padded cubic metre
with a minimum fee. Everything here is pure; the number/weight/dimension
parsers feed it from scraped text.
"""

import math
import re
from typing import Optional, Union, Any

from .config import PricingConfig
from .models import Dimensions, PriceQuote, ShippingMethod


_NUMBER_RE = re.compile(r'(\d+(?:\.\d+)?)')
_PRICE_RE = re.compile(r'(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)')
_DIMENSIONS_RE = re.compile(
    r'(\d+(?:\.\d+)?)\s*(?:cm)?\s*[x×\*]\s*(\d+(?:\.\d+)?)\s*(?:cm)?\s*[x×\*]\s*(\d+(?:\.\d+)?)',
    re.IGNORECASE,
)
_GRAM_MARKERS = ('جرام', 'gram', '克')

# Title keyword -> default package size (cm)
DEFAULT_DIMENSIONS = Dimensions(30, 20, 12)
DIMENSION_HINTS = [
    (('slippers', 'slide', '拖鞋'), Dimensions(28, 15, 8)),
    (('boot', 'winter', '靴'), Dimensions(32, 22, 15)),
    (('kid', 'child', '童'), Dimensions(18, 15, 8)),
]

Number = Union[int, float]


def parse_price_text(text: Optional[str]) -> Optional[float]:
    """
    Parse the first currency-like number in a price string.

    '¥29.90' -> 29.9, '券后 ¥1,299' -> 1299.0. Returns None (not 0) when no
    number is present so callers can tell "missing" from "free".
    """
    if not text:
        return None
    match = _PRICE_RE.search(str(text))
    if not match:
        return None
    try:
        return float(match.group(1).replace(',', ''))
    except ValueError:
        return None


def extract_number(value: Any) -> Optional[float]:
    """First number in value, or None. Numbers pass straight through."""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _NUMBER_RE.search(str(value))
    return float(match.group(1)) if match else None


def parse_weight_kg(value: Any) -> Optional[float]:
    """
    Read a weight in kilograms.

    Values labelled in grams, or bare numbers above 10 without a 'kg' unit,
    are treated as grams ('500g' -> 0.5, '800' -> 0.8).
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    parsed = extract_number(value)
    if parsed is None:
        return None

    text = str(value).lower()
    has_kg = 'kg' in text or '公斤' in text or '千克' in text or 'كغ' in text
    is_gram_unit = (any(m in text for m in _GRAM_MARKERS) or re.search(r'\d\s*g\b', text)) and not has_kg
    is_likely_grams = not has_kg and parsed > 10
    if is_gram_unit or is_likely_grams:
        return parsed / 1000
    return parsed


def parse_dimensions(text: Optional[str]) -> Optional[Dimensions]:
    """Find an 'L*W*H' / 'LxWxH' triple (cm) in text."""
    if not text:
        return None
    match = _DIMENSIONS_RE.search(str(text))
    if not match:
        return None
    length, width, height = (float(g) for g in match.groups())
    return Dimensions(length, width, height)


def default_dimensions_for(title: Optional[str]) -> Dimensions:
    """Guess a package size from title keywords."""
    lowered = (title or '').lower()
    for keywords, dims in DIMENSION_HINTS:
        if any(k in lowered for k in keywords):
            return dims
    return DEFAULT_DIMENSIONS


def choose_method(weight_kg: float, explicit: Optional[ShippingMethod] = None) -> ShippingMethod:
    """Explicit method wins; otherwise AIR for light parcels (0 < w < 1 kg), else SEA."""
    if explicit is not None:
        return explicit
    if 0 < weight_kg < 1:
        return ShippingMethod.AIR
    return ShippingMethod.SEA


def padded_volume_cbm(dims: Optional[Dimensions], padding_cm: float) -> float:
    """Cubic metres after padding every positive dimension by padding_cm."""
    if dims is None:
        return 0.0
    sides = [d + padding_cm if d > 0 else 0 for d in (dims.length, dims.width, dims.height)]
    return (sides[0] * sides[1] * sides[2]) / 1_000_000


def shipping_cost(
    method: ShippingMethod,
    weight_kg: float,
    dims: Optional[Dimensions],
    config: PricingConfig,
) -> float:
    if method == ShippingMethod.AIR:
        return max(weight_kg * config.air_rate_per_kg, config.air_minimum_fee)
    volume = padded_volume_cbm(dims, config.padding_cm)
    return max(volume * config.sea_rate_per_cbm, config.sea_minimum_fee)


def round_up(amount: float, step: int) -> int:
    """Round amount up to the next multiple of step."""
    # Strip float noise (e.g. 8863.200000000001) before ceil
    return int(math.ceil(round(amount / step, 9))) * step


def compute_price(
    base_price: Number,
    domestic_fee: Number = 0,
    weight_kg: Optional[Number] = None,
    dims: Optional[Dimensions] = None,
    method: Optional[ShippingMethod] = None,
    config: Optional[PricingConfig] = None,
) -> PriceQuote:
    """
    Run the Price Engine.

    Args:
        base_price: Item cost in source units (already currency-normalized)
        domestic_fee: Handling before international shipping
        weight_kg: Parcel weight; None or <= 0 means unknown
        dims: Package dimensions in cm (SEA only)
        method: Explicit shipping method, overrides weight-based inference
        config: Rates, markup and rounding

    Returns:
        PriceQuote. final_price is 0 when base_price <= 0 and the caller
        must reject the item.
    """
    config = config or PricingConfig()
    base = float(base_price or 0)
    domestic = float(domestic_fee or 0)
    weight = float(weight_kg or 0)

    chosen = choose_method(weight, method)

    if base <= 0:
        return PriceQuote(
            base_price=base,
            domestic_fee=domestic,
            weight_kg=weight,
            dimensions=dims,
            shipping_method=chosen,
            shipping_cost=0.0,
            final_price=0,
        )

    shipping = shipping_cost(chosen, weight, dims, config)
    final = round_up((base + domestic + shipping) * config.markup_factor, config.rounding_step)

    return PriceQuote(
        base_price=base,
        domestic_fee=domestic,
        weight_kg=weight,
        dimensions=dims,
        shipping_method=chosen,
        shipping_cost=shipping,
        final_price=final,
    )


def final_price(*args, **kwargs) -> int:
    """Shortcut for compute_price(...).final_price."""
    return compute_price(*args, **kwargs).final_price
