"""
Data models for item import.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Optional, List, Dict, Any, Mapping, Tuple


# Composite SKU keys encode {color, size?} in one opaque string
COMPOSITE_KEY_SEPARATOR = '\x1f'

# Option axis names as stored on the record (target language)
COLOR_OPTION_NAME = "اللون"
SIZE_OPTION_NAME = "المقاس"

# Description images are ordered after the gallery using this offset
DESCRIPTION_ORDER_OFFSET = 100


def make_composite_key(color: str, size: Optional[str] = None) -> str:
    """Encode a color/size pair as a composite SKU key."""
    if size:
        return f"{color}{COMPOSITE_KEY_SEPARATOR}{size}"
    return color


def split_composite_key(key: str) -> Tuple[str, Optional[str]]:
    """Decode a composite SKU key into (color, size). Color may be empty."""
    if COMPOSITE_KEY_SEPARATOR in key:
        color, size = key.split(COMPOSITE_KEY_SEPARATOR, 1)
        return color, (size or None)
    return key, None


class ShippingMethod(Enum):
    """International shipping methods."""
    AIR = "AIR"
    SEA = "SEA"


class ImageType(Enum):
    """Where an image came from on the product page."""
    GALLERY = "GALLERY"
    DESCRIPTION = "DESCRIPTION"


class ItemStatus(Enum):
    """Final outcome of processing one item."""
    PERSISTED = "persisted"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Review:
    """A single buyer review."""
    author: str = ""
    text: str = ""
    photo_urls: Tuple[str, ...] = ()
    meta: str = ""

    def to_dict(self) -> dict:
        return {
            "author": self.author,
            "text": self.text,
            "photo_urls": list(self.photo_urls),
            "meta": self.meta,
        }


@dataclass(frozen=True)
class RawProductCapture:
    """Everything read from the page for one item. Immutable once captured."""
    url: str
    title: str = ""
    price_text: str = ""
    image_urls: Tuple[str, ...] = ()
    description_text: str = ""
    sku_entries: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    variant_images: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    reviews: Tuple[Review, ...] = ()
    description_image_urls: Tuple[str, ...] = ()
    attributes: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    offer_id: Optional[str] = None


@dataclass
class CaptureAccumulator:
    """
    Mutable per-item accumulator filled in stage by stage.

    Lives only for the duration of one item; freeze() hands out the
    immutable RawProductCapture.
    """
    url: str
    title: str = ""
    price_text: str = ""
    image_urls: List[str] = field(default_factory=list)
    description_text: str = ""
    sku_entries: Dict[str, str] = field(default_factory=dict)
    variant_images: Dict[str, str] = field(default_factory=dict)
    reviews: List[Review] = field(default_factory=list)
    description_image_urls: List[str] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)
    offer_id: Optional[str] = None

    def freeze(self) -> RawProductCapture:
        return RawProductCapture(
            url=self.url,
            title=self.title,
            price_text=self.price_text,
            image_urls=tuple(self.image_urls),
            description_text=self.description_text,
            sku_entries=MappingProxyType(dict(self.sku_entries)),
            variant_images=MappingProxyType(dict(self.variant_images)),
            reviews=tuple(self.reviews),
            description_image_urls=tuple(self.description_image_urls),
            attributes=MappingProxyType(dict(self.attributes)),
            offer_id=self.offer_id,
        )


@dataclass
class MarketingMetadata:
    """Search/marketing hints generated alongside the translation."""
    synonyms: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    category_suggestion: str = ""

    def to_dict(self) -> dict:
        return {
            "synonyms": list(self.synonyms),
            "market_tags": list(self.tags),
            "category_suggestion": self.category_suggestion,
        }


@dataclass
class EnrichedProduct:
    """Translated product text. name_translated is never a placeholder."""
    name_translated: str
    attribute_table: Dict[str, str] = field(default_factory=dict)
    marketing: MarketingMetadata = field(default_factory=MarketingMetadata)
    is_restricted: bool = False
    reviews: List[Review] = field(default_factory=list)


@dataclass(frozen=True)
class Dimensions:
    """Package dimensions in centimetres."""
    length: float = 0
    width: float = 0
    height: float = 0

    def to_dict(self) -> dict:
        return {"length": self.length, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class PriceQuote:
    """Result of one run of the Price Engine."""
    base_price: float
    domestic_fee: float
    weight_kg: float
    dimensions: Optional[Dimensions]
    shipping_method: ShippingMethod
    shipping_cost: float
    final_price: int


@dataclass
class VariantOption:
    """One color group with its sizes and resolved retail price."""
    color: str
    sizes: List[str] = field(default_factory=list)
    unit_price: int = 0
    base_price: float = 0
    thumbnail_url: Optional[str] = None


@dataclass
class ImageRecord:
    url: str
    order: int
    type: ImageType


@dataclass
class OptionRecord:
    name: str
    values: List[str] = field(default_factory=list)


@dataclass
class VariantRecord:
    combination: Dict[str, str]
    price: int
    base_price: float
    image: str = ""


@dataclass
class PersistedProduct:
    """The durable record written by the persistence gateway."""
    name: str
    source_url: str
    canonical_url: str
    specs: Dict[str, str]
    base_price: float
    final_price: int
    images: List[ImageRecord] = field(default_factory=list)
    options: List[OptionRecord] = field(default_factory=list)
    variants: List[VariantRecord] = field(default_factory=list)
    is_restricted: bool = False
    reviews: List[Review] = field(default_factory=list)
    ai_metadata: MarketingMetadata = field(default_factory=MarketingMetadata)
    offer_id: Optional[str] = None
    marketplace: str = ""
    weight_kg: float = 0
    dimensions: Optional[Dimensions] = None
    shipping_method: ShippingMethod = ShippingMethod.SEA
    domestic_fee: float = 0
    id: Optional[int] = None

    @property
    def main_image(self) -> str:
        for image in self.images:
            if image.type == ImageType.GALLERY:
                return image.url
        return self.images[0].url if self.images else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "translatedSpecs": dict(self.specs),
            "basePriceSourceUnits": self.base_price,
            "finalPrice": self.final_price,
            "images": [{"url": i.url, "order": i.order, "type": i.type.value} for i in self.images],
            "options": [{"name": o.name, "values": list(o.values)} for o in self.options],
            "variants": [
                {"combination": dict(v.combination), "price": v.price,
                 "basePrice": v.base_price, "image": v.image}
                for v in self.variants
            ],
            "isRestricted": self.is_restricted,
            "reviews": [r.to_dict() for r in self.reviews],
            "aiMetadata": self.ai_metadata.to_dict(),
        }


@dataclass
class ItemResult:
    """What happened to one item."""
    status: ItemStatus
    url: str
    reason: Optional[str] = None
    product_id: Optional[int] = None

    @classmethod
    def skipped(cls, url: str, reason: str) -> 'ItemResult':
        return cls(status=ItemStatus.SKIPPED, url=url, reason=reason)

    @classmethod
    def duplicate(cls, url: str, product_id: Optional[int] = None) -> 'ItemResult':
        return cls(status=ItemStatus.DUPLICATE, url=url, reason="already persisted", product_id=product_id)

    @classmethod
    def persisted(cls, url: str, product_id: int) -> 'ItemResult':
        return cls(status=ItemStatus.PERSISTED, url=url, product_id=product_id)
