"""
ItemPipeline - imports one product URL end to end.

    load -> basic fields -> options overlay -> reviews -> description
         -> enrich/translate -> price -> reconcile variants -> persist

process() never raises for per-item failures; every outcome is an ItemResult.
"""

import re
from contextlib import asynccontextmanager
from typing import List, Optional, Tuple

from .browser import BrowserSession
from .config import PipelineConfig
from .enrichment import TranslationClient, create_chat_client
from .errors import PipelineError, SkipItem, TranslationExhausted, TranslationTimeout
from .extraction import RawExtractor
from .extraction.basic import offer_id_from_url
from .logger import get_component_logger
from .models import (
    DESCRIPTION_ORDER_OFFSET,
    CaptureAccumulator, Dimensions, ImageRecord, ImageType, ItemResult, ItemStatus,
    PersistedProduct, RawProductCapture, split_composite_key,
)
from .page_driver import BrowserTab, Delay, PageDriver, SessionContext
from .persistence import PersistenceGateway, SQLiteProductStore, canonical_url
from .pricing import compute_price, default_dimensions_for, parse_dimensions, parse_price_text, parse_weight_kg
from .variants import VariantReconciler, build_option_records, build_variant_records

log = get_component_logger('pipeline')

WEIGHT_KEYS = ('重量', '净重', '毛重', 'weight', 'الوزن')
_WEIGHT_IN_TEXT_RE = re.compile(
    r'(?:重量|净重|毛重|weight)\s*[:：]?\s*(\d+(?:\.\d+)?\s*(?:kg|g|克|公斤|千克)?)',
    re.IGNORECASE,
)


def infer_weight_kg(capture: RawProductCapture, default: float) -> float:
    """Weight from the attribute table, then the description text, else default."""
    for key, value in capture.attributes.items():
        if any(marker in key.lower() for marker in WEIGHT_KEYS):
            weight = parse_weight_kg(value)
            if weight and weight > 0:
                return weight

    match = _WEIGHT_IN_TEXT_RE.search(capture.description_text or '')
    if match:
        weight = parse_weight_kg(match.group(1))
        if weight and weight > 0:
            return weight
    return default


def infer_dimensions(capture: RawProductCapture) -> Dimensions:
    """Package size from the description or attributes, else a title-keyword guess."""
    dims = parse_dimensions(capture.description_text)
    if dims is None:
        dims = parse_dimensions(' '.join(capture.attributes.values()))
    return dims or default_dimensions_for(capture.title)


def option_labels(capture: RawProductCapture) -> List[str]:
    """Distinct raw color/size labels in first-seen order."""
    labels: List[str] = []
    for key in capture.sku_entries:
        color, size = split_composite_key(key)
        for label in (color, size):
            if label and label not in labels:
                labels.append(label)
    return labels


def build_images(capture: RawProductCapture) -> List[ImageRecord]:
    """Gallery images first (0..), description images after DESCRIPTION_ORDER_OFFSET."""
    images = [ImageRecord(url=url, order=i, type=ImageType.GALLERY) for i, url in enumerate(capture.image_urls)]
    images.extend(
        ImageRecord(url=url, order=DESCRIPTION_ORDER_OFFSET + i, type=ImageType.DESCRIPTION)
        for i, url in enumerate(capture.description_image_urls)
    )
    return images


class ItemPipeline:
    """
    Args:
        tab: BrowserTab the item is captured in
        translator: TranslationClient for all LLM work
        gateway: PersistenceGateway for dedup and writes
        config: Pipeline configuration
        delay: Humanizing delay (HumanDelay if None)
        session: Cookies / storage state shared by every item in this session
    """

    def __init__(
        self,
        tab: BrowserTab,
        translator: TranslationClient,
        gateway: PersistenceGateway,
        config: Optional[PipelineConfig] = None,
        delay: Optional[Delay] = None,
        session: Optional[SessionContext] = None,
    ):
        self.tab = tab
        self.translator = translator
        self.gateway = gateway
        self.config = config or PipelineConfig()
        self.delay = delay
        self.session = session or SessionContext()
        self.reconciler = VariantReconciler(self.config.pricing, self.config.currency_rate)

    async def process(self, url: str) -> ItemResult:
        """Import one product URL. Per-item failures come back as SKIPPED results."""
        log.info(f"processing {url}")
        try:
            result = await self._process(url)
        except SkipItem as e:
            log.warning(f"skipping {url}: {e.reason}")
            return ItemResult.skipped(url, e.reason)
        except (TranslationExhausted, TranslationTimeout) as e:
            log.warning(f"skipping {url}: translation failed: {e}")
            return ItemResult.skipped(url, f"translation failed: {e}")
        except PipelineError as e:
            log.warning(f"skipping {url}: {e}")
            return ItemResult.skipped(url, str(e))

        log.info(f"{url}: {result.status.value} (product {result.product_id})")
        return result

    async def _process(self, url: str) -> ItemResult:
        existing = await self.gateway.find_existing(url, offer_id_from_url(url))
        if existing is not None:
            return ItemResult.duplicate(url, existing)

        capture, degraded = await self.capture(url)
        if degraded:
            log.warning(f"{url}: continuing with partial data, degraded steps: {', '.join(degraded)}")
        return await self.import_capture(capture)

    async def capture(self, url: str) -> Tuple[RawProductCapture, List[str]]:
        """
        Drive the page and read everything off it.

        Returns:
            (frozen capture, names of degraded transitions)
        """
        driver = PageDriver(
            self.tab,
            session=self.session,
            delay=self.delay,
            attempts=self.config.transition_attempts,
            min_delay_ms=self.config.min_delay_ms,
            max_delay_ms=self.config.max_delay_ms,
            page_load_timeout_ms=self.config.page_load_timeout_ms,
        )
        extractor = RawExtractor(self.tab, review_limit=self.config.review_limit)
        acc = CaptureAccumulator(url=url)

        await driver.load(url)
        await extractor.extract_basic(acc)

        # Options still have script and network fallbacks when the overlay stays shut
        await driver.open_options()
        await extractor.extract_options(acc)
        await driver.close_options()

        if await driver.open_reviews():
            await extractor.extract_reviews(acc)
        await driver.close_reviews()

        await driver.show_description()
        await extractor.extract_description_images(acc)
        driver.finish()

        return acc.freeze(), list(driver.degraded)

    async def import_capture(self, capture: RawProductCapture) -> ItemResult:
        """Enrich, price, reconcile and persist an already captured item."""
        url = capture.url
        cfg = self.config

        if not capture.title:
            raise SkipItem("no title found")
        raw_price = parse_price_text(capture.price_text)
        if raw_price is None:
            raise SkipItem(f"no price found in {capture.price_text!r}")
        if raw_price <= 0:
            raise SkipItem(f"non-positive price {raw_price}")
        if not capture.image_urls and not capture.description_image_urls:
            raise SkipItem("no images found")

        enriched = await self.translator.enrich(capture)
        if enriched.is_restricted and cfg.skip_restricted:
            raise SkipItem("restricted item")

        translations = await self.translator.translate_labels(option_labels(capture))
        enriched.reviews = await self.translator.translate_reviews(capture.reviews)

        weight = infer_weight_kg(capture, cfg.default_weight_kg)
        dims = infer_dimensions(capture)
        quote = compute_price(raw_price * cfg.currency_rate, cfg.domestic_fee, weight, dims, None, cfg.pricing)
        if quote.final_price <= 0:
            raise SkipItem(f"price engine returned {quote.final_price}")
        log.info(
            f"priced {url}: base={quote.base_price} weight={quote.weight_kg}kg "
            f"{quote.shipping_method.value} shipping={quote.shipping_cost:.0f} final={quote.final_price}"
        )

        variant_options = self.reconciler.reconcile(capture.sku_entries, translations, quote, capture.variant_images)

        product = PersistedProduct(
            name=enriched.name_translated,
            source_url=url,
            canonical_url=canonical_url(url),
            specs=enriched.attribute_table,
            base_price=quote.base_price,
            final_price=quote.final_price,
            images=build_images(capture),
            is_restricted=enriched.is_restricted,
            reviews=enriched.reviews,
            ai_metadata=enriched.marketing,
            offer_id=capture.offer_id,
            weight_kg=quote.weight_kg,
            dimensions=quote.dimensions,
            shipping_method=quote.shipping_method,
            domestic_fee=quote.domestic_fee,
        )
        product.options = build_option_records(variant_options)
        product.variants = build_variant_records(variant_options, fallback_image=product.main_image)

        status, product_id = await self.gateway.persist(product)
        if status == ItemStatus.DUPLICATE:
            return ItemResult.duplicate(url, product_id)
        return ItemResult.persisted(url, product_id)


@asynccontextmanager
async def open_pipeline(config: Optional[PipelineConfig] = None, session: Optional[SessionContext] = None):
    """
    Build a production pipeline: one browser session and tab, the configured
    LLM provider and the SQLite store. Everything is closed on exit.

        async with open_pipeline(PipelineConfig.from_env()) as pipeline:
            result = await pipeline.process(url)
    """
    config = config or PipelineConfig.from_env()
    session = session or SessionContext()

    chat = create_chat_client(config.llm_provider, config.llm_base_url, config.ai_timeout_s)
    store = SQLiteProductStore(config.database_path)
    gateway = PersistenceGateway(store, config.persistence_timeout_s, config.embedding_timeout_s)

    browser = BrowserSession(session=session, headless=config.headless)
    await browser.start()
    try:
        tab = await browser.new_tab()
        yield ItemPipeline(tab, TranslationClient(chat, config), gateway, config, session=session)
    finally:
        await gateway.drain()
        await browser.close()
        store.close()
