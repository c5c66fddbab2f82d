"""
RawExtractor - reads one product page into a CaptureAccumulator.

Each extract_* method snapshots the current page once (in-page script plus
HTML / intercepted responses) and runs the matching strategy list over that
snapshot. A failed snapshot leaves the fields empty; it never aborts the item.
"""

from typing import Any, Dict

from ..logger import get_component_logger
from ..models import CaptureAccumulator
from ..page_driver import BrowserTab
from .base import PageSnapshot, first_success, clean_image_urls
from .basic import (
    TITLE_STRATEGIES, PRICE_STRATEGIES, GALLERY_STRATEGIES, DESCRIPTION_STRATEGIES,
    attributes_from_snapshot, offer_id_from_url,
)
from .description import DESCRIPTION_IMAGE_STRATEGIES
from .options import OPTION_STRATEGIES, OptionsCapture
from .reviews import REVIEW_STRATEGIES, MAX_REVIEWS
from .scripts import BASIC_SNAPSHOT_JS, OPTIONS_SNAPSHOT_JS, REVIEWS_SNAPSHOT_JS, DESCRIPTION_SNAPSHOT_JS

log = get_component_logger('extract')


class RawExtractor:
    """
    Args:
        tab: BrowserTab positioned on the product page
        review_limit: Maximum reviews kept
    """

    def __init__(self, tab: BrowserTab, review_limit: int = MAX_REVIEWS):
        self.tab = tab
        self.review_limit = review_limit

    async def _snapshot(self, script: str, arg: Any = None, with_html: bool = False) -> PageSnapshot:
        url = self.tab.url
        dom: Dict[str, Any] = {}
        try:
            result = await self.tab.evaluate(script, arg)
            if isinstance(result, dict):
                dom = result
        except Exception as e:
            log.warning(f"snapshot failed on {url}: {e}")

        html = ''
        if with_html:
            try:
                html = await self.tab.content()
            except Exception as e:
                log.debug(f"could not read page HTML: {e}")

        return PageSnapshot(url=url, dom=dom, html=html, responses=self.tab.captured_responses())

    async def extract_basic(self, acc: CaptureAccumulator) -> CaptureAccumulator:
        """Title, price text, gallery, description text and attribute pairs."""
        snapshot = await self._snapshot(BASIC_SNAPSHOT_JS, with_html=True)

        _, acc.title = first_success(TITLE_STRATEGIES, snapshot, 'title', default='')
        _, acc.price_text = first_success(PRICE_STRATEGIES, snapshot, 'price', default='')
        _, images = first_success(GALLERY_STRATEGIES, snapshot, 'gallery', default=[])
        acc.image_urls = list(images)
        _, acc.description_text = first_success(DESCRIPTION_STRATEGIES, snapshot, 'description', default='')
        acc.attributes = attributes_from_snapshot(snapshot)
        acc.offer_id = offer_id_from_url(acc.url) or offer_id_from_url(snapshot.url)

        log.info(f"basic: title={bool(acc.title)} price='{acc.price_text}' images={len(acc.image_urls)}")
        return acc

    async def extract_options(self, acc: CaptureAccumulator) -> CaptureAccumulator:
        """SKU map and per-color thumbnails. Call while the options overlay is open."""
        snapshot = await self._snapshot(OPTIONS_SNAPSHOT_JS, with_html=True)
        name, capture = first_success(OPTION_STRATEGIES, snapshot, 'options', default=OptionsCapture())

        acc.sku_entries = dict(capture.sku_entries)
        acc.variant_images = dict(capture.variant_images)
        log.info(f"options: {len(acc.sku_entries)} sku entries via {name or 'nothing'}")
        return acc

    async def extract_reviews(self, acc: CaptureAccumulator) -> CaptureAccumulator:
        """Up to review_limit reviews. Call while the reviews overlay is open."""
        snapshot = await self._snapshot(REVIEWS_SNAPSHOT_JS, self.review_limit)
        _, reviews = first_success(REVIEW_STRATEGIES, snapshot, 'reviews', default=[])

        acc.reviews = list(reviews)[:self.review_limit]
        log.info(f"reviews: {len(acc.reviews)}")
        return acc

    async def extract_description_images(self, acc: CaptureAccumulator) -> CaptureAccumulator:
        """Description panel images, minus anything already in the gallery."""
        snapshot = await self._snapshot(DESCRIPTION_SNAPSHOT_JS)
        _, urls = first_success(DESCRIPTION_IMAGE_STRATEGIES, snapshot, 'description images', default=[])

        acc.description_image_urls = clean_image_urls(urls, exclude=acc.image_urls)
        log.info(f"description images: {len(acc.description_image_urls)}")
        return acc
