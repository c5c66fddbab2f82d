"""
Title, price, description and gallery strategies.
"""

import json
import re
from typing import Dict, List, Optional
from urllib.parse import urlparse, parse_qs

from bs4 import BeautifulSoup

from ..bounded_json import extract_bounded_object
from ..pricing import parse_price_text
from .base import PageSnapshot, clean_image_urls, soup_scripts

# Site suffixes appended to document.title
_TITLE_SUFFIX_RE = re.compile(r'\s*[-_|–]\s*(拼多多|淘宝网?|天猫|Tmall|Taobao|1688|阿里巴巴).*$', re.IGNORECASE)
_SCRIPT_PRICE_RE = re.compile(r'"(?:minGroupPrice|minPrice|priceText|price)"\s*:\s*"?(\d+(?:\.\d+)?)')
_OFFER_PATH_RE = re.compile(r'/offer/(\d+)\.html')

# Script keys that hold the main gallery
GALLERY_SCRIPT_KEYS = ['"auctionImages"', '"topGallery"', '"images"', '"detailGallery"']


# -- title ---------------------------------------------------------------

def title_from_selector(snapshot: PageSnapshot) -> str:
    return (snapshot.get('title', '') or '').strip()


def title_from_meta(snapshot: PageSnapshot) -> str:
    if not snapshot.html:
        return ''
    soup = BeautifulSoup(snapshot.html, 'html.parser')
    for attrs in ({'property': 'og:title'}, {'name': 'title'}, {'name': 'twitter:title'}):
        tag = soup.find('meta', attrs=attrs)
        if tag and tag.get('content'):
            return tag['content'].strip()
    return ''


def title_from_document(snapshot: PageSnapshot) -> str:
    title = (snapshot.get('documentTitle', '') or '').strip()
    return _TITLE_SUFFIX_RE.sub('', title).strip()


TITLE_STRATEGIES = [title_from_selector, title_from_meta, title_from_document]


# -- price ---------------------------------------------------------------

def _price_or_empty(text: Optional[str]) -> str:
    text = (text or '').strip()
    return text if parse_price_text(text) is not None else ''


def price_from_selector(snapshot: PageSnapshot) -> str:
    return _price_or_empty(snapshot.get('priceText'))


def price_from_body(snapshot: PageSnapshot) -> str:
    return _price_or_empty(snapshot.get('bodyPriceText'))


def price_from_scripts(snapshot: PageSnapshot) -> str:
    for script in soup_scripts(snapshot.html):
        match = _SCRIPT_PRICE_RE.search(script)
        if match:
            return match.group(1)
    return ''


PRICE_STRATEGIES = [price_from_selector, price_from_body, price_from_scripts]


# -- gallery -------------------------------------------------------------

def gallery_from_container(snapshot: PageSnapshot) -> List[str]:
    """(a) the known gallery/slider container."""
    return clean_image_urls(snapshot.get('galleryImages', []))


def gallery_from_large_images(snapshot: PageSnapshot) -> List[str]:
    """(b) large <img> elements near the top of the page with a photo-like aspect ratio."""
    viewport = snapshot.get('viewportHeight', 0) or 900
    picked = []
    for image in snapshot.get('largeImages', []):
        width, height = image.get('w') or 0, image.get('h') or 0
        if width <= 0 or height <= 0 or image.get('inLink'):
            continue
        ratio = width / height
        if not 0.5 <= ratio <= 2.0:
            continue
        if (image.get('top') or 0) > viewport * 2:
            continue
        picked.append(image.get('src'))
    return clean_image_urls(picked)


def gallery_from_scripts(snapshot: PageSnapshot) -> List[str]:
    """(c) image lists inside page globals or inline <script> JSON."""
    globals_ = snapshot.get('globals', {}) or {}
    urls = clean_image_urls(globals_.get('images') or [])
    if urls:
        return urls

    for script in soup_scripts(snapshot.html):
        for key in GALLERY_SCRIPT_KEYS:
            if key not in script:
                continue
            value = extract_bounded_object(script, key, openers='[')
            if isinstance(value, list):
                found = [v if isinstance(v, str) else (v or {}).get('url', '') for v in value]
                urls = clean_image_urls(found)
                if urls:
                    return urls
    return []


GALLERY_STRATEGIES = [gallery_from_container, gallery_from_large_images, gallery_from_scripts]


# -- description / attributes -------------------------------------------

def attributes_from_snapshot(snapshot: PageSnapshot) -> Dict[str, str]:
    attributes = {}
    for pair in snapshot.get('detailPairs', []):
        if len(pair) == 2 and pair[0] and pair[1]:
            attributes[str(pair[0]).strip()] = str(pair[1]).strip()
    return attributes


def description_from_attributes(snapshot: PageSnapshot) -> str:
    attributes = attributes_from_snapshot(snapshot)
    return '\n'.join(f"{k}: {v}" for k, v in attributes.items())


def description_from_block(snapshot: PageSnapshot) -> str:
    return (snapshot.get('descriptionText', '') or '').strip()


def description_from_ld_json(snapshot: PageSnapshot) -> str:
    if not snapshot.html:
        return ''
    soup = BeautifulSoup(snapshot.html, 'html.parser')
    for tag in soup.find_all('script', type='application/ld+json'):
        try:
            data = json.loads(tag.string or '')
        except ValueError:
            continue
        if isinstance(data, dict) and data.get('description'):
            return str(data['description']).strip()
    return ''


DESCRIPTION_STRATEGIES = [description_from_attributes, description_from_block, description_from_ld_json]


def offer_id_from_url(url: Optional[str]) -> Optional[str]:
    """Item identifier from a product URL (goods_id / id query params, /offer/<id>.html)."""
    if not url:
        return None
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    for key in ('goods_id', 'id', 'itemId', 'item_id'):
        values = query.get(key)
        if values and values[0].strip():
            return values[0].strip()
    match = _OFFER_PATH_RE.search(parsed.path)
    return match.group(1) if match else None
