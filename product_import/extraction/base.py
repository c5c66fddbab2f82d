"""
Shared pieces of the extraction strategies.

A strategy is a plain function `(PageSnapshot) -> result`. Strategies for one
field are tried in order and the first non-empty result wins; a strategy
that raises counts as a miss.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from bs4 import BeautifulSoup

from ..logger import get_component_logger

log = get_component_logger('extract')

T = TypeVar('T')


@dataclass
class PageSnapshot:
    """
    What a strategy may look at.

    dom: result of an in-page snapshot script (plain JSON)
    html: page HTML, for script-tag fallbacks
    responses: intercepted (url, body) pairs of SKU-bearing API calls
    """
    url: str
    dom: Dict[str, Any] = field(default_factory=dict)
    html: str = ""
    responses: List[Tuple[str, str]] = field(default_factory=list)

    def get(self, key: str, default: Any = None) -> Any:
        value = (self.dom or {}).get(key)
        return default if value is None else value


Strategy = Callable[[PageSnapshot], T]


def _is_empty(result: Any) -> bool:
    if result is None:
        return True
    if isinstance(result, (str, list, tuple, dict, set)):
        return len(result) == 0
    is_empty = getattr(result, 'is_empty', None)
    if callable(is_empty):
        return is_empty()
    return False


def first_success(
    strategies: Sequence[Strategy],
    snapshot: PageSnapshot,
    label: str,
    default: Any = None,
) -> Tuple[Optional[str], Any]:
    """
    Run strategies in order until one yields a non-empty result.

    Returns:
        (strategy name, result), or (None, default) if every strategy missed
    """
    for strategy in strategies:
        name = getattr(strategy, '__name__', repr(strategy))
        try:
            result = strategy(snapshot)
        except Exception as e:
            log.debug(f"{label}: {name} raised {type(e).__name__}: {e}")
            continue
        if _is_empty(result):
            log.debug(f"{label}: {name} found nothing")
            continue
        log.debug(f"{label}: {name} hit")
        return name, result

    log.debug(f"{label}: all {len(strategies)} strategies missed")
    return None, default


# Image URL validation

ALLOWED_IMAGE_FRAGMENTS = [
    'alicdn.com',
    'pddpic.com',
    'yangkeduo.com',
    'pinduoduo.com',
    'tbcdn.cn',
    'taobaocdn.com',
    '360buyimg.com',
    'cbu01.',
    'imgextra',
]

DENIED_IMAGE_FRAGMENTS = [
    'avatar',
    'icon',
    'logo',
    'sprite',
    'coupon',
    'video-snapshot',
    '.slim.png',
    'blank.gif',
    'loading',
    'placeholder',
    'spaceball',
    'tps-',
    '.svg',
]

_SIZE_SUFFIX_RE = re.compile(r'(\.(?:jpe?g|png|webp|gif))_[^/]*$', re.IGNORECASE)


def normalize_image_url(url: Optional[str]) -> str:
    """
    Canonical form used for validation and dedup.

    Protocol-relative URLs become https, query/fragment are dropped and CDN
    resize suffixes ('.jpg_460x460q90.jpg_.webp') are removed.
    """
    if not url:
        return ''
    url = str(url).strip()
    if url.startswith('//'):
        url = 'https:' + url
    url = url.split('#', 1)[0].split('?', 1)[0]
    return _SIZE_SUFFIX_RE.sub(r'\1', url)


def is_valid_image_url(
    url: Optional[str],
    allowed: Iterable[str] = ALLOWED_IMAGE_FRAGMENTS,
    denied: Iterable[str] = DENIED_IMAGE_FRAGMENTS,
) -> bool:
    """A URL passes only if it is http(s), matches an allowed fragment and no denied one."""
    if not url:
        return False
    lowered = url.lower()
    if not lowered.startswith('http'):
        return False
    if any(fragment in lowered for fragment in denied):
        return False
    return any(fragment in lowered for fragment in allowed)


def clean_image_urls(
    urls: Iterable[Optional[str]],
    allowed: Iterable[str] = ALLOWED_IMAGE_FRAGMENTS,
    denied: Iterable[str] = DENIED_IMAGE_FRAGMENTS,
    exclude: Iterable[str] = (),
) -> List[str]:
    """Normalize, validate and dedup, keeping first-seen order."""
    allowed = list(allowed)
    denied = list(denied)
    seen = {normalize_image_url(u) for u in exclude}
    result = []
    for url in urls:
        normalized = normalize_image_url(url)
        if not normalized or normalized in seen:
            continue
        if not is_valid_image_url(normalized, allowed, denied):
            continue
        seen.add(normalized)
        result.append(normalized)
    return result


def soup_scripts(html: str) -> List[str]:
    """Text of every inline <script> in html."""
    if not html:
        return []
    soup = BeautifulSoup(html, 'html.parser')
    return [s.string or s.get_text() or '' for s in soup.find_all('script') if not s.get('src')]
