"""
Page Driver - walks one product page through its overlays.

STATES:
    LOADED -> OPTIONS_OPEN -> OPTIONS_CLOSED -> REVIEWS_OPEN -> REVIEWS_CLOSED
           -> DESCRIPTION_VISIBLE -> DONE

Each transition is a simulated click (DOM query or coordinates), followed by
a humanizing delay and a verification script. A transition that never
verifies within `attempts` tries is recorded as degraded and the machine
moves on: whatever was captured so far is still used.

The driver never touches Playwright directly. It talks to a BrowserTab, so
tests can script the page with a fake tab and a zero-delay scheduler.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Awaitable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from .errors import SkipItem
from .logger import get_component_logger

log = get_component_logger('driver')


class BrowserTab(ABC):
    """One browser tab as seen by the pipeline."""

    @abstractmethod
    async def navigate(self, url: str, timeout_ms: int = 60000) -> None:
        pass

    @abstractmethod
    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run script in the page; the result must be JSON-serializable."""
        pass

    @abstractmethod
    async def click_at(self, x: float, y: float) -> None:
        pass

    @abstractmethod
    async def click(self, selector: str) -> bool:
        """Click the first element matching selector. False if none matched."""
        pass

    @abstractmethod
    async def scroll(self, distance: int) -> None:
        pass

    @abstractmethod
    async def go_back(self) -> None:
        pass

    @abstractmethod
    async def content(self) -> str:
        """Current page HTML."""
        pass

    @property
    @abstractmethod
    def url(self) -> str:
        pass

    async def add_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        """Install cookies before the first navigation. Optional."""
        return None

    def committed_urls(self) -> List[str]:
        """Main-frame URLs committed since the tab opened, oldest first."""
        return []

    def captured_responses(self) -> List[Tuple[str, str]]:
        """(url, body) pairs of intercepted SKU-bearing responses."""
        return []

    def reset(self) -> None:
        """Forget committed URLs and intercepted responses before the next item."""
        return None

    async def close(self) -> None:
        return None


class Delay(ABC):
    """Scheduler for humanizing pauses."""

    @abstractmethod
    async def pause(self, min_ms: int, max_ms: Optional[int] = None) -> None:
        pass


class HumanDelay(Delay):
    """Randomized real sleep between min_ms and max_ms."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    async def pause(self, min_ms: int, max_ms: Optional[int] = None) -> None:
        upper = max_ms if max_ms is not None else min_ms
        ms = self._rng.uniform(min_ms, max(min_ms, upper))
        await asyncio.sleep(ms / 1000.0)


class NoDelay(Delay):
    """Zero-delay scheduler. Keeps a log of requested pauses for assertions."""

    def __init__(self):
        self.requested: List[Tuple[int, Optional[int]]] = []

    async def pause(self, min_ms: int, max_ms: Optional[int] = None) -> None:
        self.requested.append((min_ms, max_ms))


class DriverState(Enum):
    NEW = "NEW"
    LOADED = "LOADED"
    OPTIONS_OPEN = "OPTIONS_OPEN"
    OPTIONS_CLOSED = "OPTIONS_CLOSED"
    REVIEWS_OPEN = "REVIEWS_OPEN"
    REVIEWS_CLOSED = "REVIEWS_CLOSED"
    DESCRIPTION_VISIBLE = "DESCRIPTION_VISIBLE"
    DONE = "DONE"


@dataclass
class SessionContext:
    """
    Session state carried explicitly into the driver.

    cookies are installed on the tab before the first navigation; the
    storage_state path is used by BrowserSession when it builds a context.
    """
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    storage_state: Optional[str] = None
    extra_headers: Dict[str, str] = field(default_factory=dict)
    cookies_installed: bool = False


# Fragments that identify a product detail page URL
PRODUCT_URL_MARKERS = ['goods_id=', 'goods.html', 'item.htm', 'detail.tmall', 'detail.1688', '/offer/']


def looks_like_product_url(url: Optional[str]) -> bool:
    if not url:
        return False
    lowered = url.lower()
    return any(marker in lowered for marker in PRODUCT_URL_MARKERS)


class NavigationLog:
    """
    Side channel fed by committed main-frame URLs.

    After an overlay is opened, tells the driver whether the tab actually
    left the product page (needs "go back") or just drew a modal (plain close).
    """

    def __init__(self, tab: BrowserTab):
        self._tab = tab
        self._mark = 0
        self.product_url: Optional[str] = None

    def mark(self, product_url: Optional[str] = None):
        """Remember the current position in the committed-URL history."""
        self._mark = len(self._tab.committed_urls())
        if product_url:
            self.product_url = product_url

    def urls_since_mark(self) -> List[str]:
        return self._tab.committed_urls()[self._mark:]

    def left_product_page(self) -> bool:
        """True if a URL committed since the mark is not a product page."""
        for url in self.urls_since_mark():
            if not looks_like_product_url(url):
                return True
        current = self._tab.url
        if self.product_url and current and _strip_fragment(current) != _strip_fragment(self.product_url):
            return not looks_like_product_url(current)
        return False


def _strip_fragment(url: str) -> str:
    parsed = urlparse(url)
    return parsed._replace(fragment='').geturl()


# In-page scripts used by transitions

FIND_BUY_BUTTON_JS = """
() => {
    const wanted = ['发起拼单', '拼单', '立即购买', '选择', '领券购买', '购买'];
    const nodes = Array.from(document.querySelectorAll('div[role="button"], button, a, [class*="buy"], [class*="Buy"]'));
    for (const word of wanted) {
        const el = nodes.find(n => {
            const t = (n.innerText || '').trim();
            return t && t.length < 30 && t.includes(word) && !t.includes('单独');
        });
        if (el) {
            const r = el.getBoundingClientRect();
            if (r.width > 0 && r.height > 0) return { x: r.left + r.width / 2, y: r.top + r.height / 2 };
        }
    }
    return null;
}
"""

OPTIONS_OPEN_JS = """
() => !!(document.querySelector('.HidQ9ROd, div[role="dialog"], [class*="sku-panel"], [class*="SkuPanel"], [class*="skuWrap"]'))
"""

CLOSE_OVERLAY_JS = """
() => {
    const btn = document.querySelector('div[role="button"][aria-label="关闭弹窗"], .pD0kR4N1, [class*="closeWrap"], [class*="close-btn"], [aria-label="close"], [aria-label="Close"]');
    const target = btn || document.querySelector('.ReactModal__Overlay, [class*="overlay"], [class*="mask"]');
    if (!target) return null;
    const r = target.getBoundingClientRect();
    return { x: r.left + r.width / 2, y: r.top + r.height / 2 };
}
"""

OVERLAY_CLOSED_JS = """
() => !document.querySelector('.HidQ9ROd, div[role="dialog"], [class*="sku-panel"], [class*="SkuPanel"], [class*="skuWrap"], [class*="Comment--"], [class*="comment-list"]')
"""

FIND_REVIEWS_BUTTON_JS = """
() => {
    const byClass = document.querySelector('[class*="ShowButton"], [class*="review-entry"], [class*="comment-entry"]');
    let el = byClass;
    if (!el) {
        const words = ['查看全部评价', '全部评价', '商品评价', '评价'];
        const nodes = Array.from(document.querySelectorAll('a, button, span, div'));
        for (const w of words) {
            el = nodes.find(n => {
                const t = (n.textContent || '').trim();
                return t && t.length < 20 && t.includes(w);
            });
            if (el) break;
        }
    }
    if (!el) return null;
    el.scrollIntoView({ block: 'center' });
    const r = el.getBoundingClientRect();
    return { x: r.left + r.width / 2, y: r.top + r.height / 2 };
}
"""

REVIEWS_OPEN_JS = """
() => document.querySelectorAll('[class*="Comment--"], [class*="comment-item"], [class*="review-item"], [class*="rate-item"]').length > 0
"""

PRODUCT_MARKER_JS = """
() => !!(document.querySelector('.goods-name, [class*="goods-price"], [class*="MainPic"], [class*="mainPic"], .swiper-slide, #main'))
"""

HUMANIZE_SCROLL_JS = """
async (seed) => {
    const wait = (ms) => new Promise(r => setTimeout(r, ms));
    window.scrollBy(0, 300 + seed * 200);
    await wait(300 + seed * 300);
    window.scrollBy(0, -100);
    await wait(200);
    window.scrollTo(0, 0);
    return true;
}
"""

SLOW_SCROLL_JS = """
async (steps) => {
    const wait = (ms) => new Promise(r => setTimeout(r, ms));
    const anchor = document.querySelector('.mP10ZXCw, [class*="RecommendInfo"], [class*="recommend"]');
    const targetTop = anchor ? anchor.getBoundingClientRect().top + window.scrollY : document.body.scrollHeight;
    const stepSize = (targetTop - window.scrollY) / steps;
    for (let i = 0; i < steps; i++) {
        window.scrollBy(0, stepSize);
        await wait(100 + Math.random() * 200);
    }
    const container = document.querySelector('.descV8-container, [class*="desc-container"], [class*="graphic"]');
    if (container) {
        let lastTop = -1, same = 0;
        for (let i = 0; i < 200; i++) {
            const maxTop = container.scrollHeight - container.clientHeight;
            if (maxTop <= 0) break;
            container.scrollTop = Math.min(container.scrollTop + Math.max(120, Math.floor(container.clientHeight * 0.6)), maxTop);
            if (container.scrollTop === lastTop) { same += 1; } else { same = 0; lastTop = container.scrollTop; }
            if (container.scrollTop >= maxTop || same >= 4) break;
            await wait(200);
        }
    }
    return true;
}
"""

DESCRIPTION_VISIBLE_JS = """
() => {
    if (document.querySelector('.descV8-container, .descV8-singleImage, [class*="desc-container"], [class*="detail-desc"]')) return true;
    return Array.from(document.querySelectorAll('div')).some(d => {
        const imgs = d.querySelectorAll(':scope > img, :scope > div > img');
        return Array.from(imgs).filter(i => i.naturalWidth > 400).length >= 3;
    });
}
"""


@dataclass
class Transition:
    """One edge of the state machine."""
    name: str
    target: DriverState
    action: Callable[[], Awaitable[bool]]
    verify: str


class PageDriver:
    """
    Drives a single tab through one product page.

    Args:
        tab: BrowserTab to drive
        session: Explicit session context (cookies, storage state)
        delay: Humanizing scheduler (HumanDelay in production, NoDelay in tests)
        attempts: Tries per transition before degrading
        min_delay_ms / max_delay_ms: Bounds of the pause after each action
    """

    def __init__(
        self,
        tab: BrowserTab,
        session: Optional[SessionContext] = None,
        delay: Optional[Delay] = None,
        attempts: int = 3,
        min_delay_ms: int = 1000,
        max_delay_ms: int = 3000,
        page_load_timeout_ms: int = 60000,
    ):
        self.tab = tab
        self.session = session or SessionContext()
        self.delay = delay or HumanDelay()
        self.attempts = max(1, attempts)
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max(min_delay_ms, max_delay_ms)
        self.page_load_timeout_ms = page_load_timeout_ms

        self.state = DriverState.NEW
        self.degraded: List[str] = []
        self.navigation = NavigationLog(tab)
        self.product_url: Optional[str] = None

    # -- helpers -------------------------------------------------------

    async def _humanize(self):
        await self.delay.pause(self.min_delay_ms, self.max_delay_ms)

    async def _check(self, script: str) -> bool:
        try:
            return bool(await self.tab.evaluate(script))
        except Exception as e:
            log.debug(f"verification script failed: {e}")
            return False

    async def _click_located(self, locate_script: str) -> bool:
        """Evaluate a script returning {x, y} and click there."""
        try:
            point = await self.tab.evaluate(locate_script)
        except Exception as e:
            log.debug(f"locate script failed: {e}")
            return False
        if not point or 'x' not in point or 'y' not in point:
            return False
        await self.tab.click_at(point['x'], point['y'])
        return True

    async def _run(self, transition: Transition) -> bool:
        """Perform a transition with bounded retries; degrade on failure."""
        for attempt in range(1, self.attempts + 1):
            try:
                acted = await transition.action()
            except Exception as e:
                log.debug(f"{transition.name}: attempt {attempt} raised {e}")
                acted = False
            await self._humanize()
            if acted and await self._check(transition.verify):
                log.debug(f"{transition.name}: verified on attempt {attempt}")
                self.state = transition.target
                return True

        log.warning(f"{transition.name} not verified after {self.attempts} attempts, continuing with partial data ({self.product_url})")
        self.degraded.append(transition.name)
        self.state = transition.target
        return False

    # -- transitions ---------------------------------------------------

    async def load(self, url: str) -> str:
        """
        Navigate to the product page and settle it.

        Raises:
            SkipItem: if the page cannot be loaded at all
        """
        # Nothing captured for a previous item may leak into this one
        self.tab.reset()

        if self.session.cookies and not self.session.cookies_installed:
            try:
                await self.tab.add_cookies(self.session.cookies)
            except Exception as e:
                log.warning(f"session cookies rejected, continuing without them: {e}")
            self.session.cookies_installed = True

        try:
            await self.tab.navigate(url, timeout_ms=self.page_load_timeout_ms)
        except Exception as e:
            raise SkipItem(f"page failed to load: {e}")

        await self._humanize()
        self.product_url = self.tab.url or url
        self.navigation.mark(self.product_url)

        try:
            await self.tab.evaluate(HUMANIZE_SCROLL_JS, random.random())
        except Exception as e:
            log.debug(f"humanizing scroll failed: {e}")

        self.state = DriverState.LOADED
        log.info(f"loaded {self.product_url}")
        return self.product_url

    async def open_options(self) -> bool:
        self._expect(DriverState.LOADED)
        return await self._run(Transition(
            name='open_options',
            target=DriverState.OPTIONS_OPEN,
            action=lambda: self._click_located(FIND_BUY_BUTTON_JS),
            verify=OPTIONS_OPEN_JS,
        ))

    async def close_options(self) -> bool:
        self._expect(DriverState.OPTIONS_OPEN)
        return await self._run(Transition(
            name='close_options',
            target=DriverState.OPTIONS_CLOSED,
            action=self._close_overlay,
            verify=OVERLAY_CLOSED_JS,
        ))

    async def open_reviews(self) -> bool:
        self._expect(DriverState.OPTIONS_CLOSED)
        self.navigation.mark(self.product_url)
        return await self._run(Transition(
            name='open_reviews',
            target=DriverState.REVIEWS_OPEN,
            action=lambda: self._click_located(FIND_REVIEWS_BUTTON_JS),
            verify=REVIEWS_OPEN_JS,
        ))

    async def close_reviews(self) -> bool:
        """Return to the product: go back if the reviews opened a new page, else close the modal."""
        self._expect(DriverState.REVIEWS_OPEN)

        async def back_or_close() -> bool:
            if self.navigation.left_product_page():
                log.debug("reviews navigated away, going back")
                await self.tab.go_back()
                return True
            return await self._close_overlay()

        return await self._run(Transition(
            name='close_reviews',
            target=DriverState.REVIEWS_CLOSED,
            action=back_or_close,
            verify=PRODUCT_MARKER_JS,
        ))

    async def show_description(self) -> bool:
        """Scroll slowly to the description panel and through its container."""
        self._expect(DriverState.REVIEWS_CLOSED)

        async def scroll_down() -> bool:
            await self.tab.evaluate(SLOW_SCROLL_JS, 30)
            return True

        return await self._run(Transition(
            name='show_description',
            target=DriverState.DESCRIPTION_VISIBLE,
            action=scroll_down,
            verify=DESCRIPTION_VISIBLE_JS,
        ))

    def finish(self):
        self.state = DriverState.DONE

    async def _close_overlay(self) -> bool:
        if await self._click_located(CLOSE_OVERLAY_JS):
            return True
        # No close control; a tap near the top edge dismisses most bottom sheets
        await self.tab.click_at(20, 20)
        return True

    def _expect(self, state: DriverState):
        if self.state != state:
            raise RuntimeError(f"driver is in {self.state.value}, expected {state.value}")
