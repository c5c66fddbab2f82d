"""
Stealth browser session.

Launches Chromium with anti-detection flags and an init script, creates one
mobile browser context and hands out PlaywrightTab objects that implement the
BrowserTab boundary used by the PageDriver.

Usage:
    async with BrowserSession(headless=True) as session:
        tab = await session.new_tab()
        await tab.navigate('https://mobile.yangkeduo.com/goods.html?goods_id=1')
"""

from typing import Any, Dict, List, Optional, Tuple

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright, Response

from .bounded_json import unwrap_jsonp
from .logger import get_component_logger
from .page_driver import BrowserTab, SessionContext

log = get_component_logger('driver')


# JavaScript injected before any page script runs
STEALTH_JS = """
// webdriver is handled by --disable-blink-features=AutomationControlled

Object.defineProperty(navigator, 'languages', {
    get: () => ['zh-CN', 'zh', 'en'],
    configurable: true
});

Object.defineProperty(navigator, 'plugins', {
    get: () => {
        const plugins = [
            { name: 'Chrome PDF Plugin', filename: 'internal-pdf-viewer', description: 'Portable Document Format', length: 1 },
            { name: 'Chrome PDF Viewer', filename: 'mhjfbmdgcfjbbpaeojofohoefgiehjai', description: '', length: 1 },
        ];
        plugins.item = (i) => plugins[i] || null;
        plugins.namedItem = (n) => plugins.find(p => p.name === n) || null;
        plugins.refresh = () => {};
        return plugins;
    },
    configurable: true
});

if (!window.chrome) {
    window.chrome = { runtime: {}, app: { isInstalled: false } };
}

const originalQuery = window.navigator.permissions && window.navigator.permissions.query;
if (originalQuery) {
    window.navigator.permissions.query = (parameters) => (
        parameters.name === 'notifications'
            ? Promise.resolve({ state: Notification.permission })
            : originalQuery(parameters)
    );
}

Object.defineProperty(navigator, 'hardwareConcurrency', { get: () => 8, configurable: true });
Object.defineProperty(navigator, 'deviceMemory', { get: () => 8, configurable: true });
"""


def get_stealth_args() -> List[str]:
    """Chrome launch arguments that help avoid detection."""
    return [
        '--disable-blink-features=AutomationControlled',
        '--disable-features=IsolateOrigins,site-per-process',
        '--disable-infobars',
        '--disable-background-timer-throttling',
        '--disable-backgrounding-occluded-windows',
        '--disable-renderer-backgrounding',
        '--disable-dev-shm-usage',
        '--disable-popup-blocking',
        '--no-first-run',
        '--password-store=basic',
        '--use-mock-keychain',
    ]


MOBILE_USER_AGENT = (
    'Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) '
    'AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1'
)

# URL fragments of responses that may carry SKU tables
SKU_RESPONSE_FRAGMENTS = ['mtop', 'detail', 'sku', 'batch']

# Domains never worth inspecting
IGNORE_DOMAINS = [
    'google', 'facebook', 'analytics', 'tracking', 'pixel', 'doubleclick', 'beacon', 'log.mmstat',
]


def _is_sku_response(url: str) -> bool:
    lowered = url.lower()
    if any(domain in lowered for domain in IGNORE_DOMAINS):
        return False
    return any(fragment in lowered for fragment in SKU_RESPONSE_FRAGMENTS)


class PlaywrightTab(BrowserTab):
    """BrowserTab backed by a Playwright Page."""

    def __init__(self, page: Page, max_captured: int = 50):
        self.page = page
        self.max_captured = max_captured
        self._committed: List[str] = []
        self._responses: List[Tuple[str, str]] = []

        page.on('response', self._on_response)
        page.on('framenavigated', self._on_frame_navigated)

    async def _on_response(self, response: Response):
        """Keep JSON/JSONP bodies of SKU-bearing API responses."""
        req_url = response.url
        if not _is_sku_response(req_url) or len(self._responses) >= self.max_captured:
            return

        content_type = response.headers.get('content-type', '')
        if 'json' not in content_type and 'javascript' not in content_type:
            return

        try:
            text = await response.text()
        except Exception:
            # Body unavailable (redirects, aborted requests)
            return

        if 'sku' not in text and 'price' not in text:
            return
        self._responses.append((req_url, unwrap_jsonp(text)))

    def _on_frame_navigated(self, frame):
        if frame == self.page.main_frame:
            self._committed.append(frame.url)

    async def navigate(self, url: str, timeout_ms: int = 60000) -> None:
        await self.page.goto(url, wait_until='domcontentloaded', timeout=timeout_ms)
        try:
            await self.page.wait_for_load_state('networkidle', timeout=min(timeout_ms, 10000))
        except Exception:
            log.debug(f"network never went idle on {url}")

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return await self.page.evaluate(script)
        return await self.page.evaluate(script, arg)

    async def click_at(self, x: float, y: float) -> None:
        await self.page.mouse.click(x, y)

    async def click(self, selector: str) -> bool:
        element = await self.page.query_selector(selector)
        if element is None:
            return False
        await element.click()
        return True

    async def scroll(self, distance: int) -> None:
        await self.page.mouse.wheel(0, distance)

    async def go_back(self) -> None:
        await self.page.go_back(wait_until='domcontentloaded')

    async def content(self) -> str:
        return await self.page.content()

    @property
    def url(self) -> str:
        return self.page.url

    async def add_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        await self.page.context.add_cookies(cookies)

    def committed_urls(self) -> List[str]:
        return list(self._committed)

    def captured_responses(self) -> List[Tuple[str, str]]:
        return list(self._responses)

    def reset(self) -> None:
        self._committed.clear()
        self._responses.clear()

    async def close(self) -> None:
        await self.page.close()


class BrowserSession:
    """
    Owns the Playwright process, one browser and one mobile context.

    Args:
        session: Explicit session context (storage state path, extra headers)
        headless: Run Chromium headless
    """

    def __init__(self, session: Optional[SessionContext] = None, headless: bool = True):
        self.session = session or SessionContext()
        self.headless = headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=get_stealth_args(),
        )

        context_args: Dict[str, Any] = dict(
            user_agent=MOBILE_USER_AGENT,
            viewport={'width': 390, 'height': 844},
            device_scale_factor=3,
            is_mobile=True,
            has_touch=True,
            locale='zh-CN',
            timezone_id='Asia/Shanghai',
            extra_http_headers={
                'Accept-Language': 'zh-CN,zh;q=0.9,en;q=0.8',
                **self.session.extra_headers,
            },
        )
        if self.session.storage_state:
            context_args['storage_state'] = self.session.storage_state

        self._context = await self._browser.new_context(**context_args)
        await self._context.add_init_script(STEALTH_JS)
        log.info(f"browser started (headless={self.headless})")

    async def new_tab(self) -> PlaywrightTab:
        if self._context is None:
            raise RuntimeError("BrowserSession.start() has not been called")
        page = await self._context.new_page()
        return PlaywrightTab(page)

    async def close(self):
        """Clean shutdown of context, browser and driver process."""
        if self._context:
            try:
                await self._context.close()
            except Exception as e:
                log.debug(f"context close failed: {e}")
        if self._browser:
            try:
                await self._browser.close()
            except Exception as e:
                log.debug(f"browser close failed: {e}")
        if self._playwright:
            await self._playwright.stop()
        self._context = self._browser = self._playwright = None

    @property
    def context(self) -> Optional[BrowserContext]:
        return self._context
