"""
Test doubles for the browser and chat-completion boundaries.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from product_import.enrichment.client import ChatClient
from product_import.page_driver import BrowserTab


class FakeTab(BrowserTab):
    """
    Scripted tab.

    scripts maps an in-page script to its result: a plain value or a callable
    taking the script argument (see Sequence).
    page_responses maps a URL to the SKU responses intercepted while it loads.
    """

    def __init__(
        self,
        scripts: Optional[Dict[str, Any]] = None,
        html: str = '',
        responses: Optional[List[Tuple[str, str]]] = None,
        fail_navigation: bool = False,
        page_responses: Optional[Dict[str, List[Tuple[str, str]]]] = None,
    ):
        self.scripts = dict(scripts or {})
        self.html = html
        self.responses = list(responses or [])
        self.fail_navigation = fail_navigation
        self.page_responses = dict(page_responses or {})

        self._url = ''
        self._committed: List[str] = []
        self.evaluated: List[str] = []
        self.clicks: List[Tuple[float, float]] = []
        self.click_hooks: List[Callable[[], None]] = []
        self.back_count = 0
        self.cookies: List[Dict[str, Any]] = []
        self.resets = 0

    def on(self, script: str, *results: Any) -> 'FakeTab':
        self.scripts[script] = Sequence(*results) if len(results) > 1 else results[0]
        return self

    def commit(self, url: str):
        """Simulate a main-frame navigation."""
        self._url = url
        self._committed.append(url)

    async def navigate(self, url: str, timeout_ms: int = 60000) -> None:
        if self.fail_navigation:
            raise RuntimeError("net::ERR_CONNECTION_REFUSED")
        self.commit(url)
        self.responses.extend(self.page_responses.get(url, []))

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluated.append(script)
        value = self.scripts.get(script)
        if callable(value):
            return value(arg)
        return value

    async def click_at(self, x: float, y: float) -> None:
        self.clicks.append((x, y))
        if self.click_hooks:
            self.click_hooks.pop(0)()

    async def click(self, selector: str) -> bool:
        return False

    async def scroll(self, distance: int) -> None:
        return None

    async def go_back(self) -> None:
        self.back_count += 1
        if len(self._committed) > 1:
            self._committed.append(self._committed[-2])
            self._url = self._committed[-1]

    async def content(self) -> str:
        return self.html

    @property
    def url(self) -> str:
        return self._url

    async def add_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        self.cookies.extend(cookies)

    def committed_urls(self) -> List[str]:
        return list(self._committed)

    def captured_responses(self) -> List[Tuple[str, str]]:
        return list(self.responses)

    def reset(self) -> None:
        self.resets += 1
        self._committed.clear()
        self.responses.clear()


class Sequence:
    """Script result that yields values in turn; the last one repeats."""

    def __init__(self, *values: Any):
        self.values = list(values)

    def __call__(self, arg: Any = None) -> Any:
        return self.values.pop(0) if len(self.values) > 1 else self.values[0]


class ScriptedChatClient(ChatClient):
    """
    Replies from a list (strings are returned, exceptions raised) or from a
    responder(model, prompt) callable. Every call is recorded.
    """

    def __init__(self, *replies: Any, responder: Optional[Callable[[str, str], Any]] = None):
        self.replies = list(replies)
        self.responder = responder
        self.calls: List[Tuple[str, str]] = []

    @property
    def models(self) -> List[str]:
        return [model for model, _ in self.calls]

    async def request(self, model: str, prompt: str) -> str:
        self.calls.append((model, prompt))
        if self.responder is not None:
            reply = self.responder(model, prompt)
        elif self.replies:
            reply = self.replies.pop(0)
        else:
            raise AssertionError(f"unexpected request #{len(self.calls)} to {model}")
        if isinstance(reply, BaseException):
            raise reply
        return reply


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)
