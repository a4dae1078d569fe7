"""Browser automation seam.

The engine only talks to :class:`BrowserDriver`. :class:`PlaywrightDriver`
adapts a Playwright (sync API) page to it and turns Playwright failures into
:class:`DriverError`, so callers handle one exception type for "the UI step
did not work".
"""

import re
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from webprobe.core.errors import DriverError

ACTION_TIMEOUT_MS = 20_000
NAVIGATION_TIMEOUT_MS = 45_000


@dataclass
class ObservedResponse:
    """A network response as delivered to watchers."""
    request_key: Any
    url: str
    status: int
    headers: Dict[str, str]
    duration_ms: float
    text: Optional[Callable[[], str]] = None

    def read_text(self) -> str:
        if self.text is None:
            return ""
        try:
            return self.text()
        except DriverError:
            return ""


class BrowserDriver(ABC):
    """The narrow set of UI operations the engine needs."""

    @property
    @abstractmethod
    def url(self) -> str: ...

    @abstractmethod
    def goto(self, url: str) -> None: ...

    @abstractmethod
    def fill(self, selector: str, value: str) -> None: ...

    @abstractmethod
    def fill_by_label(self, label: str, value: str) -> None: ...

    @abstractmethod
    def click(self, selector: str) -> None: ...

    @abstractmethod
    def click_by_role(self, role: str, name: str) -> None:
        """Click the first element with `role` whose accessible name matches regex `name`."""

    @abstractmethod
    def set_input_files(self, selector: str, path: str) -> None: ...

    @abstractmethod
    def wait_for(self, selector: str, state: str = "visible",
                 timeout_ms: int = 12_000) -> None: ...

    @abstractmethod
    def wait_for_load(self, state: str = "networkidle") -> None: ...

    @abstractmethod
    def is_visible(self, selector: str) -> bool: ...

    @abstractmethod
    def is_role_visible(self, role: str, name: str) -> bool: ...

    @abstractmethod
    def read_text(self, selector: str) -> str:
        """Trimmed text of the first visible match, or '' when none is visible."""

    @abstractmethod
    def screenshot(self, path: str) -> None: ...

    @abstractmethod
    def content(self) -> str: ...

    @abstractmethod
    def navigation_timing(self) -> Dict[str, float]: ...

    @abstractmethod
    def on_console(self, callback: Callable[[str, str], None]) -> None: ...

    @abstractmethod
    def on_page_error(self, callback: Callable[[str], None]) -> None: ...

    @abstractmethod
    def on_request(self, callback: Callable[[Any], None]) -> None: ...

    @abstractmethod
    def on_request_failed(self, callback: Callable[[Any, str], None]) -> None: ...

    @abstractmethod
    def on_response(self, callback: Callable[[ObservedResponse], None]) -> None: ...


_NAV_TIMING_JS = """() => {
    const nav = performance.getEntriesByType('navigation')[0];
    if (!nav) return {};
    return { loadEventEnd: nav.loadEventEnd, domInteractive: nav.domInteractive };
}"""


class PlaywrightDriver(BrowserDriver):
    def __init__(self, page):
        self.page = page
        page.set_default_timeout(ACTION_TIMEOUT_MS)
        page.set_default_navigation_timeout(NAVIGATION_TIMEOUT_MS)
        # request -> monotonic send time; popped on response or failure
        self._sent: Dict[Any, float] = {}
        page.on("request", lambda req: self._sent.__setitem__(req, time.monotonic()))
        page.on("requestfailed", lambda req: self._sent.pop(req, None))

    def _call(self, what: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except PlaywrightError as e:
            raise DriverError(f"{what} failed: {e}") from e

    @property
    def url(self) -> str:
        return self.page.url

    def goto(self, url: str) -> None:
        self._call(f"goto {url}", self.page.goto, url, wait_until="domcontentloaded")

    def fill(self, selector: str, value: str) -> None:
        self._call(f"fill {selector}", self.page.locator(selector).first.fill, value)

    def fill_by_label(self, label: str, value: str) -> None:
        self._call(f"fill label {label}", self.page.get_by_label(label).first.fill, value)

    def click(self, selector: str) -> None:
        self._call(f"click {selector}", self.page.locator(selector).first.click)

    def click_by_role(self, role: str, name: str) -> None:
        loc = self.page.get_by_role(role, name=re.compile(name, re.I)).first
        self._call(f"click {role} /{name}/", loc.click)

    def set_input_files(self, selector: str, path: str) -> None:
        self._call(f"upload {selector}", self.page.set_input_files, selector, path)

    def wait_for(self, selector: str, state: str = "visible", timeout_ms: int = 12_000) -> None:
        loc = self.page.locator(selector).first
        self._call(f"wait {selector} {state}", loc.wait_for, state=state, timeout=timeout_ms)

    def wait_for_load(self, state: str = "networkidle") -> None:
        self._call(f"wait load {state}", self.page.wait_for_load_state, state)

    def is_visible(self, selector: str) -> bool:
        try:
            return self.page.locator(selector).first.is_visible()
        except PlaywrightError:
            return False

    def is_role_visible(self, role: str, name: str) -> bool:
        try:
            return self.page.get_by_role(role, name=re.compile(name, re.I)).first.is_visible()
        except PlaywrightError:
            return False

    def read_text(self, selector: str) -> str:
        if not self.is_visible(selector):
            return ""
        text = self._call(f"read {selector}", self.page.locator(selector).first.text_content)
        return (text or "").strip()

    def screenshot(self, path: str) -> None:
        self._call("screenshot", self.page.screenshot, path=path, full_page=True)

    def content(self) -> str:
        return self._call("content", self.page.content)

    def navigation_timing(self) -> Dict[str, float]:
        return self._call("navigation timing", self.page.evaluate, _NAV_TIMING_JS) or {}

    # ── subscriptions ───────────────────────────────────────────

    def on_console(self, callback: Callable[[str, str], None]) -> None:
        self.page.on("console", lambda msg: callback(msg.type, msg.text))

    def on_page_error(self, callback: Callable[[str], None]) -> None:
        self.page.on("pageerror", lambda err: callback(str(err)))

    def on_request(self, callback: Callable[[Any], None]) -> None:
        self.page.on("request", callback)

    def on_request_failed(self, callback: Callable[[Any, str], None]) -> None:
        self.page.on("requestfailed", lambda req: callback(req, req.failure or "failed"))

    def on_response(self, callback: Callable[[ObservedResponse], None]) -> None:
        self.page.on("response", lambda resp: callback(self._observe(resp)))

    def _observe(self, resp) -> ObservedResponse:
        sent = self._sent.pop(resp.request, None)
        return ObservedResponse(
            request_key=resp.request,
            url=resp.url,
            status=resp.status,
            headers=dict(resp.headers),
            duration_ms=(time.monotonic() - sent) * 1000 if sent is not None else 0,
            text=lambda: self._call("response body", resp.text),
        )


@contextmanager
def launch_driver(base_url: str, headless: bool = True,
                  proxy: Optional[str] = None) -> Iterator[PlaywrightDriver]:
    """Start Chromium and yield a driver; everything is closed on exit."""
    with sync_playwright() as pw:
        try:
            browser = pw.chromium.launch(
                headless=headless, proxy={"server": proxy} if proxy else None)
        except PlaywrightError as e:
            raise DriverError(f"browser launch failed: {e}") from e
        try:
            context = browser.new_context(base_url=base_url, ignore_https_errors=True)
            try:
                yield PlaywrightDriver(context.new_page())
            finally:
                context.close()
        finally:
            browser.close()
