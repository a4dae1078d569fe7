"""Pytest fixtures for WebProbe.

The HTTP side runs against the in-memory VulnLab app through
httpx.WSGITransport; the browser side uses FakeDriver below.
"""

from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from vuln_lab.app import LAB_USERS, LabSettings, create_app
from webprobe.browser.driver import BrowserDriver, ObservedResponse
from webprobe.core.config import Credential, config_from_mapping
from webprobe.core.engine import Engine
from webprobe.core.errors import DriverError
from webprobe.core.evidence import EvidenceStore
from webprobe.core.runtime import login_for_token
from webprobe.reporters.console import Log

LAB_URL = "http://lab.test"


def lab_env(**extra) -> Dict[str, str]:
    values = {
        "BASE_URL": LAB_URL,
        "API_BASE_PATH": "/api",
        "CANDIDATE_EMAIL": LAB_USERS["candidate"][0],
        "CANDIDATE_PASSWORD": LAB_USERS["candidate"][1],
        "RECRUITER_EMAIL": LAB_USERS["recruiter"][0],
        "RECRUITER_PASSWORD": LAB_USERS["recruiter"][1],
        "COMPANY_ADMIN_EMAIL": LAB_USERS["companyAdmin"][0],
        "COMPANY_ADMIN_PASSWORD": LAB_USERS["companyAdmin"][1],
        "SUPER_ADMIN_EMAIL": LAB_USERS["superAdmin"][0],
        "SUPER_ADMIN_PASSWORD": LAB_USERS["superAdmin"][1],
    }
    values.update(extra)
    return values


@pytest.fixture
def log():
    return Log(verbose=0)


@pytest.fixture
def evidence(tmp_path, log):
    return EvidenceStore(str(tmp_path / "reports"), run_date="2026-01-01", logger=log)


@pytest.fixture
def lab_config():
    return config_from_mapping(lab_env())


@pytest.fixture
def make_engine(log):
    """Factory: an Engine wired to a fresh VulnLab app built from `settings`."""
    engines: List[Engine] = []

    def factory(settings: Optional[LabSettings] = None, **kwargs) -> Engine:
        app = create_app(settings or LabSettings())
        engine = Engine(LAB_URL, "/api", logger=log,
                        transport=httpx.WSGITransport(app=app), **kwargs)
        engine.app = app
        engines.append(engine)
        return engine

    yield factory
    for engine in engines:
        engine.close()


@pytest.fixture
def lab_login():
    def login(engine: Engine, who: str) -> str:
        email, password = LAB_USERS[who]
        return login_for_token(engine, Credential(email, password), who)
    return login


class FakeDriver(BrowserDriver):
    """Scripted stand-in for a browser page.

    `pages` maps a path to HTML. `on_submit` is called on every click of a
    selector and may emit console or network events through `emit_*`.
    Selectors listed in `broken` raise DriverError when touched.
    """

    def __init__(self, pages: Optional[Dict[str, str]] = None, url: str = "/"):
        self.pages = pages or {}
        self.current = url
        self.redirects: Dict[str, str] = {}
        self.errors: Dict[str, str] = {}
        self.visible_roles: List[str] = []
        self.broken: set = set()
        self.timing: Dict[str, float] = {}
        self.actions: List[tuple] = []
        self.on_submit: Optional[Callable[["FakeDriver"], None]] = None
        self._console: List[Callable] = []
        self._page_error: List[Callable] = []
        self._request: List[Callable] = []
        self._request_failed: List[Callable] = []
        self._response: List[Callable] = []

    def _touch(self, what: str):
        if what in self.broken:
            raise DriverError(f"{what} timed out")

    @property
    def url(self) -> str:
        return self.current

    def goto(self, url: str) -> None:
        self._touch(url)
        self.actions.append(("goto", url))
        self.current = self.redirects.get(url, url)

    def fill(self, selector: str, value: str) -> None:
        self._touch(selector)
        self.actions.append(("fill", selector, value))

    def fill_by_label(self, label: str, value: str) -> None:
        self._touch(label)
        self.actions.append(("fill_label", label, value))

    def click(self, selector: str) -> None:
        self._touch(selector)
        self.actions.append(("click", selector))
        if self.on_submit:
            self.on_submit(self)

    def click_by_role(self, role: str, name: str) -> None:
        self._touch(name)
        self.actions.append(("click_role", role, name))
        if self.on_submit:
            self.on_submit(self)

    def set_input_files(self, selector: str, path: str) -> None:
        self._touch(selector)
        self.actions.append(("upload", selector, path))

    def wait_for(self, selector: str, state: str = "visible", timeout_ms: int = 12_000) -> None:
        self._touch(selector)
        self.actions.append(("wait_for", selector))

    def wait_for_load(self, state: str = "networkidle") -> None:
        self.actions.append(("wait_load", state))

    def is_visible(self, selector: str) -> bool:
        return bool(self.errors.get(selector))

    def is_role_visible(self, role: str, name: str) -> bool:
        return name in self.visible_roles

    def read_text(self, selector: str) -> str:
        return self.errors.get(selector, "")

    def screenshot(self, path: str) -> None:
        with open(path, "wb") as fh:
            fh.write(b"\x89PNG fake")

    def content(self) -> str:
        return self.pages.get(self.current, "<html></html>")

    def navigation_timing(self) -> Dict[str, float]:
        return dict(self.timing)

    def on_console(self, callback) -> None:
        self._console.append(callback)

    def on_page_error(self, callback) -> None:
        self._page_error.append(callback)

    def on_request(self, callback) -> None:
        self._request.append(callback)

    def on_request_failed(self, callback) -> None:
        self._request_failed.append(callback)

    def on_response(self, callback) -> None:
        self._response.append(callback)

    # ── event helpers for tests ─────────────────────────────────

    def emit_console(self, level: str, message: str):
        for cb in self._console:
            cb(level, message)

    def emit_page_error(self, message: str):
        for cb in self._page_error:
            cb(message)

    def emit_request(self, key: Any):
        for cb in self._request:
            cb(key)

    def emit_request_failed(self, key: Any, failure: str = "net::ERR_ABORTED"):
        for cb in self._request_failed:
            cb(key, failure)

    def emit_response(self, key: Any, url: str = "http://lab.test/api/x", status: int = 200,
                      headers: Optional[Dict[str, str]] = None, duration_ms: float = 10,
                      body: str = ""):
        resp = ObservedResponse(key, url, status, headers or {}, duration_ms, lambda: body)
        for cb in self._response:
            cb(resp)


SAFE_HEADERS = {
    "x-frame-options": "DENY",
    "content-security-policy": "default-src 'self'",
    "x-content-type-options": "nosniff",
}


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture
def safe_headers():
    return dict(SAFE_HEADERS)
