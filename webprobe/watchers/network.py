"""Network response watcher.

Each response is checked for four independent conditions, and each one that
holds is recorded as its own event: error status, slow response, missing
security headers, sensitive-looking keys in the body.

Responses are attributed to the step that was active when their *request*
went out, so a late answer from step N never lands in step N+1's window.
"""

import json
import re
import threading
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, List, Optional

from webprobe.watchers.base import StepClock, StepContext, Watcher, now_iso

REQUIRED_HEADERS = ("x-frame-options", "content-security-policy", "x-content-type-options")
SENSITIVE_KEYS = ("password", "token", "secret", "ssn")
# Normalized (lowercase, no '_' or '-') JSON keys treated as sensitive.
SENSITIVE_JSON_KEYS = frozenset({
    "password", "passwd", "passwordhash", "token", "accesstoken", "refreshtoken",
    "idtoken", "authtoken", "secret", "clientsecret", "apikey", "privatekey", "ssn",
})
_NORMALIZE = re.compile(r"[_\-]")

HTTP_ERROR = "http_error"
SLOW_RESPONSE = "slow_response"
MISSING_HEADERS = "missing_security_headers"
SENSITIVE_DATA = "sensitive_data_exposed"


@dataclass(frozen=True)
class NetworkEvent:
    timestamp: str
    seq: int
    role: str
    flow: str
    type: str
    url: str
    status: int
    duration_ms: int
    details: str


def _walk_keys(value: Any) -> Iterator[str]:
    if isinstance(value, dict):
        for k, v in value.items():
            yield str(k)
            yield from _walk_keys(v)
    elif isinstance(value, list):
        for item in value:
            yield from _walk_keys(item)


def find_sensitive_key(text: str) -> Optional[str]:
    """Heuristic lint for secrets in a response body.

    JSON bodies: exact match on normalized key names anywhere in the tree,
    so ``accessToken`` hits and ``password_policy`` does not. Other bodies
    fall back to a substring scan for ``"key"`` or ``key:``.
    """
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, (dict, list)):
        for key in _walk_keys(parsed):
            if _NORMALIZE.sub("", key.lower()) in SENSITIVE_JSON_KEYS:
                return key
        return None
    lower = text.lower()
    for key in SENSITIVE_KEYS:
        if f'"{key}"' in lower or f"{key}:" in lower:
            return key
    return None


class NetworkWatcher(Watcher[NetworkEvent]):

    def __init__(self, clock: StepClock, slow_threshold_ms: int = 2000):
        super().__init__(clock)
        self.slow_threshold_ms = slow_threshold_ms
        self._issued: Dict[Any, StepContext] = {}
        self._issued_lock = threading.Lock()
        self._largest_ms = 0

    def attach(self, driver) -> "NetworkWatcher":
        driver.on_request(self.on_request)
        driver.on_request_failed(self.on_request_failed)
        driver.on_response(self.on_response)
        return self

    def on_request(self, request_key: Any):
        with self._issued_lock:
            self._issued[request_key] = self.clock.current

    def on_request_failed(self, request_key: Any, failure: str = ""):
        # no response will follow
        with self._issued_lock:
            self._issued.pop(request_key, None)

    def pending_requests(self) -> int:
        with self._issued_lock:
            return len(self._issued)

    def on_response(self, response):
        """`response` is an ObservedResponse from the browser driver."""
        with self._issued_lock:
            ctx = self._issued.pop(response.request_key, None)
        ctx = ctx or self.clock.current
        duration = max(0, int(round(response.duration_ms)))
        self._largest_ms = max(self._largest_ms, duration)

        if response.status >= 400:
            self._push(ctx, HTTP_ERROR, response, duration, f"Status {response.status}")
        if duration > self.slow_threshold_ms:
            self._push(ctx, SLOW_RESPONSE, response, duration, f">{self.slow_threshold_ms}ms")
        headers = {k.lower(): v for k, v in response.headers.items()}
        missing = [h for h in REQUIRED_HEADERS if not headers.get(h)]
        if missing:
            self._push(ctx, MISSING_HEADERS, response, duration, ", ".join(missing))
        hit = find_sensitive_key(response.read_text())
        if hit:
            self._push(ctx, SENSITIVE_DATA, response, duration, f"Found field: {hit}")

    def _push(self, ctx: StepContext, kind: str, response, duration: int, details: str):
        self._record(NetworkEvent(now_iso(), ctx.seq, ctx.role, ctx.flow, kind,
                                  response.url, response.status, duration, details))

    def largest_duration_ms(self) -> int:
        return self._largest_ms

    def of_type(self, kind: str) -> List[NetworkEvent]:
        return [e for e in self.events() if e.type == kind]

    def to_records(self) -> List[Dict[str, Any]]:
        return [asdict(e) for e in self.events()]
