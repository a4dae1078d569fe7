"""Evidence persistence.

Layout: ``<root>/<date>/<role>/<scope>/{screenshots,snapshots,logs}`` with
files named ``<label>-<timestamp>.<ext>``. Writes are best-effort: a failed
write is logged and returns ``None`` so the run keeps going.
"""

import json
import re
import threading
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from webprobe.core.tokens import redact, redact_authorization

_UNSAFE = re.compile(r"[^a-zA-Z0-9._-]")
_SENSITIVE_HEADERS = {"authorization", "proxy-authorization"}
_COOKIE_HEADERS = {"cookie", "set-cookie"}
_COOKIE_ATTRIBUTES = {"path", "domain", "expires", "max-age", "samesite", "secure", "httponly"}
NO_TOKEN = "NO_TOKEN"


def safe_name(value: str) -> str:
    """Sanitize a string for use as a path component."""
    return _UNSAFE.sub("_", value)


def safe_stamp(now: Optional[datetime] = None) -> str:
    """Millisecond UTC timestamp without ':' or '.'."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class EvidenceDirs:
    root_dir: Path
    day_dir: Path
    role_dir: Path
    scope_dir: Path
    screenshots_dir: Path
    snapshots_dir: Path
    logs_dir: Path


def redact_cookie(value: str) -> str:
    """Mask every cookie value; attributes like Path or Expires stay readable."""
    parts = []
    for part in value.split(";"):
        name, sep, val = part.partition("=")
        if sep and name.strip().lower() not in _COOKIE_ATTRIBUTES:
            part = f"{name}={redact(val.strip())}"
        parts.append(part)
    return ";".join(parts)


def redact_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    out = {}
    for key, value in (headers or {}).items():
        lower = key.lower()
        if lower in _SENSITIVE_HEADERS and isinstance(value, str):
            out[key] = redact_authorization(value)
        elif lower in _COOKIE_HEADERS and isinstance(value, str):
            out[key] = redact_cookie(value)
        else:
            out[key] = value
    return out


def scrub(value: Any, secret: str) -> Any:
    """Replace every occurrence of `secret` inside a JSON-like value with its redaction."""
    if isinstance(value, str):
        return value.replace(secret, redact(secret))
    if isinstance(value, dict):
        return {scrub(k, secret): scrub(v, secret) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [scrub(v, secret) for v in value]
    return value


class EvidenceStore:
    def __init__(self, root: str = "reports", run_date: Optional[str] = None, logger=None):
        self.root = Path(root).resolve()
        self.run_date = run_date or date.today().isoformat()
        self.logger = logger
        self._lock = threading.Lock()

    # ── paths ───────────────────────────────────────────────────

    def dirs(self, role: str = "global", scope: str = "general") -> EvidenceDirs:
        day_dir = self.root / self.run_date
        role_dir = day_dir / safe_name(role)
        scope_dir = role_dir / safe_name(scope)
        paths = EvidenceDirs(
            root_dir=self.root,
            day_dir=day_dir,
            role_dir=role_dir,
            scope_dir=scope_dir,
            screenshots_dir=scope_dir / "screenshots",
            snapshots_dir=scope_dir / "snapshots",
            logs_dir=scope_dir / "logs",
        )
        for d in (paths.screenshots_dir, paths.snapshots_dir, paths.logs_dir):
            d.mkdir(parents=True, exist_ok=True)
        return paths

    def reserve(self, folder: Path, label: str, ext: str,
                stamp: Optional[str] = None) -> Path:
        """Claim a file name that no earlier artifact uses.

        The name is ``<label>-<stamp>.<ext>``; a numeric suffix is appended
        when the same label is written twice inside one millisecond.
        """
        stamp = stamp or safe_stamp()
        base = f"{safe_name(label)}-{stamp}"
        with self._lock:
            candidate = folder / f"{base}.{ext}"
            n = 1
            while candidate.exists():
                candidate = folder / f"{base}-{n}.{ext}"
                n += 1
            candidate.touch(exist_ok=False)
        return candidate

    # ── writers ─────────────────────────────────────────────────

    def write_json(self, path: Path, data: Any) -> Optional[str]:
        try:
            path.write_text(json.dumps(data, indent=2, default=str, ensure_ascii=False),
                            encoding="utf-8")
        except OSError as e:
            self._warn(f"evidence write failed for {path.name}: {e}")
            return None
        return str(path)

    def save_json(self, dirs: EvidenceDirs, label: str, data: Any) -> Optional[str]:
        try:
            path = self.reserve(dirs.logs_dir, label, "json")
        except OSError as e:
            self._warn(f"evidence path unavailable for {label}: {e}")
            return None
        return self.write_json(path, data)

    def save_request_response(self, dirs: EvidenceDirs, label: str,
                              request: Dict[str, Any], response: Dict[str, Any],
                              token_used: Optional[str]) -> Optional[str]:
        """Persist one request/response pair with credentials redacted.

        Targets sometimes echo the bearer back in a body or cookie, so the
        token used is scrubbed from the whole response, not only its headers.
        """
        response = {**response, "headers": redact_headers(response.get("headers"))}
        if token_used and token_used != NO_TOKEN:
            response = scrub(response, token_used)
        record = {
            "request": {**request, "headers": redact_headers(request.get("headers"))},
            "response": response,
            "tokenUsed": redact(token_used) if token_used else None,
        }
        try:
            path = self.reserve(dirs.logs_dir, f"{label}-http", "json")
        except OSError as e:
            self._warn(f"evidence path unavailable for {label}: {e}")
            return None
        return self.write_json(path, record)

    def capture_failure(self, driver, dirs: EvidenceDirs,
                        label: str) -> Tuple[Optional[str], Optional[str]]:
        """Screenshot plus HTML snapshot of the current page."""
        stamp = safe_stamp()
        shot = html = None
        try:
            shot_path = self.reserve(dirs.screenshots_dir, label, "png", stamp)
            driver.screenshot(str(shot_path))
            shot = str(shot_path)
        except Exception as e:  # driver and disk failures alike
            self._warn(f"screenshot failed for {label}: {e}")
        try:
            html_path = self.reserve(dirs.snapshots_dir, label, "html", stamp)
            html_path.write_text(driver.content(), encoding="utf-8")
            html = str(html_path)
        except Exception as e:
            self._warn(f"snapshot failed for {label}: {e}")
        return shot, html

    def save_watcher_logs(self, dirs: EvidenceDirs, console_logs, network_logs,
                          label: str = "watchers") -> Dict[str, Optional[str]]:
        return {
            "console": self.save_json(dirs, f"{label}-console", console_logs),
            "network": self.save_json(dirs, f"{label}-network", network_logs),
        }

    def _warn(self, msg: str):
        if self.logger:
            self.logger.warn(msg)
