"""Runtime configuration.

Values come from ``.env.<env>`` (read with python-dotenv) with the process
environment layered on top, so CI can inject tokens and IDs without touching
the file.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse

from dotenv import dotenv_values

from webprobe.core.errors import ConfigError

ENV_NAMES = ("local", "stage", "prod")
ONLY_MODES = ("all", "flows", "attacks", "edges", "performance")
ROLES = ("candidate", "recruiter", "companyAdmin", "superAdmin")

_ROLE_PREFIX = {
    "candidate": "CANDIDATE",
    "recruiter": "RECRUITER",
    "companyAdmin": "COMPANY_ADMIN",
    "superAdmin": "SUPER_ADMIN",
}

OVERRIDE_KEYS = (
    "CANDIDATE_A_TOKEN", "CANDIDATE_B_TOKEN", "RECRUITER_TOKEN",
    "COMPANY_ADMIN_TOKEN", "SUPER_ADMIN_TOKEN",
    "OTHER_CANDIDATE_ID", "OTHER_COMPANY_ID", "OTHER_COMPANY_JOB_ID", "TEST_JOB_ID",
)

DEFAULT_SELECTORS = {
    "MAIN_FORM_SUBMIT_SELECTOR": 'button[type="submit"]',
    "MAIN_FORM_ERROR_SELECTOR": '[role="alert"]',
    "CV_FILE_SELECTOR": 'input[type="file"]',
    "CV_SUBMIT_SELECTOR": 'button[type="submit"]',
    "CV_ERROR_SELECTOR": '[role="alert"]',
}

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_TRUE = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Credential:
    email: str
    password: str
    id: Optional[str] = None


@dataclass(frozen=True)
class AppConfig:
    env_name: str
    base_url: str
    api_base_url: str
    api_base_path: str
    credentials: Dict[str, Credential]
    slow_threshold_ms: int = 2000
    page_threshold_ms: int = 3000
    api_threshold_ms: int = 2000
    overrides: Dict[str, str] = field(default_factory=dict)
    selectors: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SELECTORS))
    jwt_secret: str = ""
    reports_dir: str = "reports"
    headless: bool = True
    timeout: float = 15.0

    def override(self, key: str) -> Optional[str]:
        return self.overrides.get(key) or None

    def selector(self, key: str) -> str:
        return self.selectors.get(key) or DEFAULT_SELECTORS[key]


def _int(values: Mapping[str, str], key: str, default: int) -> int:
    raw = values.get(key)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def _url(values: Mapping[str, str], key: str, required: bool = True) -> Optional[str]:
    raw = (values.get(key) or "").strip()
    if not raw:
        if required:
            raise ConfigError(f"{key} is required")
        return None
    parsed = urlparse(raw)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"{key} must be an http(s) URL, got {raw!r}")
    return raw.rstrip("/")


def _credential(values: Mapping[str, str], role: str) -> Credential:
    prefix = _ROLE_PREFIX[role]
    email = (values.get(f"{prefix}_EMAIL") or "").strip()
    password = values.get(f"{prefix}_PASSWORD") or ""
    if not _EMAIL.match(email):
        raise ConfigError(f"{prefix}_EMAIL must be a valid email, got {email!r}")
    if not password:
        raise ConfigError(f"{prefix}_PASSWORD is required")
    return Credential(email=email, password=password)


def config_from_mapping(values: Mapping[str, str], env_name: str = "local") -> AppConfig:
    """Validate a flat key/value mapping into an AppConfig."""
    if env_name not in ENV_NAMES:
        raise ConfigError(f"unknown environment {env_name!r}, expected one of {ENV_NAMES}")

    base_url = _url(values, "BASE_URL")
    api_base_url = _url(values, "API_BASE_URL", required=False) or base_url
    api_base_path = (values.get("API_BASE_PATH") or "/api").strip()
    if not api_base_path.startswith("/"):
        api_base_path = f"/{api_base_path}"

    headless_raw = values.get("HEADLESS")
    headless = env_name != "local" if headless_raw in (None, "") \
        else headless_raw.strip().lower() in _TRUE

    return AppConfig(
        env_name=env_name,
        base_url=base_url,
        api_base_url=api_base_url,
        api_base_path=api_base_path,
        credentials={role: _credential(values, role) for role in ROLES},
        slow_threshold_ms=_int(values, "SLOW_THRESHOLD_MS", 2000),
        page_threshold_ms=_int(values, "PAGE_THRESHOLD_MS", 3000),
        api_threshold_ms=_int(values, "API_THRESHOLD_MS", 2000),
        overrides={k: values[k] for k in OVERRIDE_KEYS if values.get(k)},
        selectors={k: values.get(k) or v for k, v in DEFAULT_SELECTORS.items()},
        jwt_secret=values.get("JWT_SECRET") or "",
        reports_dir=values.get("REPORTS_DIR") or "reports",
        headless=headless,
        timeout=_int(values, "REQUEST_TIMEOUT_S", 15),
    )


def load_config(env_name: str = "local", env_dir: Optional[str] = None,
                environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load ``.env.<env_name>`` and overlay the process environment."""
    env_file = Path(env_dir or os.getcwd()) / f".env.{env_name}"
    if not env_file.is_file():
        raise ConfigError(f"Missing env file: {env_file}")

    file_values = {k: v for k, v in dotenv_values(env_file).items() if v is not None}
    merged = {**file_values, **(os.environ if environ is None else environ)}
    return config_from_mapping(merged, env_name)
