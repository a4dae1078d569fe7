"""Test-account, token and seed-ID preparation.

Everything here talks to the target API before the suites run. Account
registration and application seeding are best-effort; a role token that
cannot be obtained is fatal because every attack battery depends on it.
"""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from webprobe.core.config import ROLES, AppConfig, Credential
from webprobe.core.engine import Engine, read_body
from webprobe.core.errors import SetupError, TokenExtractionError

TOKEN_SHAPES = ("top_level", "data", "payload", "cookie")
_SHAPE_KEYS = {
    "top_level": ("token", "accessToken", "jwt"),
    "data": ("token", "accessToken", "jwt"),
    "payload": ("token", "accessToken"),
}
_COOKIE_TOKEN = re.compile(r"(?:token|access_token|accessToken|jwt|authToken)=([^;]+)", re.I)

# Application IDs the target ships with; never deleted during cleanup.
DEFAULT_IDS = ("1", "2")
_PREVIEW = 200


@dataclass(frozen=True)
class SeededUser:
    role: str
    email: str
    password: str
    id: Optional[str] = None

    def credential(self) -> Credential:
        return Credential(self.email, self.password, self.id)


@dataclass(frozen=True)
class Tokens:
    candidate_a: str
    candidate_b: str
    recruiter: str
    company_admin: str
    super_admin: str


@dataclass(frozen=True)
class SeedIds:
    candidate_a_application_id: str
    candidate_b_application_id: str
    other_candidate_id: str
    other_company_id: str
    other_company_job_id: str
    sources: Dict[str, str] = field(default_factory=dict)


@dataclass
class RuntimeState:
    created_users: List[SeededUser]
    tokens: Tokens
    ids: SeedIds
    test_job_id: str = "1"
    # applications created by the attack batteries, owned by candidate A
    extra_application_ids: List[str] = field(default_factory=list)


# ── response shapes ─────────────────────────────────────────────

def _shape_token(body: Any, shape: str, set_cookie: Optional[str]) -> Optional[str]:
    if shape == "cookie":
        match = _COOKIE_TOKEN.search(set_cookie or "")
        return match.group(1) if match else None
    if not isinstance(body, dict):
        return None
    source = body if shape == "top_level" else body.get(shape)
    if not isinstance(source, dict):
        return None
    for key in _SHAPE_KEYS[shape]:
        value = source.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def extract_token(body: Any, set_cookie: Optional[str] = None, label: str = "login",
                  status: int = 0) -> Tuple[str, str]:
    """Return ``(shape, token)`` from the first login-response shape that has one.

    Shapes are tried in the order of TOKEN_SHAPES. Raises
    TokenExtractionError naming every shape tried when none matches.
    """
    for shape in TOKEN_SHAPES:
        token = _shape_token(body, shape, set_cookie)
        if token:
            return shape, token
    raise TokenExtractionError(label, status, TOKEN_SHAPES, short_body(body))


def read_id(body: Any) -> Optional[str]:
    """Resource ID from ``{"id": ..}`` or ``{"data": {"id": ..}}``."""
    if not isinstance(body, dict):
        return None
    value = body.get("id")
    if value in (None, "") and isinstance(body.get("data"), dict):
        value = body["data"].get("id")
    return None if value in (None, "") else str(value)


def short_body(body: Any) -> str:
    raw = body if isinstance(body, str) else repr(body)
    return raw[:_PREVIEW]


# ── fallbacks ───────────────────────────────────────────────────

@dataclass(frozen=True)
class Fallback:
    name: str
    value: Optional[str]


class FallbackChain:
    """Ordered named sources; the first non-empty one wins."""

    def __init__(self, label: str, *tiers: Fallback):
        if not tiers:
            raise ValueError("FallbackChain needs at least one tier")
        self.label = label
        self.tiers = tiers

    def resolve(self) -> Tuple[str, str]:
        """Return ``(value, tier name)``."""
        for tier in self.tiers:
            if tier.value not in (None, ""):
                return str(tier.value), tier.name
        raise SetupError(f"no source produced a value for {self.label}: "
                         f"tried {', '.join(t.name for t in self.tiers)}")


# ── API steps ───────────────────────────────────────────────────

def create_test_users(engine: Engine, logger=None, now: Optional[int] = None) -> List[SeededUser]:
    """Register two throw-away users per role; failures are skipped."""
    stamp = now if now is not None else int(time.time() * 1000)
    users: List[SeededUser] = []
    for role in ROLES:
        for i in (1, 2):
            email = f"qa.{role}.{stamp}.{i}@example.test"
            password = f"Qa!{role}{i}Pass123"
            payload = {"email": email, "password": password, "role": role,
                       "fullName": f"QA {role} {i}"}
            try:
                resp = engine.send("POST", engine.api("/auth/register"), json=payload)
            except httpx.HTTPError as e:
                _warn(logger, role, "register-user", f"registration skipped for {email}: {e}")
                continue
            if not resp.is_success:
                _warn(logger, role, "register-user",
                      f"registration refused for {email}: status={resp.status_code}")
                continue
            users.append(SeededUser(role, email, password, read_id(read_body(resp))))
    return users


def login_for_token(engine: Engine, cred: Credential, label: str, logger=None) -> str:
    try:
        resp = engine.send("POST", engine.api("/auth/login"),
                           json={"email": cred.email, "password": cred.password},
                           headers={"accept": "application/json"})
    except httpx.HTTPError as e:
        raise SetupError(f"Login failed for {label}: {e}") from e
    body = read_body(resp)
    if not resp.is_success:
        raise SetupError(f"Login failed for {label}: status={resp.status_code} "
                         f"body={short_body(body)}")
    shape, token = extract_token(body, resp.headers.get("set-cookie"), label, resp.status_code)
    if logger:
        logger.info(f"[runner] token issued for {label} ({shape})")
    return token


def pick_user(users: List[SeededUser], role: str, index: int, fallback: Credential) -> Credential:
    same_role = [u for u in users if u.role == role]
    return same_role[index].credential() if index < len(same_role) else fallback


def issue_tokens(engine: Engine, config: AppConfig, users: List[SeededUser],
                 logger=None) -> Tokens:
    """Bearer token per role: environment override first, else a real login."""
    creds = config.credentials

    def token(override_key: str, label: str, cred: Callable[[], Credential]) -> str:
        override = config.override(override_key)
        if override:
            if logger:
                logger.info(f"[runner] token for {label} taken from {override_key}")
            return override
        return login_for_token(engine, cred(), label, logger)

    return Tokens(
        candidate_a=token("CANDIDATE_A_TOKEN", "candidateA",
                          lambda: pick_user(users, "candidate", 0, creds["candidate"])),
        candidate_b=token("CANDIDATE_B_TOKEN", "candidateB",
                          lambda: pick_user(users, "candidate", 1, creds["candidate"])),
        recruiter=token("RECRUITER_TOKEN", "recruiter", lambda: creds["recruiter"]),
        company_admin=token("COMPANY_ADMIN_TOKEN", "companyAdmin",
                            lambda: creds["companyAdmin"]),
        super_admin=token("SUPER_ADMIN_TOKEN", "superAdmin", lambda: creds["superAdmin"]),
    )


def create_application(engine: Engine, token: str, label: str, job_id: str,
                       logger=None) -> Optional[str]:
    payload = {"jobId": job_id, "coverLetter": f"seed application {label}"}
    try:
        resp = engine.send("POST", engine.api("/applications"), token=token, json=payload)
    except httpx.HTTPError as e:
        _warn(logger, "candidate", "seed-application", f"{label}: {e}")
        return None
    app_id = read_id(read_body(resp)) if resp.is_success else None
    if logger:
        logger.info(f"[candidate] seeded application {label}:{app_id or 'none'} "
                    f"(status={resp.status_code})")
    return app_id


def resolve_seed_ids(engine: Engine, config: AppConfig, tokens: Tokens,
                     users: List[SeededUser], logger=None) -> SeedIds:
    job_id = config.override("TEST_JOB_ID") or "1"
    seeded_candidates = [u for u in users if u.role == "candidate"]
    second_candidate = seeded_candidates[1].id if len(seeded_candidates) > 1 else None

    chains = {
        "candidate_a_application_id": FallbackChain(
            "candidateAApplicationId",
            Fallback("seeded", create_application(engine, tokens.candidate_a, "candidateA",
                                                  job_id, logger)),
            Fallback("default", "1")),
        "candidate_b_application_id": FallbackChain(
            "candidateBApplicationId",
            Fallback("seeded", create_application(engine, tokens.candidate_b, "candidateB",
                                                  job_id, logger)),
            Fallback("default", "2")),
        "other_candidate_id": FallbackChain(
            "otherCandidateId",
            Fallback("override", config.override("OTHER_CANDIDATE_ID")),
            Fallback("seeded", second_candidate),
            Fallback("default", "2")),
        "other_company_id": FallbackChain(
            "otherCompanyId",
            Fallback("override", config.override("OTHER_COMPANY_ID")),
            Fallback("default", "2")),
        "other_company_job_id": FallbackChain(
            "otherCompanyJobId",
            Fallback("override", config.override("OTHER_COMPANY_JOB_ID")),
            Fallback("default", "2")),
    }
    values: Dict[str, str] = {}
    sources: Dict[str, str] = {}
    for key, chain in chains.items():
        values[key], sources[key] = chain.resolve()
    return SeedIds(sources=sources, **values)


def cleanup_runtime(engine: Engine, runtime: RuntimeState, logger=None) -> None:
    """Delete seeded applications; defaults and unresolved IDs are left alone."""
    owned = (
        (runtime.ids.candidate_a_application_id, runtime.tokens.candidate_a),
        (runtime.ids.candidate_b_application_id, runtime.tokens.candidate_b),
    )
    owned += tuple((app_id, runtime.tokens.candidate_a)
                   for app_id in runtime.extra_application_ids)
    for app_id, token in owned:
        if not app_id or app_id in DEFAULT_IDS:
            continue
        try:
            resp = engine.send("DELETE", engine.api(f"/applications/{app_id}"), token=token)
        except httpx.HTTPError as e:
            _warn(logger, "candidate", "delete-application", f"failed for {app_id}: {e}")
            continue
        if not resp.is_success:
            _warn(logger, "candidate", "delete-application",
                  f"failed for {app_id}: status={resp.status_code}")


def prepare_runtime_state(engine: Engine, config: AppConfig, logger=None) -> RuntimeState:
    users = create_test_users(engine, logger)
    tokens = issue_tokens(engine, config, users, logger)
    ids = resolve_seed_ids(engine, config, tokens, users, logger)
    return RuntimeState(created_users=users, tokens=tokens, ids=ids,
                        test_job_id=config.override("TEST_JOB_ID") or "1")


def _warn(logger, role: str, step: str, msg: str):
    if logger:
        logger.warn(f"[{role}] [seed] {step}: {msg}")
