"""Step runner shared by the role journeys."""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional
from urllib.parse import urlparse

from webprobe.core.config import AppConfig
from webprobe.core.errors import DriverError, FlowCheckError
from webprobe.core.evidence import EvidenceDirs, EvidenceStore
from webprobe.core.models import Finding, Severity
from webprobe.core.severity import classify_route_guard, classify_step
from webprobe.watchers.base import StepClock, StepContext

BLOCKED_MARKERS = ("/login", "/403", "/unauthorized")


def is_blocked(url: str) -> bool:
    return any(marker in url for marker in BLOCKED_MARKERS)


class FlowRunner(ABC):
    """Runs named UI steps for one role and turns each into a Finding.

    A step passes when its callable returns; DriverError (including
    timeouts) and FlowCheckError make it FAIL with screenshot and snapshot.
    """

    role: str = "global"
    flow: str = "flow"

    def __init__(self, driver, config: AppConfig, clock: StepClock, evidence: EvidenceStore,
                 logger=None, console=None, network=None):
        self.driver = driver
        self.config = config
        self.clock = clock
        self.evidence = evidence
        self.logger = logger
        self.console = console
        self.network = network
        self.results: List[Finding] = []
        self._dirs: Optional[EvidenceDirs] = None

    @property
    def dirs(self) -> EvidenceDirs:
        if self._dirs is None:
            self._dirs = self.evidence.dirs(self.role, "flows")
        return self._dirs

    def begin(self, step: str) -> StepContext:
        ctx = self.clock.begin(self.role, self.flow, step)
        if self.logger:
            self.logger.log(Severity.INFO, self.role, self.flow, step, "started")
        return ctx

    # ── outcomes ────────────────────────────────────────────────

    def _emit(self, step: str, severity: Severity, details: str) -> Finding:
        shot = html = None
        if severity.keeps_media:
            shot, html = self.evidence.capture_failure(self.driver, self.dirs,
                                                       f"{self.role}-{step}")
        finding = Finding(role=self.role, flow=self.flow, step=step, severity=severity,
                          details=details, screenshot_path=shot, snapshot_path=html)
        self.results.append(finding)
        if self.logger:
            self.logger.finding(finding)
        return finding

    def step(self, name: str, fn: Callable[[], None]) -> Finding:
        self.begin(name)
        try:
            fn()
        except (DriverError, FlowCheckError) as e:
            return self._emit(name, classify_step(False), str(e))
        return self._emit(name, classify_step(True), "ok")

    def assert_forbidden_route(self, path: str, step: Optional[str] = None,
                               breach: str = "Unexpected access granted") -> Finding:
        """Navigate where this role must not go; reaching it is CRITICAL."""
        step = step or f"forbidden-route:{urlparse(path).path}"
        self.begin(step)
        try:
            self.driver.goto(path)
        except DriverError as e:
            return self._emit(step, Severity.FAIL, f"Navigation failed: {e}")
        landed = self.driver.url
        severity = classify_route_guard(is_blocked(landed))
        if severity is Severity.PASS:
            return self._emit(step, severity, f"Blocked as expected at {landed}")
        return self._emit(step, severity, f"{breach}: {landed}")

    # ── helpers for step bodies ─────────────────────────────────

    def confirm_if_shown(self, name: str = "confirm|yes"):
        if self.driver.is_role_visible("button", name):
            self.driver.click_by_role("button", name)

    def console_errors_since(self, start: StepContext) -> int:
        """Console errors from the steps begun after `start`, up to now."""
        if not self.console:
            return 0
        window = self.console.between(start.seq + 1, self.clock.current.seq + 1)
        return sum(1 for e in window if e.level == "error")

    @abstractmethod
    def run(self) -> List[Finding]:
        """Run the journey and return one finding per step."""
        ...
