"""Shared submit-and-observe loop for UI edge-case batteries."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from webprobe.core.errors import DriverError
from webprobe.core.evidence import EvidenceDirs, EvidenceStore
from webprobe.core.models import Finding, Severity
from webprobe.core.severity import classify_edge
from webprobe.watchers.base import StepClock, StepContext


class BaseFuzzer(ABC):
    """Runs one hostile submission per case and applies the edge rule.

    The anomaly window of a case is exactly the events tagged with that
    case's step sequence, so late responses from an earlier case are not
    counted against it.
    """

    flow: str = "edge"
    scope: str = "edge-cases"
    context_suffix: str = "context"

    def __init__(self, driver, clock: StepClock, evidence: EvidenceStore, logger=None,
                 role: str = "candidate", submit_selector: str = "button[type=submit]",
                 error_selector: Optional[str] = None, console=None, network=None,
                 page_path: Optional[str] = None):
        self.driver = driver
        self.clock = clock
        self.evidence = evidence
        self.logger = logger
        self.role = role
        self.submit_selector = submit_selector
        self.error_selector = error_selector
        self.console = console
        self.network = network
        self.page_path = page_path

    def open_page(self):
        if self.page_path:
            self.driver.goto(self.page_path)
            self.driver.wait_for_load("networkidle")

    def setup_failed(self, what: str, error: Exception) -> Finding:
        ctx = self.clock.begin(self.role, self.flow, f"{self.flow}:{what}")
        return self._finish(ctx.step, what, Severity.FAIL, f"{what} failed: {error}", {})

    # ── observation ─────────────────────────────────────────────

    def read_ui_error(self) -> str:
        if not self.error_selector:
            return ""
        try:
            return self.driver.read_text(self.error_selector)
        except DriverError:
            return ""

    def anomaly_counts(self, ctx: StepContext) -> Dict[str, int]:
        return {
            "console": len(self.console.for_step(ctx)) if self.console else 0,
            "network": len(self.network.for_step(ctx)) if self.network else 0,
        }

    # ── one case ────────────────────────────────────────────────

    def submit_case(self, step: str, label: str, action: Callable[[], None],
                    context: Dict[str, Any]) -> Finding:
        ctx = self.clock.begin(self.role, self.flow, step)
        self._info(step, f"Running {label}")
        try:
            action()
            self.driver.click(self.submit_selector)
            self.driver.wait_for_load("networkidle")
        except DriverError as e:
            return self._finish(step, label, Severity.FAIL, f"Step failed: {e}", context)

        ui_error = self.read_ui_error()
        counts = self.anomaly_counts(ctx)
        severity = classify_edge(ui_error, counts["console"] + counts["network"])
        details = (f"uiError={ui_error or 'none'}, console={counts['console']}, "
                   f"network={counts['network']}")
        return self._finish(step, label, severity, details, context)

    def _finish(self, step: str, label: str, severity: Severity, details: str,
                context: Dict[str, Any]) -> Finding:
        shot = html = evidence_path = None
        if severity.keeps_media:
            dirs: EvidenceDirs = self.evidence.dirs(self.role, self.scope)
            shot, html = self.evidence.capture_failure(self.driver, dirs, f"{self.flow}-{label}")
            evidence_path = self.evidence.save_json(
                dirs, f"{self.flow}-{label}-{self.context_suffix}", {**context, "details": details})
        finding = Finding(role=self.role, flow=self.flow, step=step, severity=severity,
                          details=details, screenshot_path=shot, snapshot_path=html,
                          evidence_path=evidence_path)
        if self.logger:
            self.logger.finding(finding)
        return finding

    def _info(self, step: str, msg: str):
        if self.logger:
            self.logger.log(Severity.INFO, self.role, self.flow, step, msg)

    @abstractmethod
    def run(self) -> List[Finding]:
        ...
