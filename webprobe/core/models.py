"""Shared data models for the probe engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Severity(str, Enum):
    """Outcome levels, ordered by gating impact."""
    PASS = "PASS"
    INFO = "INFO"
    WARN = "WARN"
    FAIL = "FAIL"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @property
    def keeps_media(self) -> bool:
        """Screenshots and snapshots are only kept for non-passing outcomes."""
        return self not in (Severity.PASS, Severity.INFO)


_RANK = {
    Severity.PASS: 0,
    Severity.INFO: 1,
    Severity.WARN: 2,
    Severity.FAIL: 3,
    Severity.CRITICAL: 4,
}


@dataclass(frozen=True)
class Finding:
    """The normalized outcome of one test case."""
    role: str
    flow: str
    step: str              # attack name, flow step or edge case label
    severity: Severity
    details: str
    status: Optional[int] = None
    status_histogram: Optional[Dict[str, int]] = None
    screenshot_path: Optional[str] = None
    snapshot_path: Optional[str] = None
    evidence_path: Optional[str] = None

    def __str__(self):
        code = f" (HTTP {self.status})" if self.status is not None else ""
        return (f"[{self.severity.value}] {self.role}/{self.flow} "
                f"{self.step}: {self.details}{code}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "flow": self.flow,
            "step": self.step,
            "severity": self.severity.value,
            "details": self.details,
            "status": self.status,
            "statusHistogram": self.status_histogram,
            "screenshotPath": self.screenshot_path,
            "snapshotPath": self.snapshot_path,
            "evidencePath": self.evidence_path,
        }


@dataclass(frozen=True)
class UploadFile:
    """A crafted file sent as one multipart part."""
    file_name: str
    mime_type: str
    content: bytes = b""


@dataclass(frozen=True)
class ProbeCase:
    """One row of a probe matrix."""
    name: str
    method: str
    path: str
    role: str
    token: Optional[str] = None
    body: Optional[Dict[str, Any]] = None
    upload: Optional[UploadFile] = None
    count: int = 1             # repeated sends (flood scenarios)
    concurrent: bool = False


@dataclass
class ProbeResponse:
    """What came back for one probe case."""
    status: int = 0
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    elapsed_ms: float = 0.0
    statuses: List[int] = field(default_factory=list)
    error: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class RunTotals:
    """Per-severity counts, computed once at finalization."""
    critical: int = 0
    fail: int = 0
    warn: int = 0
    info: int = 0
    passed: int = 0

    @classmethod
    def from_findings(cls, findings) -> "RunTotals":
        counts = {sev: 0 for sev in Severity}
        for f in findings:
            counts[f.severity] += 1
        return cls(
            critical=counts[Severity.CRITICAL],
            fail=counts[Severity.FAIL],
            warn=counts[Severity.WARN],
            info=counts[Severity.INFO],
            passed=counts[Severity.PASS],
        )

    @property
    def exit_code(self) -> int:
        if self.critical:
            return 2
        if self.fail:
            return 1
        return 0

    def __str__(self):
        return (f"critical={self.critical} fail={self.fail} "
                f"warn={self.warn} info={self.info} pass={self.passed}")

    def to_dict(self) -> Dict[str, int]:
        return {
            "critical": self.critical,
            "fail": self.fail,
            "warn": self.warn,
            "info": self.info,
            "pass": self.passed,
        }
