"""Merging module outputs, totals, exit code and the run summary."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from webprobe.core.evidence import EvidenceStore
from webprobe.core.models import Finding, RunTotals

BUSINESS_STEP = re.compile(r"forbidden-route|cross-company|status", re.I)
SUMMARY_FILE = "summary.json"


def merge(*groups: Iterable[Finding]) -> List[Finding]:
    """Concatenate finding lists, keeping module order."""
    out: List[Finding] = []
    for group in groups:
        out.extend(group)
    return out


def exit_code(findings: Iterable[Finding]) -> int:
    return RunTotals.from_findings(findings).exit_code


def split_flow_findings(findings: Iterable[Finding]) -> Tuple[List[Finding], List[Finding]]:
    """(flow, business): access-boundary and status steps go to business."""
    flow: List[Finding] = []
    business: List[Finding] = []
    for f in findings:
        (business if BUSINESS_STEP.search(f.step) else flow).append(f)
    return flow, business


@dataclass
class SuiteFindings:
    flow: List[Finding] = field(default_factory=list)
    security: List[Finding] = field(default_factory=list)
    business: List[Finding] = field(default_factory=list)
    edge: List[Finding] = field(default_factory=list)

    def all(self) -> List[Finding]:
        return merge(self.flow, self.security, self.business, self.edge)

    def add_flow_results(self, findings: Iterable[Finding]):
        flow, business = split_flow_findings(findings)
        self.flow.extend(flow)
        self.business.extend(business)

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "flow": [f.to_dict() for f in self.flow],
            "security": [f.to_dict() for f in self.security],
            "business": [f.to_dict() for f in self.business],
            "edge": [f.to_dict() for f in self.edge],
        }


def write_summary(evidence: EvidenceStore, environment: str, started_at: datetime,
                  findings: SuiteFindings, console_logs: List[Dict[str, Any]],
                  network_logs: List[Dict[str, Any]], timing: Dict[str, Any],
                  logger=None, finished_at: Optional[datetime] = None
                  ) -> Tuple[Optional[str], RunTotals]:
    """Persist watcher logs and ``summary.json``; return its path and the totals."""
    finished_at = finished_at or datetime.now(timezone.utc)
    run_dirs = evidence.dirs("global", "run")
    evidence.save_watcher_logs(run_dirs, console_logs, network_logs)

    everything = findings.all()
    totals = RunTotals.from_findings(everything)
    summary = {
        "environment": environment,
        "startedAt": started_at.isoformat(),
        "finishedAt": finished_at.isoformat(),
        "durationMs": int((finished_at - started_at).total_seconds() * 1000),
        "totals": totals.to_dict(),
        "exitCode": totals.exit_code,
        "findings": findings.to_dict(),
        "consoleLogs": console_logs,
        "networkIssues": network_logs,
        "performanceIssues": timing.get("issues", []),
        "performanceStats": timing.get("stats", []),
    }
    path = evidence.write_json(run_dirs.day_dir / SUMMARY_FILE, summary)
    if logger:
        logger.info(f"[runner] [summary] totals: {totals}")
    return path, totals
