"""Severity decision table shared by every probe family.

Adversarial probes expect the target to refuse; functional steps expect it to
work. Only adversarial outcomes can be CRITICAL.
"""

from enum import Enum
from typing import Iterable, Optional

from webprobe.core.models import Severity

BURST_THRESHOLD = 20
THROTTLED = 429
DENIED = (401, 403)


class Expectation(str, Enum):
    ADVERSARIAL = "adversarial"   # forged / unauthorized request, must be refused
    UPLOAD = "upload"             # malicious file, any client error is a refusal
    FUNCTIONAL = "functional"     # plain flow step


def is_success(status: int) -> bool:
    return 200 <= status < 300


def classify_status(status: Optional[int], expectation: Expectation = Expectation.ADVERSARIAL,
                    attempts: int = 1) -> Severity:
    """Map one observed status to a severity.

    A missing status (transport failure) is treated like any other
    unexpected answer: WARN, or FAIL once the attempt count reaches the
    burst threshold.
    """
    if expectation is Expectation.FUNCTIONAL:
        return Severity.PASS if status is not None and status < 400 else Severity.FAIL

    if status is not None and is_success(status):
        return Severity.CRITICAL
    if status is not None:
        if expectation is Expectation.UPLOAD and 400 <= status < 500:
            return Severity.PASS
        if status in DENIED:
            return Severity.PASS
    return Severity.FAIL if attempts >= BURST_THRESHOLD else Severity.WARN


def classify_step(succeeded: bool) -> Severity:
    """Functional flow step: it either worked or it did not."""
    return Severity.PASS if succeeded else Severity.FAIL


def classify_route_guard(blocked: bool) -> Severity:
    """UI boundary check: a reachable forbidden page is a breach."""
    return Severity.PASS if blocked else Severity.CRITICAL


def classify_flood(statuses: Iterable[int]) -> Severity:
    """Throttling observed → PASS; a large unthrottled burst → FAIL."""
    seen = list(statuses)
    if THROTTLED in seen:
        return Severity.PASS
    return Severity.FAIL if len(seen) >= BURST_THRESHOLD else Severity.WARN


def classify_edge(ui_error: str, anomalies: int) -> Severity:
    """Three-way rule for hostile UI input.

    Leaked diagnostics beat a visible rejection: the target crashed
    somewhere even if the form also complained.
    """
    if anomalies > 0:
        return Severity.FAIL
    if ui_error:
        return Severity.PASS
    return Severity.WARN
