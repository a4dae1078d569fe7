"""Abstract base for all API probe batteries."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from webprobe.core.engine import auth_headers, read_body
from webprobe.core.models import ProbeCase, ProbeResponse, Severity
from webprobe.core.severity import Expectation, classify_status


class BaseProbe(ABC):
    """Every probe builds a fixed matrix; the engine runs it case by case."""

    name: str = "Unnamed Probe"
    flow: str = "probe"
    prefix: str = "probe"          # evidence file label prefix
    scope: str = "probe"           # evidence directory scope
    evidence_role: str = "candidate"
    expectation: Expectation = Expectation.ADVERSARIAL
    rejected_text: str = "Rejected as expected"
    accepted_text: str = "CRITICAL: request was accepted"

    def __init__(self):
        self._cases: Optional[List[ProbeCase]] = None

    # ── public API ──────────────────────────────────────────────

    @abstractmethod
    def build_cases(self) -> List[ProbeCase]:
        """Return the declarative test matrix."""
        ...

    def cases(self) -> List[ProbeCase]:
        if self._cases is None:
            self._cases = self.build_cases()
        return self._cases

    def resolve(self, case: ProbeCase) -> ProbeCase:
        """Fill in anything derived late, such as a forged token."""
        return case

    def prepare(self, case: ProbeCase, engine) -> None:
        """Hook run right before a case is sent."""

    def execute(self, case: ProbeCase, engine) -> ProbeResponse:
        resp = engine.send(case.method, case.path, token=case.token,
                           json=case.body, upload=case.upload)
        return self.to_probe_response(resp)

    def classify(self, case: ProbeCase, response: ProbeResponse) -> Severity:
        status = None if response.error else response.status
        return classify_status(status, self.expectation, attempts=case.count)

    def describe(self, case: ProbeCase, response: ProbeResponse, severity: Severity) -> str:
        if response.error:
            return response.error
        if severity is Severity.CRITICAL:
            return self.accepted_text
        if severity is Severity.PASS:
            return self.rejected_text
        return f"Unexpected status {response.status}"

    def histogram(self, response: ProbeResponse) -> Optional[Dict[str, int]]:
        return None

    # ── evidence records ────────────────────────────────────────

    def request_record(self, case: ProbeCase, engine) -> Dict[str, Any]:
        body: Any = case.body
        if case.upload is not None:
            body = {"fileName": case.upload.file_name, "mimeType": case.upload.mime_type,
                    "bytes": len(case.upload.content)}
        return {
            "method": case.method,
            "url": case.path,
            "headers": auth_headers(case.token, json_body=case.upload is None),
            "body": body,
        }

    def response_record(self, response: ProbeResponse) -> Dict[str, Any]:
        record = {"status": response.status, "headers": response.headers, "body": response.body}
        if response.error:
            record["error"] = response.error
        return record

    # ── shared helpers ──────────────────────────────────────────

    @staticmethod
    def to_probe_response(resp: httpx.Response) -> ProbeResponse:
        return ProbeResponse(
            status=resp.status_code,
            headers=dict(resp.headers),
            body=read_body(resp),
            elapsed_ms=elapsed_ms(resp),
            statuses=[resp.status_code],
        )


def elapsed_ms(resp: httpx.Response) -> float:
    # httpx only sets `elapsed` once a streamed response is closed
    try:
        return resp.elapsed.total_seconds() * 1000
    except RuntimeError:
        return 0.0
