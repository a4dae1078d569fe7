"""Flood / concurrency battery. Looks for missing rate limiting.

Each scenario repeats one request N times and records the status histogram.
Only the concurrent scenario fires everything at once; the rest are strictly
sequential.
"""

import threading
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from webprobe.checkers.base import BaseProbe
from webprobe.core.engine import api_path, read_body
from webprobe.core.models import ProbeCase, ProbeResponse, Severity, UploadFile
from webprobe.core.runtime import read_id
from webprobe.core.severity import classify_flood

SAME_CV = UploadFile("same-cv.pdf", "application/pdf", b"%PDF-1.4\nqa-test\n")


@dataclass(frozen=True)
class FloodTargets:
    candidate_token: str
    recruiter_token: str
    login_payload: Dict[str, str]
    application_payload: Dict[str, Any]
    application_id: str


def make_histogram(statuses: List[int]) -> Dict[str, int]:
    return {str(code): n for code, n in sorted(Counter(statuses).items())}


class FloodProbe(BaseProbe):

    name = "Rate Limit / Flood"
    flow = "ratelimit"
    prefix = "ratelimit"
    scope = "ratelimit-attack"

    def __init__(self, targets: FloodTargets, api_base_path: str = "/api",
                 role: str = "candidate", scenarios: Optional[List[ProbeCase]] = None):
        super().__init__()
        self.t = targets
        self.api_base_path = api_base_path
        self.role = role
        self.evidence_role = role
        self._scenarios = scenarios
        self.created_ids: List[str] = []
        self._created_lock = threading.Lock()

    def build_cases(self) -> List[ProbeCase]:
        if self._scenarios is not None:
            return list(self._scenarios)
        t, api = self.t, self.api_base_path
        return [
            ProbeCase(name="login_flood_50", method="POST", role=self.role,
                      path=api_path(api, "/auth/login"), body=t.login_payload, count=50),
            ProbeCase(name="application_flood_20", method="POST", role=self.role,
                      path=api_path(api, "/applications"), token=t.candidate_token,
                      body=t.application_payload, count=20),
            ProbeCase(name="concurrent_cv_upload_10", method="POST", role=self.role,
                      path=api_path(api, "/cv/upload"), token=t.candidate_token,
                      upload=SAME_CV, count=10, concurrent=True),
            ProbeCase(name="rapid_status_change_15", method="PATCH", role=self.role,
                      path=api_path(api, f"/applications/{t.application_id}/status"),
                      token=t.recruiter_token, body={"status": "shortlisted"}, count=15),
        ]

    @staticmethod
    def body_for(case: ProbeCase, index: int) -> Optional[Dict[str, Any]]:
        if case.name.startswith("rapid_status_change"):
            return {"status": "shortlisted" if index % 2 == 0 else "rejected"}
        return case.body

    def execute(self, case: ProbeCase, engine) -> ProbeResponse:
        def send(i: int):
            resp = engine.send(case.method, case.path, token=case.token,
                               json=self.body_for(case, i), upload=case.upload)
            if case.name.startswith("application_flood") and resp.is_success:
                self._remember(resp)
            return resp

        statuses = engine.burst(case.count, send, concurrent=case.concurrent)
        return ProbeResponse(
            status=statuses[0] if statuses else 0,
            body={"statuses": statuses, "histogram": make_histogram(statuses)},
            statuses=statuses,
        )

    def _remember(self, resp):
        """Keep the ID of every application the flood created, for cleanup."""
        created = read_id(read_body(resp))
        if created:
            with self._created_lock:
                self.created_ids.append(created)

    def classify(self, case: ProbeCase, response: ProbeResponse) -> Severity:
        return classify_flood(response.statuses)

    def describe(self, case, response, severity):
        if severity is Severity.PASS:
            return "Rate limiting observed (429 received)"
        return f"No 429 seen under {len(response.statuses)} repeated requests"

    def histogram(self, response: ProbeResponse) -> Optional[Dict[str, int]]:
        return make_histogram(response.statuses)
