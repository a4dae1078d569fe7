"""Privilege-boundary battery: actions each role must not be able to perform."""

import time
from dataclasses import dataclass
from typing import List

from webprobe.checkers.base import BaseProbe
from webprobe.core.engine import api_path
from webprobe.core.models import ProbeCase


@dataclass(frozen=True)
class PrivilegeTargets:
    candidate_token: str
    recruiter_token: str
    company_admin_token: str
    application_id: str


class PrivilegeProbe(BaseProbe):

    name = "Privilege Boundary"
    flow = "privilege"
    prefix = "priv"
    scope = "privilege-attack"
    rejected_text = "Blocked as expected"
    accepted_text = "CRITICAL: forbidden action succeeded"

    def __init__(self, targets: PrivilegeTargets, api_base_path: str = "/api"):
        super().__init__()
        self.t = targets
        self.api_base_path = api_base_path

    def build_cases(self) -> List[ProbeCase]:
        t, api = self.t, self.api_base_path
        return [
            ProbeCase(
                name="candidate_changes_application_status", method="POST", role="candidate",
                path=api_path(api, f"/applications/{t.application_id}/status"),
                token=t.candidate_token, body={"status": "shortlisted"},
            ),
            ProbeCase(
                name="recruiter_creates_job", method="POST", role="recruiter",
                path=api_path(api, "/jobs"), token=t.recruiter_token,
                body={"title": f"unauthorized-job-{int(time.time() * 1000)}",
                      "description": "blocked expected"},
            ),
            ProbeCase(
                name="company_admin_access_platform_companies", method="GET",
                role="companyAdmin", path=api_path(api, "/platform/companies"),
                token=t.company_admin_token,
            ),
            ProbeCase(
                name="self_role_escalation_patch_me", method="PATCH", role="candidate",
                path=api_path(api, "/users/me"), token=t.candidate_token,
                body={"role": "superAdmin"},
            ),
        ]
