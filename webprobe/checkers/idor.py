"""Cross-resource access (IDOR) battery."""

import time
from dataclasses import dataclass
from typing import List

from webprobe.checkers.base import BaseProbe
from webprobe.core.engine import api_path
from webprobe.core.models import ProbeCase


@dataclass(frozen=True)
class IdorTargets:
    candidate_a_token: str
    recruiter_token: str
    company_admin_token: str
    candidate_b_application_id: str
    other_candidate_id: str
    other_company_id: str
    other_company_job_id: str


class IdorProbe(BaseProbe):

    name = "Cross-Resource Access (IDOR)"
    flow = "idor"
    prefix = "idor"
    scope = "idor-attack"
    accepted_text = "CRITICAL: unauthorized cross-resource access succeeded"

    def __init__(self, targets: IdorTargets, api_base_path: str = "/api"):
        super().__init__()
        self.t = targets
        self.api_base_path = api_base_path

    def build_cases(self) -> List[ProbeCase]:
        t, api = self.t, self.api_base_path
        return [
            ProbeCase(
                name="candidate_application_cross_access", method="GET", role="candidate",
                path=api_path(api, f"/applications/{t.candidate_b_application_id}"),
                token=t.candidate_a_token,
            ),
            ProbeCase(
                name="candidate_cv_cross_access", method="GET", role="candidate",
                path=api_path(api, f"/candidates/{t.other_candidate_id}/cv"),
                token=t.candidate_a_token,
            ),
            ProbeCase(
                name="recruiter_other_company_candidates", method="GET", role="recruiter",
                path=api_path(api, f"/companies/{t.other_company_id}/candidates"),
                token=t.recruiter_token,
            ),
            ProbeCase(
                name="company_admin_modify_other_company_job", method="PUT", role="companyAdmin",
                path=api_path(api, f"/jobs/{t.other_company_job_id}"),
                token=t.company_admin_token,
                body={"title": f"unauthorized-update-{int(time.time() * 1000)}"},
            ),
        ]
