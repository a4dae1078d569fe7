"""Role journeys: happy-path steps plus UI access-boundary checks."""

import tempfile
import time
from pathlib import Path
from typing import List

from webprobe.core.models import Finding
from webprobe.flows.auth import login, logout
from webprobe.flows.base import FlowRunner

VALID_PDF = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF"


class CandidateFlow(FlowRunner):
    role = "candidate"
    flow = "candidate"

    def register_account(self):
        d = self.driver
        d.goto("/register")
        d.fill_by_label("Full Name", "QA Candidate")
        d.fill_by_label("Email", f"qa.candidate.{int(time.time() * 1000)}@example.test")
        d.fill_by_label("Password", "Candidate#12345")
        d.click_by_role("button", "register|sign up")
        d.wait_for_load("networkidle")

    def browse_jobs(self):
        self.driver.goto("/jobs")
        self.driver.wait_for('[data-testid="job-card"]')

    def apply_to_job(self):
        d = self.driver
        d.click_by_role("button", "apply")
        d.fill_by_label("Phone", "+15555550100")
        d.fill_by_label("Cover Letter", "Automated QA application test submission.")
        d.click_by_role("button", "submit application|apply now")
        d.wait_for_load("networkidle")

    def upload_valid_cv(self):
        with tempfile.TemporaryDirectory(prefix="webprobe-cv-") as tmp:
            path = Path(tmp) / "valid-cv.pdf"
            path.write_bytes(VALID_PDF)
            self.driver.set_input_files('[name="cv"], input[type="file"]', str(path))
            self.driver.click_by_role("button", "upload|save cv")
            self.driver.wait_for_load("networkidle")

    def check_application_status(self):
        self.driver.goto("/applications")
        self.driver.wait_for('[data-testid="application-status"], .status-badge')

    def run(self) -> List[Finding]:
        login(self)
        self.step("register-account", self.register_account)
        self.step("browse-jobs", self.browse_jobs)
        self.step("apply-to-job", self.apply_to_job)
        self.step("upload-valid-cv", self.upload_valid_cv)
        self.step("check-application-status", self.check_application_status)
        self.assert_forbidden_route("/recruiter/dashboard")
        self.assert_forbidden_route("/admin/dashboard")
        logout(self)
        return self.results


class RecruiterFlow(FlowRunner):
    role = "recruiter"
    flow = "recruiter"

    def __init__(self, *args, other_company_id: str = "2", **kwargs):
        super().__init__(*args, **kwargs)
        self.other_company_id = other_company_id

    def view_candidate_list(self):
        self.driver.goto("/recruiter/candidates")
        self.driver.wait_for('[data-testid="candidate-row"], table tbody tr')

    def open_candidate_profile(self):
        d = self.driver
        d.click_by_role("button", "view profile|open profile|details")
        d.wait_for_load("networkidle")
        d.wait_for('[data-testid="candidate-profile"], .candidate-profile')

    def change_application_status(self):
        self.driver.click_by_role("button", "shortlist|reject|change status")
        self.confirm_if_shown("confirm|save|update")
        self.driver.wait_for_load("networkidle")

    def run(self) -> List[Finding]:
        login(self)
        self.step("view-candidate-list", self.view_candidate_list)
        self.step("open-candidate-profile", self.open_candidate_profile)
        self.step("change-application-status", self.change_application_status)
        self.assert_forbidden_route("/admin/dashboard", breach="Unexpected admin access")
        self.assert_forbidden_route(
            f"/recruiter/companies/{self.other_company_id}/candidates",
            step="cross-company-candidate-access",
            breach="Cross-company data exposed",
        )
        logout(self)
        return self.results


class CompanyAdminFlow(FlowRunner):
    role = "companyAdmin"
    flow = "companyAdmin"

    def create_job_posting(self):
        d = self.driver
        d.goto("/admin/jobs/new")
        d.fill_by_label("Job Title", f"QA Job {int(time.time() * 1000)}")
        d.fill_by_label("Location", "Remote")
        d.fill_by_label("Description", "Automated test posting for company admin flow.")
        d.click_by_role("button", "create|publish|save")
        d.wait_for_load("networkidle")

    def edit_job_posting(self):
        d = self.driver
        d.goto("/admin/jobs")
        d.click_by_role("button", "edit")
        summary = '[aria-label="Summary"], [name="summary"]'
        if d.is_visible(summary):
            d.fill(summary, f"updated-{int(time.time() * 1000)}")
        d.click_by_role("button", "update|save")
        d.wait_for_load("networkidle")

    def view_recruiter_activity(self):
        self.driver.goto("/admin/recruiters/activity")
        self.driver.wait_for('[data-testid="activity-row"], table tbody tr')

    def run(self) -> List[Finding]:
        login(self)
        self.step("create-job-posting", self.create_job_posting)
        self.step("edit-job-posting", self.edit_job_posting)
        self.step("view-recruiter-activity", self.view_recruiter_activity)
        self.assert_forbidden_route("/superadmin/dashboard",
                                    breach="Unexpected super admin access")
        logout(self)
        return self.results


class SuperAdminFlow(FlowRunner):
    role = "superAdmin"
    flow = "superAdmin"

    def view_all_companies(self):
        self.driver.goto("/superadmin/companies")
        self.driver.wait_for('[data-testid="company-row"], table tbody tr')

    def view_all_users(self):
        self.driver.goto("/superadmin/users")
        self.driver.wait_for('[data-testid="user-row"], table tbody tr')

    def deactivate_test_account(self):
        self.driver.goto("/superadmin/users")
        self.driver.click_by_role("button", "deactivate")
        self.confirm_if_shown()
        self.driver.wait_for_load("networkidle")

    def reactivate_test_account(self):
        self.driver.goto("/superadmin/users?filter=inactive")
        self.driver.click_by_role("button", "reactivate|activate")
        self.confirm_if_shown()
        self.driver.wait_for_load("networkidle")

    def run(self) -> List[Finding]:
        login(self)
        self.step("view-all-companies", self.view_all_companies)
        self.step("view-all-users", self.view_all_users)
        self.step("deactivate-test-account", self.deactivate_test_account)
        self.step("reactivate-test-account", self.reactivate_test_account)
        logout(self)
        return self.results


ROLE_FLOWS = (CandidateFlow, RecruiterFlow, CompanyAdminFlow, SuperAdminFlow)
