"""Suite execution: flows, then attacks, then edge cases."""

from contextlib import ExitStack
from datetime import datetime, timezone
from typing import Callable, ContextManager, List, Optional

from webprobe.browser.driver import BrowserDriver, launch_driver
from webprobe.checkers.credential import CredentialProbe
from webprobe.checkers.flood import FloodProbe, FloodTargets
from webprobe.checkers.idor import IdorProbe, IdorTargets
from webprobe.checkers.privilege import PrivilegeProbe, PrivilegeTargets
from webprobe.checkers.upload import UploadProbe
from webprobe.core.aggregate import SuiteFindings, write_summary
from webprobe.core.config import AppConfig
from webprobe.core.engine import Engine
from webprobe.core.errors import DriverError, SetupError
from webprobe.core.evidence import EvidenceStore
from webprobe.core.models import Finding
from webprobe.core.runtime import (
    RuntimeState,
    cleanup_runtime,
    login_for_token,
    prepare_runtime_state,
)
from webprobe.flows.roles import ROLE_FLOWS, RecruiterFlow
from webprobe.fuzzers.file_fuzz import FileFuzzer
from webprobe.fuzzers.input_fuzz import InputFuzzer
from webprobe.watchers.base import StepClock
from webprobe.watchers.console import ConsoleWatcher
from webprobe.watchers.network import NetworkWatcher
from webprobe.watchers.timing import TimingWatcher

FLOW_MODES = ("all", "flows", "performance")
ATTACK_MODES = ("all", "attacks")
EDGE_MODES = ("all", "edges")

DriverFactory = Callable[[], ContextManager[BrowserDriver]]


class Orchestrator:
    def __init__(self, config: AppConfig, only: str = "all", logger=None,
                 proxy: Optional[str] = None, engine: Optional[Engine] = None,
                 driver_factory: Optional[DriverFactory] = None,
                 evidence: Optional[EvidenceStore] = None):
        self.config = config
        self.only = only
        self.logger = logger
        self.proxy = proxy
        self._engine = engine
        self.driver_factory = driver_factory or (
            lambda: launch_driver(config.base_url, headless=config.headless, proxy=proxy))
        self.evidence = evidence or EvidenceStore(config.reports_dir, logger=logger)

        self.clock = StepClock()
        self.console = ConsoleWatcher(self.clock)
        self.network = NetworkWatcher(self.clock, config.slow_threshold_ms)
        self.timing = TimingWatcher(self.clock, config.page_threshold_ms,
                                    config.api_threshold_ms)
        self.findings = SuiteFindings()
        self.report_path: Optional[str] = None

    @property
    def needs_browser(self) -> bool:
        return self.only in FLOW_MODES or self.only in EDGE_MODES

    def run(self) -> int:
        """Run the selected suites and return the exit code.

        Setup and runner errors propagate; the browser, the HTTP client and
        seeded data are released on every path.
        """
        started = datetime.now(timezone.utc)
        runtime: Optional[RuntimeState] = None
        with ExitStack() as stack:
            engine = self._engine
            if engine is None:
                engine = Engine(self.config.api_base_url, self.config.api_base_path,
                                proxy=self.proxy, timeout=self.config.timeout,
                                logger=self.logger)
                stack.callback(engine.close)

            runtime = prepare_runtime_state(engine, self.config, self.logger)
            stack.callback(cleanup_runtime, engine, runtime, self.logger)

            driver = None
            if self.needs_browser:
                driver = stack.enter_context(self.driver_factory())
                self.console.attach(driver)
                self.network.attach(driver)

            if self.only in FLOW_MODES:
                self.findings.add_flow_results(self.run_flows(driver, runtime))
            if self.only in ATTACK_MODES:
                self.findings.security.extend(self.run_attacks(engine, runtime))
            if self.only in EDGE_MODES:
                self.findings.edge.extend(self.run_edges(driver))

        self.report_path, totals = write_summary(
            self.evidence, self.config.env_name, started, self.findings,
            self.console.to_records(), self.network.to_records(), self.timing.to_records(),
            logger=self.logger)
        if self.logger and self.report_path:
            self.logger.info(f"Report -> {self.report_path}")
        return totals.exit_code

    # ── suites ──────────────────────────────────────────────────

    def _flow_kwargs(self):
        return dict(logger=self.logger, console=self.console, network=self.network)

    def run_flows(self, driver: BrowserDriver, runtime: RuntimeState) -> List[Finding]:
        out: List[Finding] = []
        for flow_cls in ROLE_FLOWS:
            extra = {}
            if flow_cls is RecruiterFlow:
                extra["other_company_id"] = runtime.ids.other_company_id
            runner = flow_cls(driver, self.config, self.clock, self.evidence,
                              **self._flow_kwargs(), **extra)
            out.extend(runner.run())
            self.capture_timing(driver, flow_cls.role)
        return out

    def capture_timing(self, driver: BrowserDriver, role: str):
        ctx = self.clock.begin(role, "performance", "page-metrics")
        try:
            self.timing.capture(driver, self.network.largest_duration_ms(), ctx)
        except DriverError as e:
            if self.logger:
                self.logger.warn(f"[{role}] timing capture skipped: {e}")

    def run_attacks(self, engine: Engine, runtime: RuntimeState) -> List[Finding]:
        t = runtime.tokens
        ids = runtime.ids
        base = self.config.api_base_path
        cand = self.config.credentials["candidate"]
        flood = FloodProbe(FloodTargets(
            candidate_token=t.candidate_a,
            recruiter_token=t.recruiter,
            login_payload={"email": cand.email, "password": cand.password},
            application_payload={"jobId": runtime.test_job_id, "coverLetter": "rate-limit test"},
            application_id=ids.candidate_a_application_id,
        ), api_base_path=base)
        probes = [
            CredentialProbe(self.replay_session(engine, t.candidate_a), engine.api("/users/me"),
                            engine.api("/auth/logout"), secret=self.config.jwt_secret),
            IdorProbe(IdorTargets(
                candidate_a_token=t.candidate_a,
                recruiter_token=t.recruiter,
                company_admin_token=t.company_admin,
                candidate_b_application_id=ids.candidate_b_application_id,
                other_candidate_id=ids.other_candidate_id,
                other_company_id=ids.other_company_id,
                other_company_job_id=ids.other_company_job_id,
            ), api_base_path=base),
            UploadProbe(t.candidate_a, engine.api("/cv/upload")),
            PrivilegeProbe(PrivilegeTargets(
                candidate_token=t.candidate_a,
                recruiter_token=t.recruiter,
                company_admin_token=t.company_admin,
                application_id=ids.candidate_a_application_id,
            ), api_base_path=base),
            flood,
        ]
        out: List[Finding] = []
        try:
            for probe in probes:
                out.extend(engine.run(probe, self.evidence))
        finally:
            runtime.extra_application_ids.extend(flood.created_ids)
        return out

    def replay_session(self, engine: Engine, shared_token: str) -> str:
        """A throw-away candidate session for the logout-replay case.

        The replay logs its token out, so it must not be one the other
        batteries or cleanup still use.
        """
        try:
            return login_for_token(engine, self.config.credentials["candidate"],
                                   "candidateReplay", self.logger)
        except SetupError as e:
            if self.logger:
                self.logger.warn(f"[candidate] [jwt] dedicated session unavailable, "
                                 f"reusing candidate A token: {e}")
            return shared_token

    def run_edges(self, driver: BrowserDriver) -> List[Finding]:
        sel = self.config.selector
        common = dict(logger=self.logger, console=self.console, network=self.network)
        inputs = InputFuzzer(
            driver, self.clock, self.evidence, page_path="/register",
            submit_selector=sel("MAIN_FORM_SUBMIT_SELECTOR"),
            error_selector=sel("MAIN_FORM_ERROR_SELECTOR"), **common)
        files = FileFuzzer(
            driver, self.clock, self.evidence, page_path="/candidate/profile",
            input_selector=sel("CV_FILE_SELECTOR"),
            submit_selector=sel("CV_SUBMIT_SELECTOR"),
            error_selector=sel("CV_ERROR_SELECTOR"), **common)
        return inputs.run() + files.run()
