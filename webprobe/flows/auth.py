from webprobe.core.errors import FlowCheckError
from webprobe.core.models import Severity
from webprobe.flows.base import FlowRunner

DASHBOARD = '[data-testid="dashboard"]'


def login(runner: FlowRunner) -> bool:
    """UI login as the runner's role. Returns False when any step failed."""
    cred = runner.config.credentials[runner.role]
    driver = runner.driver
    start = runner.clock.current

    def fill_credentials():
        driver.fill_by_label("Email", cred.email)
        driver.fill_by_label("Password", cred.password)

    def submit():
        driver.click_by_role("button", "login|sign in")
        driver.wait_for_load("networkidle")

    def check_dashboard():
        driver.wait_for(DASHBOARD, "visible", 10_000)
        errors = runner.console_errors_since(start)
        if errors:
            raise FlowCheckError(f"Console errors found: {errors}")

    steps = (
        ("auth:go-login", lambda: driver.goto("/login")),
        ("auth:fill-credentials", fill_credentials),
        ("auth:submit-login", submit),
        ("auth:validate-dashboard", check_dashboard),
    )
    outcomes = [runner.step(name, fn).severity for name, fn in steps]
    return all(sev is Severity.PASS for sev in outcomes)


def logout(runner: FlowRunner) -> bool:
    driver = runner.driver

    def click_logout():
        driver.click_by_role("button", "logout|log out|sign out")
        driver.wait_for_load("networkidle")

    def check_logged_out():
        if "/login" not in driver.url:
            raise FlowCheckError(f"Still signed in at {driver.url}")

    outcomes = [runner.step("auth:logout", click_logout).severity,
                runner.step("auth:validate-logged-out", check_logged_out).severity]
    return all(sev is Severity.PASS for sev in outcomes)
