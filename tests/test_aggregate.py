import json
from datetime import datetime, timedelta, timezone

import pytest

from webprobe.core.aggregate import (
    SuiteFindings,
    exit_code,
    merge,
    split_flow_findings,
    write_summary,
)
from webprobe.core.models import Finding, Severity


def finding(step, severity=Severity.PASS, flow="candidate"):
    return Finding(role="candidate", flow=flow, step=step, severity=severity, details="x")


def test_merge_keeps_module_order():
    a, b, c = finding("a"), finding("b"), finding("c")
    assert merge([a, b], [], [c]) == [a, b, c]


def test_exit_code_from_worst_finding():
    assert exit_code([]) == 0
    assert exit_code([finding("a", Severity.WARN), finding("b", Severity.INFO)]) == 0
    assert exit_code([finding("a", Severity.FAIL), finding("b", Severity.PASS)]) == 1
    assert exit_code([finding("a", Severity.FAIL), finding("b", Severity.CRITICAL)]) == 2


@pytest.mark.parametrize("critical,fail,expected", [(1, 3, 2), (0, 3, 1), (0, 0, 0)])
def test_release_gate(critical, fail, expected):
    findings = ([finding(f"c{i}", Severity.CRITICAL) for i in range(critical)]
                + [finding(f"f{i}", Severity.FAIL) for i in range(fail)]
                + [finding(f"p{i}") for i in range(10)])
    suite = SuiteFindings()
    suite.security.extend(findings)
    assert exit_code(suite.all()) == expected
    assert len(suite.all()) == critical + fail + 10


def test_flow_findings_split_into_business():
    steps = ["auth:go-login", "forbidden-route:/admin/dashboard",
             "cross-company-candidate-access", "change-application-status", "browse-jobs"]
    flow, business = split_flow_findings([finding(s) for s in steps])
    assert [f.step for f in flow] == ["auth:go-login", "browse-jobs"]
    assert [f.step for f in business] == steps[1:4]


def test_suite_findings_all_is_ordered():
    suite = SuiteFindings()
    suite.add_flow_results([finding("login"), finding("forbidden-route:/x")])
    suite.security.append(finding("none_algorithm", flow="jwt"))
    suite.edge.append(finding("edge:#email:empty", flow="edgeCases"))
    assert [f.step for f in suite.all()] == [
        "login", "none_algorithm", "forbidden-route:/x", "edge:#email:empty",
    ]


def test_write_summary(evidence, log):
    suite = SuiteFindings()
    suite.security.append(finding("role_escalation", Severity.CRITICAL, flow="jwt"))
    suite.edge.append(finding("edge:#email:emoji", Severity.WARN, flow="edgeCases"))
    started = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    console = [{"level": "error", "message": "boom"}]
    network = [{"type": "http_error", "status": 500}]
    timing = {"issues": [{"type": "slow_api"}], "stats": [{"role": "candidate"}]}

    path, totals = write_summary(evidence, "local", started, suite, console, network, timing,
                                 logger=log, finished_at=started + timedelta(seconds=90))

    assert totals.critical == 1 and totals.warn == 1
    assert path.endswith("2026-01-01/summary.json")
    summary = json.loads(open(path, encoding="utf-8").read())
    assert summary["environment"] == "local"
    assert summary["durationMs"] == 90_000
    assert summary["exitCode"] == 2
    assert summary["totals"] == {"critical": 1, "fail": 0, "warn": 1, "info": 0, "pass": 0}
    assert summary["findings"]["security"][0]["step"] == "role_escalation"
    assert summary["findings"]["flow"] == []
    assert summary["consoleLogs"] == console
    assert summary["networkIssues"] == network
    assert summary["performanceIssues"] == [{"type": "slow_api"}]
    assert summary["performanceStats"] == [{"role": "candidate"}]

    logs = evidence.dirs("global", "run").logs_dir
    names = sorted(p.name for p in logs.iterdir())
    assert any(n.startswith("watchers-console-") for n in names)
    assert any(n.startswith("watchers-network-") for n in names)
