import pytest

from webprobe.watchers.base import StepClock
from webprobe.watchers.console import console_watcher
from webprobe.watchers.network import (
    HTTP_ERROR,
    MISSING_HEADERS,
    SENSITIVE_DATA,
    SLOW_RESPONSE,
    NetworkWatcher,
    find_sensitive_key,
)
from webprobe.watchers.timing import SLOW_API, SLOW_PAGE_LOAD, SLOW_TTI, TimingWatcher


@pytest.fixture
def clock():
    return StepClock()


def test_clock_sequence_is_monotonic(clock):
    a = clock.begin("candidate", "auth", "go-login")
    b = clock.begin("candidate", "auth", "submit")
    assert (a.seq, b.seq) == (1, 2)
    assert clock.current is b


def test_console_keeps_warnings_and_errors(clock, fake_driver):
    watcher = console_watcher(fake_driver, clock)
    clock.begin("candidate", "auth")
    fake_driver.emit_console("log", "hello")
    fake_driver.emit_console("info", "fyi")
    fake_driver.emit_console("warning", "deprecated")
    fake_driver.emit_console("error", "TypeError: x is undefined")
    fake_driver.emit_page_error("ReferenceError: y")

    events = watcher.events()
    assert [e.level for e in events] == ["warning", "error", "error"]
    assert events[2].message == "uncaught: ReferenceError: y"
    assert len(watcher.errors()) == 2
    assert all(e.role == "candidate" and e.seq == 1 for e in events)


def test_windows(clock, fake_driver):
    watcher = console_watcher(fake_driver, clock)
    first = clock.begin("candidate", "auth", "one")
    fake_driver.emit_console("error", "a")
    mark = watcher.mark()
    second = clock.begin("candidate", "auth", "two")
    fake_driver.emit_console("error", "b")
    fake_driver.emit_console("error", "c")

    assert [e.message for e in watcher.for_step(first)] == ["a"]
    assert [e.message for e in watcher.for_step(second)] == ["b", "c"]
    assert [e.message for e in watcher.since(mark)] == ["b", "c"]
    assert len(watcher.between(first.seq, second.seq + 1)) == 3


def test_network_emits_one_event_per_condition(clock, fake_driver):
    watcher = NetworkWatcher(clock, slow_threshold_ms=100).attach(fake_driver)
    clock.begin("candidate", "auth")
    fake_driver.emit_request("r1")
    fake_driver.emit_response("r1", status=500, duration_ms=250,
                              body='{"user": {"accessToken": "x"}}')

    kinds = [e.type for e in watcher.events()]
    assert kinds == [HTTP_ERROR, SLOW_RESPONSE, MISSING_HEADERS, SENSITIVE_DATA]
    assert watcher.of_type(SENSITIVE_DATA)[0].details == "Found field: accessToken"
    assert watcher.largest_duration_ms() == 250


def test_clean_response_emits_nothing(clock, fake_driver, safe_headers):
    watcher = NetworkWatcher(clock).attach(fake_driver)
    fake_driver.emit_request("r1")
    fake_driver.emit_response("r1", status=200, headers=safe_headers,
                              body='{"password_policy": "strong"}')
    assert watcher.events() == []


def test_late_response_belongs_to_request_step(clock, fake_driver):
    watcher = NetworkWatcher(clock).attach(fake_driver)
    issued = clock.begin("candidate", "auth", "submit")
    fake_driver.emit_request("slow")
    later = clock.begin("candidate", "auth", "next")
    fake_driver.emit_response("slow", status=404, headers={})

    assert watcher.for_step(later) == []
    assert {e.seq for e in watcher.for_step(issued)} == {issued.seq}


def test_failed_requests_are_forgotten(clock, fake_driver):
    watcher = NetworkWatcher(clock).attach(fake_driver)
    clock.begin("candidate", "auth")
    for i in range(1000):
        fake_driver.emit_request(f"r{i}")
        fake_driver.emit_request_failed(f"r{i}")
    fake_driver.emit_request("kept")

    assert watcher.pending_requests() == 1
    assert watcher.events() == []


def test_unknown_request_falls_back_to_current_step(clock, fake_driver, safe_headers):
    watcher = NetworkWatcher(clock).attach(fake_driver)
    ctx = clock.begin("recruiter", "recruiter")
    fake_driver.emit_response("never-seen", status=403, headers=safe_headers)
    [event] = watcher.events()
    assert (event.seq, event.role, event.type) == (ctx.seq, "recruiter", HTTP_ERROR)


@pytest.mark.parametrize("body,hit", [
    ('{"accessToken": "x"}', "accessToken"),
    ('{"data": [{"client_secret": "x"}]}', "client_secret"),
    ('{"Refresh-Token": "x"}', "Refresh-Token"),
    ('{"password_policy": "x", "tokenCount": 3}', None),
    ('{"ok": true}', None),
    ("password: hunter2", "password"),
    ("<html>token</html>", None),
    ("", None),
])
def test_sensitive_key_scan(body, hit):
    assert find_sensitive_key(body) == hit


def test_timing_thresholds(clock, fake_driver):
    watcher = TimingWatcher(clock, page_threshold_ms=3000, api_threshold_ms=2000)
    ctx = clock.begin("candidate", "performance", "page-metrics")
    fake_driver.current = "/dashboard"
    fake_driver.timing = {"loadEventEnd": 4200.4, "domInteractive": 900}

    sample = watcher.capture(fake_driver, largest_api_ms=2500, ctx=ctx)
    assert (sample.page_load_ms, sample.time_to_interactive_ms, sample.largest_api_ms) == \
        (4200, 900, 2500)
    assert [e.type for e in watcher.events()] == [SLOW_PAGE_LOAD, SLOW_API]
    assert watcher.events()[0].target == "/dashboard"


def test_timing_ignores_missing_metrics(clock, fake_driver):
    watcher = TimingWatcher(clock)
    fake_driver.timing = {"loadEventEnd": float("nan"), "domInteractive": "n/a"}
    sample = watcher.capture(fake_driver, largest_api_ms=0)
    assert (sample.page_load_ms, sample.time_to_interactive_ms) == (0, 0)
    assert watcher.events() == []
    records = watcher.to_records()
    assert records["issues"] == [] and len(records["stats"]) == 1


def test_slow_tti_is_flagged(clock, fake_driver):
    watcher = TimingWatcher(clock, page_threshold_ms=1000)
    fake_driver.timing = {"loadEventEnd": 500, "domInteractive": 1500}
    watcher.capture(fake_driver, largest_api_ms=0)
    assert [e.type for e in watcher.events()] == [SLOW_TTI]
