import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List

from webprobe.watchers.base import StepClock, StepContext, Watcher, now_iso

SLOW_PAGE_LOAD = "slow_page_load"
SLOW_TTI = "slow_tti"
SLOW_API = "slow_api"


@dataclass(frozen=True)
class TimingEvent:
    timestamp: str
    seq: int
    role: str
    flow: str
    type: str
    target: str
    duration_ms: int
    threshold_ms: int


@dataclass(frozen=True)
class TimingSample:
    seq: int
    role: str
    flow: str
    page_load_ms: int
    time_to_interactive_ms: int
    largest_api_ms: int


class TimingWatcher(Watcher[TimingEvent]):
    """Samples navigation timing and flags threshold violations."""

    def __init__(self, clock: StepClock, page_threshold_ms: int = 3000,
                 api_threshold_ms: int = 2000):
        super().__init__(clock)
        self.page_threshold_ms = page_threshold_ms
        self.api_threshold_ms = api_threshold_ms
        self._samples: List[TimingSample] = []

    def capture(self, driver, largest_api_ms: int, ctx: StepContext = None) -> TimingSample:
        ctx = ctx or self.clock.current
        nav = driver.navigation_timing()
        page_load = _metric(nav, "loadEventEnd")
        tti = _metric(nav, "domInteractive")
        sample = TimingSample(ctx.seq, ctx.role, ctx.flow, page_load, tti, int(largest_api_ms))
        self._samples.append(sample)

        target = driver.url
        if page_load > self.page_threshold_ms:
            self._push(ctx, SLOW_PAGE_LOAD, target, page_load, self.page_threshold_ms)
        if tti > self.page_threshold_ms:
            self._push(ctx, SLOW_TTI, target, tti, self.page_threshold_ms)
        if largest_api_ms > self.api_threshold_ms:
            self._push(ctx, SLOW_API, target, int(largest_api_ms), self.api_threshold_ms)
        return sample

    def _push(self, ctx, kind, target, duration, threshold):
        self._record(TimingEvent(now_iso(), ctx.seq, ctx.role, ctx.flow, kind,
                                 target, duration, threshold))

    def samples(self) -> List[TimingSample]:
        return list(self._samples)

    def to_records(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "issues": [asdict(e) for e in self.events()],
            "stats": [asdict(s) for s in self._samples],
        }


def _metric(nav: Dict[str, Any], key: str) -> int:
    value = (nav or {}).get(key) or 0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0
    return int(round(value)) if math.isfinite(value) and value > 0 else 0
