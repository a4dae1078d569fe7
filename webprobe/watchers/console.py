from dataclasses import asdict, dataclass
from typing import Any, Dict, List

from webprobe.watchers.base import StepClock, Watcher, now_iso

WATCHED_LEVELS = ("warning", "error")


@dataclass(frozen=True)
class ConsoleEvent:
    timestamp: str
    seq: int
    role: str
    flow: str
    level: str
    message: str


class ConsoleWatcher(Watcher[ConsoleEvent]):
    """Collects browser console warnings/errors and uncaught page errors."""

    def attach(self, driver) -> "ConsoleWatcher":
        driver.on_console(self.on_console)
        driver.on_page_error(self.on_page_error)
        return self

    def on_console(self, level: str, message: str):
        if level not in WATCHED_LEVELS:
            return
        self._push(level, message)

    def on_page_error(self, message: str):
        self._push("error", f"uncaught: {message}")

    def _push(self, level: str, message: str):
        ctx = self.clock.current
        self._record(ConsoleEvent(now_iso(), ctx.seq, ctx.role, ctx.flow, level, message))

    def errors(self) -> List[ConsoleEvent]:
        return [e for e in self.events() if e.level == "error"]

    def to_records(self) -> List[Dict[str, Any]]:
        return [asdict(e) for e in self.events()]


def console_watcher(driver, clock: StepClock) -> ConsoleWatcher:
    return ConsoleWatcher(clock).attach(driver)
