"""Step clock and the shared event-sink behaviour of all watchers.

Every action the orchestrator performs starts a new step on the clock. Events
carry the sequence number of the step that caused them, so "what happened
during step S" is a filter on that number rather than a guess based on list
positions.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, List, TypeVar


@dataclass(frozen=True)
class StepContext:
    seq: int
    role: str
    flow: str
    step: str = ""


class StepClock:
    def __init__(self, role: str = "global", flow: str = "bootstrap"):
        self._lock = threading.Lock()
        self._current = StepContext(0, role, flow)

    @property
    def current(self) -> StepContext:
        return self._current

    def begin(self, role: str, flow: str, step: str = "") -> StepContext:
        with self._lock:
            self._current = StepContext(self._current.seq + 1, role, flow, step)
            return self._current


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


E = TypeVar("E")


class Watcher(Generic[E]):
    """Append-only event list with windowed queries."""

    def __init__(self, clock: StepClock):
        self.clock = clock
        self._events: List[E] = []
        self._lock = threading.Lock()

    def _record(self, event: E):
        with self._lock:
            self._events.append(event)

    def events(self) -> List[E]:
        with self._lock:
            return list(self._events)

    def mark(self) -> int:
        """Current length, for the record-then-slice pattern."""
        with self._lock:
            return len(self._events)

    def since(self, index: int) -> List[E]:
        with self._lock:
            return self._events[index:]

    def between(self, start_seq: int, end_seq: int) -> List[E]:
        """Events whose step sequence lies in [start_seq, end_seq)."""
        with self._lock:
            return [e for e in self._events if start_seq <= e.seq < end_seq]

    def for_step(self, ctx: StepContext) -> List[E]:
        return self.between(ctx.seq, ctx.seq + 1)
