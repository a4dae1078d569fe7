from colorama import init as colorama_init, Fore, Style
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List

from webprobe.core.models import Finding, Severity
colorama_init(autoreset=True)

_SEV_COLORS = {
    Severity.PASS: Fore.GREEN,
    Severity.INFO: Fore.CYAN,
    Severity.WARN: Fore.YELLOW,
    Severity.FAIL: Fore.RED,
    Severity.CRITICAL: Fore.MAGENTA,
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    severity: Severity
    role: str
    flow: str
    step: str
    message: str


class Log:
    def __init__(self, verbose: int = 1):
        self.verbose = verbose
        self._entries: List[LogEntry] = []

    def _time(self):
        return datetime.now().strftime("[%H:%M:%S]")

    def _fmt(self, level: str, color: str):
        return f"{self._time()} {color}[{level}]{Style.RESET_ALL}"

    def info(self, msg: str):
        if self.verbose >= 1:
            print(f"{self._fmt('INFO', Fore.CYAN)} {msg}")

    def warn(self, msg: str):
        if self.verbose >= 0:
            print(f"{self._fmt('WARNING', Fore.YELLOW)} {msg}")

    def ok(self, msg: str):
        print(f"{self._fmt('SUCCESS', Fore.GREEN)} {msg}")

    def fail(self, msg: str):
        print(f"{self._fmt('FAIL', Fore.RED)} {msg}")

    def debug(self, msg: str):
        if self.verbose >= 2:
            print(f"{self._fmt('DEBUG', Fore.MAGENTA)} {msg}")

    # ── role-aware entries ──────────────────────────────────────

    def log(self, severity: Severity, role: str, flow: str, step: str, message: str):
        """Record a structured entry and print it.

        PASS/INFO lines need -v; anything worse is
        always printed.
        """
        entry = LogEntry(datetime.now(timezone.utc).isoformat(), severity,
                         role, flow, step, message)
        self._entries.append(entry)
        if severity.rank <= Severity.INFO.rank and self.verbose < 2:
            return
        col = _SEV_COLORS.get(severity, Fore.WHITE)
        print(f"{self._fmt(severity.value, col)} "
              f"{Style.DIM}[{role}] [{flow}]{Style.RESET_ALL} {step}: {message}")

    def finding(self, finding: Finding):
        extra = f" {Style.DIM}(HTTP {finding.status}){Style.RESET_ALL}" \
            if finding.status is not None else ""
        self.log(finding.severity, finding.role, finding.flow, finding.step,
                 f"{finding.details}{extra}")

    def entries(self) -> List[LogEntry]:
        return list(self._entries)
