from typing import List, Sequence, Tuple

from webprobe.core.errors import DriverError
from webprobe.core.forms import discover_fields
from webprobe.core.models import Finding
from webprobe.fuzzers.base import BaseFuzzer

VALUE_PREVIEW = 250

INPUT_CASES: Tuple[Tuple[str, str], ...] = (
    ("empty", ""),
    ("whitespace only", "   "),
    ("long string", "a" * 1000),
    ("special chars", "!@#$%^&*()<>?{}[]"),
    ("xss basic", "<script>alert(1)</script>"),
    ("xss img", "<img src=x onerror=alert(1)>"),
    ("sql injection", "' OR '1'='1"),
    ("sql drop", "'; DROP TABLE users; --"),
    ("unicode overflow", "𝕳𝖊𝖑𝖑𝖔" * 200),
    ("null byte", "test\x00injection"),
    ("negative number", "-99999"),
    ("float overflow", "99999999999.999999"),
    ("invalid email", "a@@b..c"),
    ("html entity", "&lt;script&gt;alert(1)&lt;/script&gt;"),
)


class InputFuzzer(BaseFuzzer):
    """Hostile strings into every visible form field of the page."""

    flow = "edgeCases"
    scope = "edge-cases"
    context_suffix = "context"

    def __init__(self, *args, cases: Sequence[Tuple[str, str]] = INPUT_CASES, **kwargs):
        super().__init__(*args, **kwargs)
        self.cases = tuple(cases)

    def discover(self) -> List[str]:
        self.open_page()
        return discover_fields(self.driver.content())

    def run(self) -> List[Finding]:
        try:
            fields = self.discover()
        except DriverError as e:
            return [self.setup_failed("discover", e)]
        if not fields:
            if self.logger:
                self.logger.warn(f"[{self.role}] no fillable form fields found for {self.flow}")
            return []

        results: List[Finding] = []
        for field in fields:
            for label, value in self.cases:
                results.append(self.submit_case(
                    step=f"edge:{field}:{label}",
                    label=label,
                    action=lambda f=field, v=value: self.driver.fill(f, v),
                    context={"field": field, "caseLabel": label, "value": value[:VALUE_PREVIEW]},
                ))
        return results
