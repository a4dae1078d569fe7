import tempfile
from pathlib import Path
from typing import List, Tuple

from webprobe.core.errors import DriverError
from webprobe.core.models import Finding
from webprobe.fuzzers.base import BaseFuzzer

BIG_PDF_BYTES = 50 * 1024 * 1024

# (case label, fixture file name)
FILE_CASES: Tuple[Tuple[str, str], ...] = (
    ("0 byte file", "0kb.pdf"),
    ("50MB PDF", "50MB.pdf"),
    ("password-protected PDF", "password-protected.pdf"),
    ("corrupted PDF header", "corrupted.pdf"),
    ("PDF with embedded JavaScript", "embedded-js.pdf"),
    ("image renamed as PDF", "image-as-pdf.pdf"),
    ("HTML file renamed as PDF", "html-as-pdf.pdf"),
)


def fixture_content(file_name: str, big_bytes: int = BIG_PDF_BYTES) -> bytes:
    if file_name == "0kb.pdf":
        return b""
    if file_name == "50MB.pdf":
        return b"A" * big_bytes
    if file_name == "password-protected.pdf":
        return b"%PDF-1.4\n%encrypted-placeholder\n"
    if file_name == "corrupted.pdf":
        return b"NOT_A_PDF_HEADER"
    if file_name == "embedded-js.pdf":
        return b"%PDF-1.4\n1 0 obj\n<< /JS (app.alert(1)) >>\n"
    if file_name == "image-as-pdf.pdf":
        return bytes([0x89, 0x50, 0x4E, 0x47])
    return b"<html><script>alert(1)</script></html>"


def write_fixture(folder: Path, file_name: str, big_bytes: int = BIG_PDF_BYTES) -> Path:
    path = folder / file_name
    path.write_bytes(fixture_content(file_name, big_bytes))
    return path


class FileFuzzer(BaseFuzzer):
    """Hostile files through the CV upload control."""

    flow = "fileEdge"
    scope = "file-edge"
    context_suffix = "file"

    def __init__(self, *args, input_selector: str = "input[type=file]",
                 big_bytes: int = BIG_PDF_BYTES, **kwargs):
        super().__init__(*args, **kwargs)
        self.input_selector = input_selector
        self.big_bytes = big_bytes

    def run(self) -> List[Finding]:
        try:
            self.open_page()
        except DriverError as e:
            return [self.setup_failed("open-page", e)]

        results: List[Finding] = []
        with tempfile.TemporaryDirectory(prefix="webprobe-upload-") as tmp:
            for label, file_name in FILE_CASES:
                path = write_fixture(Path(tmp), file_name, self.big_bytes)
                results.append(self.submit_case(
                    step=f"file-edge:{label}",
                    label=label,
                    action=lambda p=str(path): self.driver.set_input_files(self.input_selector, p),
                    context={"caseLabel": label, "filePath": str(path),
                             "bytes": path.stat().st_size},
                ))
        return results
