"""Malicious upload battery: crafted multipart submissions to the CV endpoint."""

from typing import List

from webprobe.checkers.base import BaseProbe
from webprobe.core.models import ProbeCase, UploadFile
from webprobe.core.severity import Expectation

OVERSIZE_BYTES = 50 * 1024 * 1024


def upload_matrix(oversize_bytes: int = OVERSIZE_BYTES) -> List[tuple]:
    """(label, file) pairs; kept as data so fixtures can be inspected."""
    return [
        ("oversized file", UploadFile("50MB.pdf", "application/pdf", b"A" * oversize_bytes)),
        ("wrong MIME type", UploadFile("malware.pdf", "application/x-msdownload", b"MZ-fake-exe")),
        ("double extension", UploadFile("cv.pdf.exe", "application/octet-stream", b"double-ext")),
        ("null byte injection", UploadFile("cv.pdf\x00.exe", "application/octet-stream", b"null-byte")),
        ("empty file", UploadFile("0kb.pdf", "application/pdf", b"")),
        ("svg with script", UploadFile("xss.svg", "image/svg+xml", b"<svg onload=alert(1)>")),
        ("zip bomb renamed", UploadFile("bomb.pdf", "application/pdf", b"PK\x03\x04-fake-zip")),
        ("path traversal name", UploadFile("../../etc/passwd.pdf", "application/pdf", b"%PDF-1.4\n")),
    ]


class UploadProbe(BaseProbe):

    name = "Malicious Upload"
    flow = "upload"
    prefix = "upload"
    scope = "upload-attack"
    expectation = Expectation.UPLOAD
    rejected_text = "Rejected or blocked as expected"
    accepted_text = "CRITICAL: malicious upload accepted"

    def __init__(self, token: str, upload_endpoint: str, role: str = "candidate",
                 oversize_bytes: int = OVERSIZE_BYTES):
        super().__init__()
        self.token = token
        self.upload_endpoint = upload_endpoint
        self.role = role
        self.evidence_role = role
        self.oversize_bytes = oversize_bytes

    def build_cases(self) -> List[ProbeCase]:
        return [
            ProbeCase(name=label, method="POST", path=self.upload_endpoint,
                      role=self.role, token=self.token, upload=item)
            for label, item in upload_matrix(self.oversize_bytes)
        ]
