import json
from pathlib import Path

from vuln_lab.app import LabSettings
from webprobe.checkers.upload import UploadProbe, upload_matrix
from webprobe.core.models import Severity

SMALL = 4096


def run_probe(engine, evidence, token):
    probe = UploadProbe(token, "/api/cv/upload", oversize_bytes=SMALL)
    return {f.step: f for f in engine.run(probe, evidence)}


def test_matrix_labels_and_sizes():
    matrix = dict(upload_matrix(SMALL))
    assert len(matrix) == 8
    assert len(matrix["oversized file"].content) == SMALL
    assert matrix["empty file"].content == b""
    assert "\x00" in matrix["null byte injection"].file_name


def test_hardened_target_rejects_every_file(make_engine, lab_login, evidence):
    engine = make_engine(LabSettings(max_upload_bytes=1024))
    token = lab_login(engine, "candidate")
    findings = run_probe(engine, evidence, token)

    assert len(findings) == 8
    for label, finding in findings.items():
        assert finding.severity is Severity.PASS, label
        assert 400 <= finding.status < 500
    assert findings["oversized file"].status == 413
    assert findings["empty file"].status == 422
    assert findings["wrong MIME type"].status == 415


def test_vulnerable_target_accepts_uploads(make_engine, lab_login, evidence):
    engine = make_engine(LabSettings.vulnerable())
    token = lab_login(engine, "candidate")
    findings = run_probe(engine, evidence, token)

    assert all(f.severity is Severity.CRITICAL for f in findings.values())
    assert findings["svg with script"].details == "CRITICAL: malicious upload accepted"


def test_upload_evidence_describes_file_not_bytes(make_engine, lab_login, evidence):
    engine = make_engine()
    token = lab_login(engine, "candidate")
    findings = run_probe(engine, evidence, token)
    record = json.loads(Path(findings["oversized file"].evidence_path).read_text())
    assert record["request"]["body"] == {"fileName": "50MB.pdf", "mimeType": "application/pdf",
                                         "bytes": SMALL}
    assert "content-type" not in record["request"]["headers"]


def test_rejected_upload_takes_no_screenshot(make_engine, lab_login, evidence):
    engine = make_engine(LabSettings(max_upload_bytes=1024))
    token = lab_login(engine, "candidate")
    findings = run_probe(engine, evidence, token)

    empty = findings["empty file"]
    assert (empty.severity, empty.status) == (Severity.PASS, 422)
    assert empty.screenshot_path is None and empty.snapshot_path is None
    assert empty.evidence_path is not None
    shots = evidence.dirs("candidate", UploadProbe.scope).screenshots_dir
    assert list(shots.iterdir()) == []
