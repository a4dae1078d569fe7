from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

import httpx

from webprobe.core.errors import TokenFormatError
from webprobe.core.evidence import NO_TOKEN, EvidenceStore
from webprobe.core.models import Finding, ProbeCase, ProbeResponse, Severity
from webprobe.core.tokens import redact

_BODY_PREVIEW = 4000


def api_path(base_path: str, endpoint: str) -> str:
    """Join the configured API base path with an endpoint suffix."""
    base = base_path[:-1] if base_path.endswith("/") else base_path
    tail = endpoint if endpoint.startswith("/") else f"/{endpoint}"
    return f"{base}{tail}"


def auth_headers(token: Optional[str], json_body: bool = True) -> Dict[str, str]:
    headers = {"content-type": "application/json"} if json_body else {}
    if token:
        headers["authorization"] = f"Bearer {token}"
    return headers


def read_body(response: httpx.Response) -> Any:
    """JSON when the body parses, otherwise text."""
    try:
        return response.json()
    except ValueError:
        return response.text[:_BODY_PREVIEW]


class Engine:
    def __init__(self, base_url: str, api_base_path: str = "/api",
                 proxy: str | None = None, timeout: float = 10.0, logger=None,
                 transport: httpx.BaseTransport | None = None):
        self.name = "WebProbe"
        self.version = "1.0.0"
        self.api_base_path = api_base_path
        self.logger = logger
        self.client = httpx.Client(
            base_url=base_url, verify=False, proxy=proxy, follow_redirects=False,
            timeout=timeout, transport=transport)

    def close(self):
        self.client.close()

    def api(self, endpoint: str) -> str:
        return api_path(self.api_base_path, endpoint)

    # ---------- HTTP ----------

    def send(self, method: str, path: str, token: Optional[str] = None,
             json: Optional[Dict[str, Any]] = None, upload=None,
             headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        hdrs = auth_headers(token, json_body=upload is None)
        hdrs.update(headers or {})
        if upload is not None:
            files = {"cv": (upload.file_name, upload.content, upload.mime_type)}
            return self.client.request(method, path, headers=hdrs, files=files)
        return self.client.request(method, path, headers=hdrs, json=json)

    def burst(self, count: int, sender: Callable[[int], httpx.Response],
              concurrent: bool = False) -> List[int]:
        """Fire `count` requests; concurrently all at once, else one by one.

        Transport failures are recorded as status 0 so the histogram still
        sums to `count`.
        """
        def one(index: int) -> int:
            try:
                return sender(index).status_code
            except httpx.HTTPError as e:
                if self.logger:
                    self.logger.debug(f"burst request {index} failed: {e}")
                return 0

        if concurrent:
            with ThreadPoolExecutor(max_workers=count) as pool:
                return list(pool.map(one, range(count)))
        return [one(i) for i in range(count)]

    # ---------- probe runner ----------

    def run(self, probe, evidence: EvidenceStore) -> List[Finding]:
        """Execute every case of a probe matrix and emit one finding each."""
        results: List[Finding] = []
        dirs = evidence.dirs(probe.evidence_role, probe.scope)
        if self.logger:
            self.logger.info(f"Running {probe.name} ({len(probe.cases())} cases)")

        for case in probe.cases():
            try:
                case = probe.resolve(case)
                probe.prepare(case, self)
                response = probe.execute(case, self)
            except TokenFormatError as e:
                response = ProbeResponse(error=f"Token could not be derived: {e}")
            except httpx.HTTPError as e:
                response = ProbeResponse(error=f"Request failed: {type(e).__name__}: {e}")

            severity = probe.classify(case, response)
            details = probe.describe(case, response, severity)
            evidence_path = evidence.save_request_response(
                dirs, f"{probe.prefix}-{case.name}",
                request=probe.request_record(case, self),
                response=probe.response_record(response),
                token_used=case.token or NO_TOKEN,
            )
            finding = Finding(
                role=case.role, flow=probe.flow, step=case.name, severity=severity,
                details=details, status=response.status if not response.error else None,
                status_histogram=probe.histogram(response),
                evidence_path=evidence_path,
            )
            self._log(finding, case)
            results.append(finding)

        if self.logger and not any(f.severity is Severity.CRITICAL for f in results):
            self.logger.ok(f"No critical findings for {probe.name}")
        return results

    def _log(self, finding: Finding, case: ProbeCase):
        if not self.logger:
            return
        token = redact(case.token) if case.token else "none"
        self.logger.log(finding.severity, finding.role, finding.flow, finding.step,
                        f"{finding.details} status={finding.status} token={token}")
