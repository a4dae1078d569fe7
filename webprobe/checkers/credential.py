"""Credential forgery battery: forged, stripped and replayed bearer tokens."""

import time
from dataclasses import replace
from typing import List, Optional

from webprobe.checkers.base import BaseProbe
from webprobe.core.models import ProbeCase
from webprobe.core.tokens import (
    MALFORMED_TOKEN,
    expired_token,
    none_algorithm_token,
    role_escalated_token,
    tamper_keep_signature,
)

ATTACKS = (
    "expired_token",
    "invalid_signature",
    "none_algorithm",
    "role_escalation",
    "missing_token",
    "malformed_token",
    "reused_after_logout",
)


class CredentialProbe(BaseProbe):

    name = "Credential Forgery"
    flow = "jwt"
    prefix = "jwt"
    scope = "jwt-attack"
    accepted_text = "CRITICAL SECURITY FAILURE: endpoint accepted invalid JWT"

    def __init__(self, valid_token: str, protected_endpoint: str, logout_endpoint: str,
                 role: str = "candidate", secret: str = "", escalate_to: str = "superAdmin",
                 method: str = "GET", body: Optional[dict] = None):
        super().__init__()
        self.valid_token = valid_token
        self.protected_endpoint = protected_endpoint
        self.logout_endpoint = logout_endpoint
        self.role = role
        self.evidence_role = role
        self.secret = secret
        self.escalate_to = escalate_to
        self.method = method
        self.body = body

    def forge(self, attack: str) -> Optional[str]:
        """Derive the token used by one attack; the valid token is never modified."""
        t = self.valid_token
        if attack == "expired_token":
            return expired_token(t, self.secret)
        if attack == "invalid_signature":
            return tamper_keep_signature(t, {"nonce": int(time.time() * 1000)})
        if attack == "none_algorithm":
            return none_algorithm_token(t, {"role": self.role})
        if attack == "role_escalation":
            return role_escalated_token(t, self.escalate_to, self.secret)
        if attack == "missing_token":
            return None
        if attack == "malformed_token":
            return MALFORMED_TOKEN
        if attack == "reused_after_logout":
            return t
        raise ValueError(f"Unknown credential attack: {attack}")

    def build_cases(self) -> List[ProbeCase]:
        # tokens are forged per case in resolve()
        return [
            ProbeCase(name=attack, method=self.method, path=self.protected_endpoint,
                      role=self.role, body=self.body)
            for attack in ATTACKS
        ]

    def resolve(self, case: ProbeCase) -> ProbeCase:
        return replace(case, token=self.forge(case.name))

    def prepare(self, case: ProbeCase, engine) -> None:
        if case.name == "reused_after_logout":
            resp = engine.send("POST", self.logout_endpoint, token=self.valid_token)
            if engine.logger:
                engine.logger.debug(f"logout before replay -> HTTP {resp.status_code}")

    def describe(self, case, response, severity):
        if case.name == "reused_after_logout" and response.ok:
            return "CRITICAL: session token still valid after logout"
        return super().describe(case, response, severity)
