import hashlib
import hmac

import jwt
import pytest

from webprobe.core.errors import TokenFormatError
from webprobe.core.tokens import (
    MALFORMED_TOKEN,
    b64url_encode,
    decode_header,
    decode_payload,
    expired_token,
    none_algorithm_token,
    redact,
    redact_authorization,
    role_escalated_token,
    sign_hs256,
    tamper_keep_signature,
)

SECRET = "unit-test-signing-secret-0123456789"


@pytest.fixture
def token():
    return jwt.encode({"sub": "1", "role": "candidate", "exp": 4_000_000_000},
                      SECRET, algorithm="HS256")


def test_decode_round_trips_pyjwt_token(token):
    assert decode_header(token) == {"alg": "HS256", "typ": "JWT"}
    assert decode_payload(token)["role"] == "candidate"


@pytest.mark.parametrize("bad", ["", "onlyonesegment", ".payload", MALFORMED_TOKEN])
def test_decode_rejects_malformed(bad):
    with pytest.raises(TokenFormatError):
        decode_payload(bad)


def test_token_format_error_is_value_error():
    with pytest.raises(ValueError):
        decode_header("nope")


@pytest.mark.parametrize("payload", [b"[1, 2]", b"\"role\"", b"42"])
def test_payload_must_be_a_json_object(payload):
    header = b64url_encode(b'{"alg": "HS256"}')
    bad = ".".join([header, b64url_encode(payload), "sig"])
    with pytest.raises(TokenFormatError):
        decode_payload(bad)
    with pytest.raises(TokenFormatError):
        role_escalated_token(bad, "superAdmin")


def test_forgeries_leave_original_untouched(token):
    before = token
    variants = [
        expired_token(token),
        tamper_keep_signature(token, {"role": "superAdmin"}),
        none_algorithm_token(token, {"role": "superAdmin"}),
        role_escalated_token(token, "superAdmin"),
    ]
    assert token == before
    assert decode_payload(token)["role"] == "candidate"
    assert len(set(variants)) == len(variants)
    assert all(v != token for v in variants)


def test_expired_token_is_one_hour_in_the_past(token):
    forged = expired_token(token, SECRET, now=1_700_000_000)
    assert decode_payload(forged)["exp"] == 1_700_000_000 - 3600
    assert forged.split(".")[0] == token.split(".")[0]
    with pytest.raises(jwt.ExpiredSignatureError):
        jwt.decode(forged, SECRET, algorithms=["HS256"])


def test_tamper_keeps_header_and_signature(token):
    forged = tamper_keep_signature(token, {"role": "superAdmin"})
    head, _, sig = forged.split(".")
    assert head == token.split(".")[0]
    assert sig == token.split(".")[2]
    assert decode_payload(forged)["role"] == "superAdmin"
    with pytest.raises(jwt.InvalidSignatureError):
        jwt.decode(forged, SECRET, algorithms=["HS256"])


def test_tamper_requires_signature_segment(token):
    unsigned = ".".join(token.split(".")[:2])
    with pytest.raises(TokenFormatError):
        tamper_keep_signature(unsigned, {"x": 1})


def test_none_algorithm_has_empty_signature(token):
    forged = none_algorithm_token(token, {"role": "superAdmin"})
    assert forged.endswith(".")
    assert forged.count(".") == 2
    assert decode_header(forged) == {"alg": "none", "typ": "JWT"}
    assert decode_payload(forged)["role"] == "superAdmin"
    assert decode_payload(forged)["sub"] == "1"


def test_role_escalation_resigns_with_given_secret(token):
    forged = role_escalated_token(token, "superAdmin", SECRET)
    claims = jwt.decode(forged, SECRET, algorithms=["HS256"])
    assert claims["role"] == "superAdmin"


def test_role_escalation_default_empty_key(token):
    forged = role_escalated_token(token, "superAdmin")
    signing_input, sig = forged.rsplit(".", 1)
    expected = hmac.new(b"", signing_input.encode(), hashlib.sha256).digest()
    assert sig == b64url_encode(expected)


def test_sign_hs256_has_no_padding():
    sig = sign_hs256("a.b", "k")
    assert "=" not in sig
    assert len(sig) == 43


# ── redaction ───────────────────────────────────────────────────

@pytest.mark.parametrize("value", ["abcdefghijklmnop", "x" * 11, "eyJ.eyJ.sig-1234567890"])
def test_redact_keeps_last_ten(value):
    out = redact(value)
    assert len(out) == len(value)
    assert out[-10:] == value[-10:]
    assert set(out[:-10]) == {"*"}


@pytest.mark.parametrize("value", ["", "a", "0123456789"])
def test_redact_masks_short_tokens(value):
    assert redact(value) == "*" * len(value)


def test_redact_is_idempotent(token):
    once = redact(token)
    assert redact(once) == once


def test_redact_authorization_keeps_scheme(token):
    out = redact_authorization(f"Bearer {token}")
    assert out.startswith("Bearer ")
    assert token not in out
    assert out.endswith(token[-10:])
