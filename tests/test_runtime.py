import httpx
import pytest

from tests.conftest import LAB_URL, lab_env
from vuln_lab.app import LabSettings
from webprobe.core.config import Credential, config_from_mapping
from webprobe.core.engine import Engine
from webprobe.core.errors import SetupError, TokenExtractionError
from webprobe.core.runtime import (
    DEFAULT_IDS,
    TOKEN_SHAPES,
    Fallback,
    FallbackChain,
    RuntimeState,
    SeedIds,
    Tokens,
    cleanup_runtime,
    create_test_users,
    extract_token,
    login_for_token,
    prepare_runtime_state,
    read_id,
)


@pytest.mark.parametrize("body,cookie,shape", [
    ({"token": "T"}, None, "top_level"),
    ({"accessToken": "T"}, None, "top_level"),
    ({"data": {"accessToken": "T"}}, None, "data"),
    ({"data": {"jwt": "T"}}, None, "data"),
    ({"payload": {"token": "T"}}, None, "payload"),
    ({"user": {}}, "accessToken=T; Path=/; HttpOnly", "cookie"),
    ("<html>", "jwt=T", "cookie"),
])
def test_extract_token_shapes(body, cookie, shape):
    assert extract_token(body, cookie) == (shape, "T")


def test_top_level_wins_over_cookie():
    assert extract_token({"token": "A"}, "token=B") == ("top_level", "A")


def test_extract_token_lists_every_shape_tried():
    with pytest.raises(TokenExtractionError) as exc:
        extract_token({"user": {"id": 1}}, None, label="recruiter", status=200)
    assert exc.value.tried == list(TOKEN_SHAPES)
    assert "recruiter" in str(exc.value)
    assert "top_level, data, payload, cookie" in str(exc.value)
    assert isinstance(exc.value, SetupError)


def test_read_id():
    assert read_id({"id": 7}) == "7"
    assert read_id({"data": {"id": "abc"}}) == "abc"
    assert read_id({"id": ""}) is None
    assert read_id([1, 2]) is None


def test_fallback_chain_first_non_empty_wins():
    chain = FallbackChain("otherCompanyId", Fallback("override", None),
                          Fallback("seeded", ""), Fallback("default", "2"))
    assert chain.resolve() == ("2", "default")
    assert FallbackChain("x", Fallback("seeded", 42)).resolve() == ("42", "seeded")


def test_fallback_chain_exhausted_raises():
    with pytest.raises(SetupError, match="tried override, seeded"):
        FallbackChain("x", Fallback("override", None), Fallback("seeded", None)).resolve()
    with pytest.raises(ValueError):
        FallbackChain("x")


@pytest.mark.parametrize("shape", TOKEN_SHAPES)
def test_login_handles_every_lab_shape(shape, make_engine, lab_config):
    engine = make_engine(LabSettings(token_shape=shape))
    token = login_for_token(engine, lab_config.credentials["recruiter"], "recruiter")
    assert token.count(".") == 2


def test_login_rejected_is_setup_error(make_engine):
    engine = make_engine()
    with pytest.raises(SetupError, match="status=401"):
        login_for_token(engine, Credential("nobody@vulnlab.test", "nope"), "candidate")


def test_login_transport_error_is_setup_error(log):
    def down(request):
        raise httpx.ConnectError("refused", request=request)

    engine = Engine(LAB_URL, logger=log, transport=httpx.MockTransport(down))
    with pytest.raises(SetupError, match="Login failed for recruiter"):
        login_for_token(engine, Credential("a@b.test", "x"), "recruiter")
    engine.close()


def test_registration_keeps_only_accepted_users(make_engine, log):
    engine = make_engine()
    users = create_test_users(engine, log, now=1700000000000)
    # the hardened lab refuses self-registered super admins
    assert [u.role for u in users] == ["candidate", "candidate", "recruiter", "recruiter",
                                       "companyAdmin", "companyAdmin"]
    assert all(u.id for u in users)
    assert users[0].email == "qa.candidate.1700000000000.1@example.test"


def test_prepare_runtime_state_against_lab(make_engine, lab_config, log):
    engine = make_engine()
    state = prepare_runtime_state(engine, lab_config, log)

    assert len({state.tokens.candidate_a, state.tokens.candidate_b}) == 2
    ids = state.ids
    assert ids.candidate_a_application_id not in DEFAULT_IDS
    assert ids.candidate_b_application_id not in DEFAULT_IDS
    assert ids.other_candidate_id == state.created_users[1].id
    assert ids.sources == {
        "candidate_a_application_id": "seeded",
        "candidate_b_application_id": "seeded",
        "other_candidate_id": "seeded",
        "other_company_id": "default",
        "other_company_job_id": "default",
    }
    assert state.test_job_id == "1"

    lab = engine.app.config["LAB_STATE"]
    assert int(ids.candidate_a_application_id) in lab.applications
    cleanup_runtime(engine, state, log)
    assert int(ids.candidate_a_application_id) not in lab.applications
    assert int(ids.candidate_b_application_id) not in lab.applications
    assert {1, 2} <= set(lab.applications)


def test_overrides_skip_login_and_seeding(make_engine, lab_login, log):
    engine = make_engine()
    real = lab_login(engine, "candidate")
    config = config_from_mapping(lab_env(
        CANDIDATE_A_TOKEN=real, CANDIDATE_B_TOKEN="b-token", RECRUITER_TOKEN="r-token",
        COMPANY_ADMIN_TOKEN="a-token", SUPER_ADMIN_TOKEN="s-token",
        OTHER_COMPANY_ID="77", TEST_JOB_ID="2",
    ))
    state = prepare_runtime_state(engine, config, log)

    assert state.tokens == Tokens(real, "b-token", "r-token", "a-token", "s-token")
    assert state.ids.other_company_id == "77"
    assert state.ids.sources["other_company_id"] == "override"
    # the forged candidate B token cannot create an application
    assert state.ids.candidate_b_application_id == "2"
    assert state.ids.sources["candidate_b_application_id"] == "default"
    assert state.test_job_id == "2"


def test_cleanup_never_touches_default_ids(log):
    seen = []

    def handler(request):
        seen.append(request.url.path)
        return httpx.Response(204)

    engine = Engine(LAB_URL, logger=log, transport=httpx.MockTransport(handler))
    state = RuntimeState(
        created_users=[],
        tokens=Tokens("a", "b", "r", "ca", "sa"),
        ids=SeedIds("1", "105", "2", "2", "2"),
    )
    cleanup_runtime(engine, state, log)
    engine.close()
    assert seen == ["/api/applications/105"]


def test_cleanup_deletes_applications_left_by_attacks(log):
    seen = []

    def handler(request):
        seen.append((request.url.path, request.headers["authorization"]))
        return httpx.Response(204)

    engine = Engine(LAB_URL, logger=log, transport=httpx.MockTransport(handler))
    state = RuntimeState(
        created_users=[],
        tokens=Tokens("a", "b", "r", "ca", "sa"),
        ids=SeedIds("101", "2", "2", "2", "2"),
        extra_application_ids=["120", "121", "1"],
    )
    cleanup_runtime(engine, state, log)
    engine.close()
    assert seen == [
        ("/api/applications/101", "Bearer a"),
        ("/api/applications/120", "Bearer a"),
        ("/api/applications/121", "Bearer a"),
    ]
