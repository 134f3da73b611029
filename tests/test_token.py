import pytest
from jose import jwt

from identity_server.api.auth.token import TokenCodec, TokenFailure
from identity_server.api.utils.keys import KeyManager, SigningKeyUnavailable


def test_issue_then_verify_returns_payload(codec):
    payload = {"email": "b@x.com", "nested": {"n": [1, 2]}}
    token = codec.issue("Member/1", 60, payload, namespace="email_change")
    assert codec.verify(token, "Member/1", "email_change") == payload


def test_token_is_url_safe_string(codec):
    token = codec.issue("Member/1", 60, {"email": "b@x.com"})
    assert isinstance(token, str)
    assert all(c.isalnum() or c in "-_." for c in token)


def test_other_subject_is_invalid(codec):
    token = codec.issue("Member/1", 60, {})
    assert codec.verify(token, "Member/3") is TokenFailure.INVALID


def test_other_subject_stays_invalid_after_expiry(codec, clock):
    token = codec.issue("Member/1", 60, {})
    clock.advance(120)
    assert codec.verify(token, "Member/3") is TokenFailure.INVALID


def test_namespace_mismatch_is_invalid(codec):
    token = codec.issue("Member/1", 60, {}, namespace="access")
    assert codec.verify(token, "Member/1", "email_change") is TokenFailure.INVALID


def test_expiry_boundary(codec, clock):
    token = codec.issue("Member/1", 60, {"a": 1})
    clock.advance(59)
    assert codec.verify(token, "Member/1") == {"a": 1}
    clock.advance(1)
    assert codec.verify(token, "Member/1") is TokenFailure.EXPIRED


def test_tampered_payload_is_invalid(codec):
    token = codec.issue("Member/1", 60, {"email": "b@x.com"})
    forged = jwt.encode(
        dict(jwt.get_unverified_claims(token), payload={"email": "evil@x.com"}),
        "attacker-secret",
        algorithm="HS256",
        headers={"kid": "k1"},
    )
    assert codec.verify(forged, "Member/1") is TokenFailure.INVALID


def test_garbage_is_invalid(codec):
    assert codec.verify("not-a-token", "Member/1") is TokenFailure.INVALID
    assert codec.verify("", "Member/1") is TokenFailure.INVALID
    assert codec.subject_of("not-a-token") is None


def test_subject_of_reads_unverified_subject(codec):
    token = codec.issue("Member/1", 60, {})
    assert TokenCodec.subject_of(token) == "Member/1"


def test_retired_kid_still_verifies(clock):
    old = TokenCodec(KeyManager({"old": "s1"}), clock=clock)
    token = old.issue("Member/1", 60, {"x": 1})
    rotated = TokenCodec(KeyManager({"old": "s1", "new": "s2"}, preferred="new"), clock=clock)
    assert rotated.verify(token, "Member/1") == {"x": 1}
    assert jwt.get_unverified_header(rotated.issue("Member/1", 60, {}))["kid"] == "new"


def test_unknown_kid_is_invalid(clock):
    token = TokenCodec(KeyManager({"gone": "s1"}), clock=clock).issue("Member/1", 60, {})
    codec = TokenCodec(KeyManager({"current": "s2"}), clock=clock)
    assert codec.verify(token, "Member/1") is TokenFailure.INVALID


def test_missing_key_material_is_fatal(codec, clock):
    token = codec.issue("Member/1", 60, {})
    keyless = TokenCodec(KeyManager({}), clock=clock)
    with pytest.raises(SigningKeyUnavailable):
        keyless.issue("Member/1", 60, {})
    with pytest.raises(SigningKeyUnavailable):
        keyless.verify(token, "Member/1")
