import json

from identity_server.api.auth.credentials import CredentialVerifier
from identity_server.api.auth.password import hash_password, verify_password
from identity_server.api.services import build_services
from identity_server.api.settings import load_settings


def test_correct_secret(credentials, password):
    assert credentials.verify("Member", "alice", password) is True


def test_wrong_secret(credentials):
    assert credentials.verify("Member", "alice", "wrongSecret") is False


def test_unknown_user_still_hashes(resolver, repository):
    calls = []

    def check(secret, stored):
        calls.append(stored)
        return verify_password(secret, stored)

    verifier = CredentialVerifier(resolver, repository, check=check)
    assert verifier.verify("Member", "nobody", "whatever") is False
    assert len(calls) == 1


def test_user_without_stored_hash(credentials):
    assert credentials.verify("Member", "carol", "anything") is False


def test_type_without_policy_is_undetermined(credentials):
    assert credentials.verify("Guest", "bob", "anything") is None


def test_misconfigured_type_is_undetermined(credentials):
    assert credentials.verify("Editor", "dave", "anything") is None


def test_reads_configured_field(credentials, repository, password):
    alice = repository.load("Member", "alice")
    alice.set_field("passwordHash", hash_password("rotated", rounds=4))
    repository.persist(alice)
    assert credentials.verify("Member", "alice", "rotated") is True
    assert credentials.verify("Member", "alice", password) is False


def test_secret_never_logged(credentials, capsys):
    credentials.verify("Member", "alice", "wrongSecret-XYZ")
    credentials.verify("Member", "nobody", "wrongSecret-XYZ")
    out = capsys.readouterr().out
    assert "wrongSecret-XYZ" not in out
    events = [json.loads(line) for line in out.splitlines()]
    assert [e["result"] for e in events if e["event"] == "credential_check"] == ["invalid", "unknown_user"]


def test_malformed_hash_is_rejected():
    assert verify_password("secret", "not-a-bcrypt-hash") is False
    assert verify_password("secret", "") is False


def test_unknown_user_check_uses_stored_hash_cost(resolver, repository, password_hash):
    checked = []

    def check(secret, stored):
        checked.append(stored)
        return verify_password(secret, stored)

    verifier = CredentialVerifier(resolver, repository, check=check, rounds=4)
    verifier.verify("Member", "nobody", "whatever")
    verifier.verify("Member", "alice", "whatever")
    unknown_cost, known_cost = [stored.split("$")[2] for stored in checked]
    assert unknown_cost == known_cost == password_hash.split("$")[2] == "04"


def test_dummy_cost_follows_settings(domain_schema_path, users_path):
    settings = load_settings(overrides={
        "ENV": "dev",
        "DOMAIN_SCHEMA_PATH": domain_schema_path,
        "USERS_PATH": users_path,
        "MAIL_BACKEND": "memory",
        "REDIS_URL": "",
        "BCRYPT_ROUNDS": 5,
    })
    assert build_services(settings).credentials.rounds == 5
