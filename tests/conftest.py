"""
Pytest configuration and shared fixtures for the identity workflow tests.

Provides:
- a domain schema with configured, unconfigured and misconfigured user types
- a JSON user repository seeded in a temporary directory
- a token codec driven by a controllable clock
- an email change workflow wired to an in-memory mailer
"""

import json
import os
import sys
import threading
import time

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from identity_server.api.auth.credentials import CredentialVerifier
from identity_server.api.auth.password import hash_password
from identity_server.api.auth.token import TokenCodec
from identity_server.api.auth.user import ChangeKind, JsonUserRepository
from identity_server.api.mailer import EmailChangeMailer
from identity_server.api.policy import PolicyResolver
from identity_server.api.schema_store import SchemaStore
from identity_server.api.utils.keys import KeyManager
from identity_server.api.validation import FieldValidator
from identity_server.api.workflows import ConfirmationWorkflow, email_change_descriptor

TEST_SDL = """
directive @emailChange(emailField: String!, changeUrl: String!) on OBJECT
directive @passwordAuthenticator(passwordField: String!) on OBJECT
directive @textField(required: Boolean, unique: Boolean, maxLength: Int) on FIELD_DEFINITION
directive @emailField(required: Boolean, unique: Boolean) on FIELD_DEFINITION
directive @passwordField on FIELD_DEFINITION

interface User {
  id: ID
  username: String
}

type Member implements User
  @passwordAuthenticator(passwordField: "passwordHash")
  @emailChange(emailField: "email", changeUrl: "https://app.test/email-change/{token}")
{
  id: ID
  username: String @textField(required: true, maxLength: 16)
  email: String @emailField(required: true, unique: true)
  passwordHash: String @passwordField
}

type Guest implements User {
  id: ID
  username: String @textField
  email: String @emailField
}

type Editor implements User
  @emailChange(emailField: "contact", changeUrl: "https://app.test/change")
  @passwordAuthenticator(passwordField: "secret")
{
  id: ID
  username: String @textField
  contact: String @textField
}

type Article {
  title: String
}
"""

PASSWORD = "correct horse"
ROUNDS = 4

SEED_USERS = {
    "1": {"type": "Member", "username": "alice", "fields": {"email": "a@x.com"}, "tokens": {}},
    "2": {"type": "Guest", "username": "bob", "fields": {"email": "bob@x.com"}, "tokens": {}},
    "3": {"type": "Member", "username": "carol", "fields": {"email": "carol@x.com"}, "tokens": {}},
    "4": {"type": "Editor", "username": "dave", "fields": {"contact": "dave@x.com"}, "tokens": {}},
}


class Clock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FailingSender:
    def __init__(self):
        self.calls = []

    def send(self, target, token, value):
        self.calls.append((target, token, value))
        return 0


@pytest.fixture(scope="session")
def password_hash():
    return hash_password(PASSWORD, rounds=ROUNDS)


@pytest.fixture
def store():
    return SchemaStore.from_sdl(TEST_SDL)


@pytest.fixture
def users_path(tmp_path, password_hash):
    users = json.loads(json.dumps(SEED_USERS))
    users["1"]["fields"]["passwordHash"] = password_hash
    path = tmp_path / "users.json"
    path.write_text(json.dumps(users), encoding="utf-8")
    return str(path)


@pytest.fixture
def repository(users_path):
    return JsonUserRepository(users_path)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def key_manager():
    return KeyManager({"k1": "test-signing-secret"})


@pytest.fixture
def codec(key_manager, clock):
    return TokenCodec(key_manager, clock=clock)


@pytest.fixture
def resolver(store):
    return PolicyResolver(store)


@pytest.fixture
def validator(store, repository):
    return FieldValidator(store, repository)


@pytest.fixture
def mailer():
    return EmailChangeMailer({"MAIL_BACKEND": "memory"})


@pytest.fixture
def workflow(resolver, repository, codec, validator, mailer):
    return ConfirmationWorkflow(email_change_descriptor(ttl=600), resolver, repository, codec, validator, mailer)


@pytest.fixture
def credentials(resolver, repository):
    return CredentialVerifier(resolver, repository, rounds=ROUNDS)


@pytest.fixture
def alice(repository):
    return repository.load("Member", "alice")


class RecordingRepository(JsonUserRepository):
    def __init__(self, path):
        super().__init__(path)
        self.persisted = []

    def persist(self, user, change_kind=ChangeKind.UPDATE):
        self.persisted.append((user.identity, change_kind))
        super().persist(user, change_kind)


@pytest.fixture
def recording_repository(users_path):
    return RecordingRepository(users_path)


@pytest.fixture
def failing_sender():
    return FailingSender()


@pytest.fixture
def password():
    return PASSWORD


@pytest.fixture
def domain_schema_path(tmp_path):
    path = tmp_path / "domain.graphql"
    path.write_text(TEST_SDL, encoding="utf-8")
    return str(path)


class FakeRedis:
    """In-memory stand-in for the redis.Redis calls UserLocks makes (SET NX EX, owner-checked release script)."""

    def __init__(self):
        self.values = {}
        self.expires = {}
        self.set_calls = []
        self.released = []
        self._guard = threading.Lock()

    def _expire(self, key):
        if key in self.expires and self.expires[key] <= time.monotonic():
            self.values.pop(key, None)
            self.expires.pop(key, None)

    def set(self, name, value, nx=False, ex=None):
        with self._guard:
            self.set_calls.append((name, nx, ex))
            self._expire(name)
            if nx and name in self.values:
                return None
            self.values[name] = value
            if ex is not None:
                self.expires[name] = time.monotonic() + ex
            return True

    def get(self, name):
        with self._guard:
            self._expire(name)
            return self.values.get(name)

    def register_script(self, script):
        assert 'redis.call("GET", KEYS[1]) == ARGV[1]' in script

        def release(keys, args):
            with self._guard:
                key, owner = keys[0], args[0]
                if self.values.get(key) == owner:
                    del self.values[key]
                    self.expires.pop(key, None)
                    self.released.append(key)
                    return 1
                return 0

        return release


@pytest.fixture
def fake_redis():
    return FakeRedis()
