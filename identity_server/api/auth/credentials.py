# identity_server/api/auth/credentials.py
"""
Password authentication against whichever field the type's @passwordAuthenticator names.

verify() returns True/False, or None (UNDETERMINED) when the user type is not set up
for password authentication; callers treat None as "method not applicable", not as a
wrong secret. Secrets are never logged.
"""
from __future__ import annotations
from typing import Callable, Optional

from identity_server.api.auth.password import BCRYPT_ROUNDS, hash_password, verify_password
from identity_server.api.auth.user import JsonUserRepository
from identity_server.api.policy import PASSWORD_AUTHENTICATOR, PolicyResolver
from identity_server.api.utils.logger import write_log

UNDETERMINED = None


class CredentialVerifier:
    def __init__(
        self,
        resolver: PolicyResolver,
        repository: JsonUserRepository,
        check: Callable[[str, str], bool] = verify_password,
        rounds: int = BCRYPT_ROUNDS,
    ):
        self.resolver = resolver
        self.repository = repository
        self.check = check
        self.rounds = int(rounds)
        self._dummy_hash: Optional[str] = None

    def _burn(self, secret: str):
        # unknown users pay the same hashing cost as known ones; stored hashes use self.rounds
        if self._dummy_hash is None:
            self._dummy_hash = hash_password("timing-equalizer", rounds=self.rounds)
        self.check(secret, self._dummy_hash)

    def verify(self, type_name: str, username: str, secret: str) -> Optional[bool]:
        config = self.resolver.resolve(type_name, PASSWORD_AUTHENTICATOR)
        if config is None:
            return UNDETERMINED

        user = self.repository.load(type_name, username)
        if user is None:
            self._burn(secret or "")
            write_log({"event": "credential_check", "type": type_name, "username": username, "result": "unknown_user"}, stream="security")
            return False

        stored_hash = user.get_field(config["passwordField"])
        if not stored_hash or not secret:
            self._burn(secret or "")
            write_log({"event": "credential_check", "type": type_name, "user": user.identity, "result": "no_credential"}, stream="security")
            return False

        valid = bool(self.check(secret, stored_hash))
        write_log({"event": "credential_check", "type": type_name, "user": user.identity, "result": "valid" if valid else "invalid"}, stream="security")
        return valid
