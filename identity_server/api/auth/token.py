# identity_server/api/auth/token.py
"""
Token codec: stateless issue/verify of compact, signed, expiring tokens.

- Tokens are JWTs (python-jose) carrying sub, ns (token namespace), iat, exp, jti and
  an arbitrary JSON payload mapping.
- The signing kid travels in the header; any kid known to the KeyManager verifies.
- verify() never raises on bad input: it returns the payload or a TokenFailure.
  Missing key material is the only fatal condition (SigningKeyUnavailable).
- Single use is not tracked here; workflows clear their stored token on consume.
Exports:
- TokenCodec, TokenFailure
"""
from __future__ import annotations
import time
import uuid
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from jose import jwt, JWTError

from identity_server.api.utils.keys import KeyManager, SigningKeyUnavailable
from identity_server.api.utils.logger import write_log, token_fingerprint


class TokenFailure(Enum):
    INVALID = "TOKEN_INVALID"
    EXPIRED = "TOKEN_EXPIRED"


class TokenCodec:
    def __init__(self, key_manager: KeyManager, algorithm: str = "HS256", clock: Callable[[], float] = time.time):
        self.key_manager = key_manager
        self.algorithm = algorithm
        self.clock = clock

    def _now(self) -> int:
        return int(self.clock())

    def issue(self, subject: str, ttl: int, payload: Optional[Dict[str, Any]] = None, namespace: str = "") -> str:
        if not subject:
            raise ValueError("subject is required")
        kid, key = self.key_manager.require_preferred()
        now = self._now()
        claims = {
            "sub": subject,
            "ns": namespace,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + int(ttl),
            "payload": dict(payload or {}),
        }
        token = jwt.encode(claims, key, algorithm=self.algorithm, headers={"kid": kid})
        write_log({"event": "token_issued", "ns": namespace, "sub": subject, "jti": claims["jti"], "exp": claims["exp"]}, stream="security")
        return token

    def _decode(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            return None
        kid = header.get("kid")
        key = self.key_manager.get_key(kid)
        if not key:
            if not self.key_manager.list_keys():
                raise SigningKeyUnavailable("no verification key configured")
            write_log({"event": "token_unknown_kid", "kid": kid, "token": token_fingerprint(token)}, stream="security", level="warning")
            return None
        try:
            # exp is checked after the subject so an expired foreign token stays INVALID
            return jwt.decode(token, key, algorithms=[self.algorithm], options={"verify_exp": False})
        except JWTError:
            return None

    def verify(self, token: str, subject: str, namespace: Optional[str] = None) -> Union[Dict[str, Any], TokenFailure]:
        if not token or not subject:
            return TokenFailure.INVALID
        claims = self._decode(token)
        if claims is None:
            write_log({"event": "token_decode_failed", "token": token_fingerprint(token)}, stream="security", level="warning")
            return TokenFailure.INVALID
        if claims.get("sub") != subject:
            write_log({"event": "token_subject_mismatch", "jti": claims.get("jti"), "expected": subject}, stream="security", level="warning")
            return TokenFailure.INVALID
        if namespace is not None and claims.get("ns") != namespace:
            write_log({"event": "token_namespace_mismatch", "jti": claims.get("jti"), "expected": namespace}, stream="security", level="warning")
            return TokenFailure.INVALID
        exp = claims.get("exp")
        if not isinstance(exp, int) or self._now() >= exp:
            write_log({"event": "token_expired", "jti": claims.get("jti"), "exp": exp}, stream="security")
            return TokenFailure.EXPIRED
        payload = claims.get("payload")
        return dict(payload) if isinstance(payload, dict) else {}

    def is_live(self, token: Optional[str], subject: str, namespace: Optional[str] = None) -> bool:
        """True if token verifies and has not expired."""
        if not token:
            return False
        return not isinstance(self.verify(token, subject, namespace), TokenFailure)

    @staticmethod
    def subject_of(token: str) -> Optional[str]:
        """Unverified read of the subject claim, used to route a bearer token before verify()."""
        try:
            sub = jwt.get_unverified_claims(token).get("sub")
        except JWTError:
            return None
        return sub if isinstance(sub, str) else None
