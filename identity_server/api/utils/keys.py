# identity_server/api/utils/keys.py
"""
KeyManager: read-only signing key set shared by every token operation in the process.

- Stores mapping kid -> key material (symmetric secret).
- Built once at startup (see build_key_manager) and never mutated afterwards, so it
  is safe for concurrent use without locking.
- Supports: get_key(kid), get_preferred(), list_keys().
- Key sources, in order: SIGNING_KEYS_JSON mapping, KMS adapter for SIGNING_KID,
  legacy SECRET_KEY under kid "default".
"""
from __future__ import annotations
import json
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from identity_server.api.utils.keys_kms import get_secret_from_kms
from identity_server.api.utils.logger import write_log

DEFAULT_KID = "default"
INSECURE_SECRET = "changeme-local-dev"


class SigningKeyUnavailable(RuntimeError):
    """No key material is available to sign or verify a token."""


class KeyManager:
    def __init__(self, keys: Mapping[str, str], preferred: Optional[str] = None):
        cleaned = {str(k): str(v) for k, v in keys.items() if v}
        self._keys = MappingProxyType(cleaned)
        if preferred and preferred not in cleaned:
            raise ValueError(f"preferred kid '{preferred}' has no key material")
        # deterministic choice
        self._preferred = preferred or next(iter(cleaned), None)

    def get_key(self, kid: Optional[str]) -> Optional[str]:
        if kid:
            return self._keys.get(kid)
        if self._preferred:
            return self._keys.get(self._preferred)
        return None

    def get_preferred(self) -> Optional[str]:
        return self._preferred

    def list_keys(self) -> Dict[str, str]:
        return dict(self._keys)

    def require_preferred(self):
        """Return (kid, key) used for signing or raise SigningKeyUnavailable."""
        kid = self._preferred
        key = self._keys.get(kid) if kid else None
        if not key:
            raise SigningKeyUnavailable("no signing key configured")
        return kid, key


def build_key_manager(settings: Mapping[str, Any]) -> KeyManager:
    keys: Dict[str, str] = {}
    raw = settings.get("SIGNING_KEYS_JSON") or ""
    if raw:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise RuntimeError(f"SIGNING_KEYS_JSON is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise RuntimeError("SIGNING_KEYS_JSON must be a JSON object of kid -> secret")
        keys.update({str(k): str(v) for k, v in data.items()})

    preferred = settings.get("SIGNING_KID") or None
    if preferred and preferred not in keys:
        kms_secret = get_secret_from_kms(preferred)
        if kms_secret:
            keys[preferred] = kms_secret

    secret = settings.get("SECRET_KEY") or ""
    if not keys and secret:
        keys[DEFAULT_KID] = secret
        preferred = DEFAULT_KID

    # Safety checks
    if settings.get("ENV", "dev") != "dev":
        if not keys or keys.get(DEFAULT_KID) == INSECURE_SECRET:
            raise RuntimeError("insecure default SECRET_KEY in non-dev; configure signing keys")

    manager = KeyManager(keys, preferred=preferred if preferred in keys else None)
    write_log({"event": "signing_keys_loaded", "kids": sorted(keys), "preferred": manager.get_preferred()}, stream="security")
    return manager
