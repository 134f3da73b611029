# identity_server/api/utils/keys_kms.py
"""
KMS adapter hook for KeyManager.
Implement get_secret_from_kms(kid) to fetch key material from your KMS (Azure Key Vault,
AWS Secrets Manager, HashiCorp Vault). Called once per kid while the key set is built.
"""
from __future__ import annotations
import os
from typing import Optional


def get_secret_from_kms(kid: str) -> Optional[str]:
    """
    Return key material for kid from KMS. Return None if not found.

    Default behavior: read SIGNING_KMS_{kid} from the environment (dev/test).
    """
    if not kid:
        return None
    return os.environ.get(f"SIGNING_KMS_{kid}")
