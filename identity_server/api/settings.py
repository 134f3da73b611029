import os
import json
from typing import Any, Dict, Optional

from identity_server.api.config import ACCESS_TTL, BCRYPT_ROUNDS, EMAIL_CHANGE_TTL, USER_LOCK_TIMEOUT, USER_LOCK_TTL

API_DIR = os.path.dirname(__file__)
CONFIG_PATH = os.path.join(API_DIR, "config", "server.json")

ENV_KEYS = (
    "ENV",
    "SECRET_KEY",
    "JWT_ALG",
    "SIGNING_KEYS_JSON",
    "SIGNING_KID",
    "DOMAIN_SCHEMA_PATH",
    "USERS_PATH",
    "MAIL_BACKEND",
    "MAIL_FROM",
    "SMTP_HOST",
    "SMTP_PORT",
    "REDIS_URL",
)
PATH_KEYS = ("DOMAIN_SCHEMA_PATH", "USERS_PATH")


def load_settings(config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Server settings: JSON file, then environment, then explicit overrides.
    Relative paths in the result are resolved against the api package directory.
    """
    with open(config_path or CONFIG_PATH) as f:
        config_data = json.load(f)

    settings: Dict[str, Any] = {
        "ACCESS_TTL": ACCESS_TTL,
        "EMAIL_CHANGE_TTL": EMAIL_CHANGE_TTL,
        "USER_LOCK_TTL": USER_LOCK_TTL,
        "USER_LOCK_TIMEOUT": USER_LOCK_TIMEOUT,
        "BCRYPT_ROUNDS": BCRYPT_ROUNDS,
    }
    settings.update(config_data)
    for key in ENV_KEYS:
        if os.getenv(key) is not None:
            settings[key] = os.getenv(key)
    settings.update(overrides or {})

    settings["SMTP_PORT"] = int(settings.get("SMTP_PORT") or 25)
    for key in PATH_KEYS:
        value = settings.get(key)
        if value and not os.path.isabs(value):
            settings[key] = os.path.join(API_DIR, value)
    return settings
