# identity_server/api/utils/logger.py
import json
import hashlib
from datetime import datetime, timezone
from typing import Optional

LEVELS = ("debug", "info", "warning", "error")


# Basic structured logging function
def write_log(entry: dict, stream: str = "default", level: str = "info"):
    entry = dict(entry)
    entry.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    entry.setdefault("stream", stream)
    entry.setdefault("level", level if level in LEVELS else "info")
    print(json.dumps(entry, ensure_ascii=False, default=str))


def token_fingerprint(token: Optional[str]) -> Optional[str]:
    """
    Short, non-reversible reference to a token for audit events.
    Raw token strings are never written to the log.
    """
    if not token:
        return None
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:12]
