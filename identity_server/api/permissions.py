from datetime import datetime, timezone
from typing import Any, Dict, Optional

from identity_server.api.utils.logger import write_log
from identity_server.api.workflows import Outcome, WorkflowResult

# configuration problems are not explained to callers
UNAVAILABLE = "UNAVAILABLE"
HIDDEN_OUTCOMES = {Outcome.NOT_CONFIGURED: UNAVAILABLE}


def caller_payload(user) -> Dict[str, Any]:
    if user is None:
        return {}
    return {"sub": user.identity, "role": user.type}


def public_status(outcome: Outcome) -> str:
    return HIDDEN_OUTCOMES.get(outcome, outcome.value)


def workflow_response(result: WorkflowResult) -> Dict[str, Any]:
    return {
        "success": result.ok,
        "status": public_status(result.outcome),
        "violations": list(result.violations),
    }


def log_mutation(payload: Optional[dict], mutation_name: str, status: str, reason: str = None):
    payload = payload if isinstance(payload, dict) else {}
    role = payload.get("role", "unknown")
    entry = {
        "event": "mutation_audit",
        "mutation": mutation_name,
        "user_id": payload.get("sub"),
        "role": role,
        "status": status,
        "reason": reason,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    write_log(entry, stream=role, level="info" if status == "success" else "warning")
