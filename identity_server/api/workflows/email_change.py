# identity_server/api/workflows/email_change.py
from identity_server.api.config import EMAIL_CHANGE_TTL
from identity_server.api.policy import EMAIL_CHANGE
from identity_server.api.workflows.confirmation import WorkflowDescriptor

EMAIL_CHANGE_NAMESPACE = "email_change"


def email_change_descriptor(ttl: int = EMAIL_CHANGE_TTL) -> WorkflowDescriptor:
    return WorkflowDescriptor(
        kind="emailChange",
        directive=EMAIL_CHANGE,
        token_namespace=EMAIL_CHANGE_NAMESPACE,
        ttl=int(ttl),
        field_arg="emailField",
        value_key="email",
        target_arg="changeUrl",
    )


EMAIL_CHANGE_WORKFLOW = email_change_descriptor()
