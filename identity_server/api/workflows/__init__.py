from .confirmation import ConfirmationWorkflow, Outcome, WorkflowDescriptor, WorkflowResult
from .email_change import EMAIL_CHANGE_NAMESPACE, EMAIL_CHANGE_WORKFLOW, email_change_descriptor

__all__ = [
    "ConfirmationWorkflow",
    "Outcome",
    "WorkflowDescriptor",
    "WorkflowResult",
    "EMAIL_CHANGE_NAMESPACE",
    "EMAIL_CHANGE_WORKFLOW",
    "email_change_descriptor",
]
