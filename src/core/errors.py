"""Error taxonomy shared by the submission pipeline and the workflow engine."""

from __future__ import annotations

from typing import Optional


FAILURE_RATE_LIMITED = "rate_limited"
FAILURE_AUTHORIZATION = "authorization"
FAILURE_TRANSIENT = "transient"
FAILURE_UNEXPECTED = "unexpected"

FAILURE_CATEGORIES = (
    FAILURE_RATE_LIMITED,
    FAILURE_AUTHORIZATION,
    FAILURE_TRANSIENT,
    FAILURE_UNEXPECTED,
)


class AdapterFailure(RuntimeError):
    """Raised by AI providers; always recovered by the calling adapter."""

    def __init__(self, message: str, *, category: str = FAILURE_UNEXPECTED, status_code: Optional[int] = None):
        if category not in FAILURE_CATEGORIES:
            category = FAILURE_UNEXPECTED
        self.category = category
        self.status_code = status_code
        super().__init__(message)


class DeliveryFailure(RuntimeError):
    """Raised when the messaging gateway cannot deliver a text message."""

    def __init__(self, message: str, *, to_number: str = "", provider_code: Optional[str] = None):
        self.to_number = to_number
        self.provider_code = provider_code
        super().__init__(message)


class WorkflowNotFound(LookupError):
    """Raised when a reply or lookup references no workflow at all."""

    def __init__(self, reference: str = ""):
        self.reference = reference
        super().__init__(f"workflow_not_found reference={reference or '-'}")


class WorkflowInactive(RuntimeError):
    """Raised when a reply targets a workflow already in a terminal state."""

    def __init__(self, workflow_id: str, status: str):
        self.workflow_id = workflow_id
        self.status = status
        super().__init__(f"workflow_inactive id={workflow_id} status={status}")


class ValidationFailure(ValueError):
    """Raised when generated drafts miss required fields."""

    def __init__(self, message: str, *, platform: Optional[str] = None):
        self.platform = platform
        super().__init__(message)
