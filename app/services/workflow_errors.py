from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    """Base for errors raised by the approval workflow services.

    Carries a machine-readable ``code``, a user-facing ``message`` and a
    ``details`` mapping; the HTTP layer renders all three in the error envelope.
    """

    status_code = 400
    code = "workflow_error"

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code:
            self.code = code

    def __str__(self) -> str:
        return self.message


class ApprovalValidationError(WorkflowError):
    status_code = 422
    code = "validation_error"


class InvalidTransition(WorkflowError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, current_status: str, attempted_status: str) -> None:
        super().__init__(
            f"Cannot move request from '{current_status}' to '{attempted_status}'",
            details={"current_status": current_status, "attempted_status": attempted_status},
        )
        self.current_status = current_status
        self.attempted_status = attempted_status


class RoleOperationDenied(WorkflowError):
    status_code = 403
    code = "role_operation_denied"


class NotApproved(WorkflowError):
    status_code = 409
    code = "not_approved"


class WrongType(WorkflowError):
    status_code = 409
    code = "wrong_type"


class AlreadyProcessed(WorkflowError):
    """Idempotency guard fired; callers treat this as success."""

    status_code = 200
    code = "already_processed"

    def __init__(self, loan_id) -> None:
        super().__init__(
            "Request has already been processed",
            details={"loan_id": str(loan_id)},
        )
        self.loan_id = loan_id


class TransientStoreError(WorkflowError):
    status_code = 503
    code = "store_unavailable"


class RequestNotFound(WorkflowError):
    status_code = 404
    code = "approval_request_not_found"


class NotificationNotFound(WorkflowError):
    status_code = 404
    code = "notification_not_found"


class AccessDenied(WorkflowError):
    status_code = 403
    code = "forbidden"
