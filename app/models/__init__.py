from app.models.approval_notification import ApprovalNotification
from app.models.approval_request import ApprovalRequest
from app.models.approval_workflow_history import ApprovalWorkflowHistory
from app.models.kyc_document import KycDocument
from app.models.loan import Loan
from app.models.profile import Profile
from app.models.user_role import UserRole

__all__ = [
    "ApprovalNotification",
    "ApprovalRequest",
    "ApprovalWorkflowHistory",
    "KycDocument",
    "Loan",
    "Profile",
    "UserRole",
]
