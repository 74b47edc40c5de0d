from enum import Enum
from typing import Iterable, List


class PermissionCode(str, Enum):
    # Approval requests
    APPROVAL_SUBMIT = "approval.submit"
    APPROVAL_VIEW_OWN = "approval.view_own"
    APPROVAL_VIEW_ALL = "approval.view_all"
    APPROVAL_REVIEW = "approval.review"
    APPROVAL_PROCESS = "approval.process"
    APPROVAL_STATISTICS_VIEW = "approval.statistics.view"

    # Unified loan application listing
    LOAN_APPLICATION_VIEW_ALL = "loan_application.view_all"

    # Notifications
    NOTIFICATION_VIEW_OWN = "notification.view_own"

    # Roles
    ROLE_VIEW_OWN = "role.view_own"
    ROLE_MANAGE = "role.manage"

    @classmethod
    def list_all(cls) -> List[str]:
        return [code.value for code in cls]

    @classmethod
    def normalize(cls, values: Iterable[str]) -> List[str]:
        """Return unique permission codes that are valid members."""
        seen = set()
        normalized: list[str] = []
        for value in values:
            try:
                code = cls(value)
            except ValueError:
                continue
            if code.value not in seen:
                seen.add(code.value)
                normalized.append(code.value)
        return normalized


# Granted to every authenticated identity, role or not.
BASELINE_PERMISSIONS = PermissionCode.normalize(
    [
        PermissionCode.NOTIFICATION_VIEW_OWN,
        PermissionCode.ROLE_VIEW_OWN,
    ]
)

CLIENT_PERMISSIONS = PermissionCode.normalize(
    [
        *BASELINE_PERMISSIONS,
        PermissionCode.APPROVAL_SUBMIT,
        PermissionCode.APPROVAL_VIEW_OWN,
    ]
)

LOAN_OFFICER_PERMISSIONS = PermissionCode.normalize(
    [
        *CLIENT_PERMISSIONS,
        PermissionCode.APPROVAL_VIEW_ALL,
        PermissionCode.APPROVAL_REVIEW,
        PermissionCode.APPROVAL_PROCESS,
        PermissionCode.APPROVAL_STATISTICS_VIEW,
        PermissionCode.LOAN_APPLICATION_VIEW_ALL,
    ]
)

ROLE_PERMISSIONS: dict[str, list[str]] = {
    "client": CLIENT_PERMISSIONS,
    "loan_officer": LOAN_OFFICER_PERMISSIONS,
    "admin": PermissionCode.list_all(),
}
