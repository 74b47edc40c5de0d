from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class NotificationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    approval_request_id: UUID
    recipient_id: UUID
    notification_type: str
    title: str
    message: str
    is_read: bool
    sent_at: datetime | None = None
    read_at: datetime | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("notification_metadata", "metadata"),
    )


class NotificationListResponse(BaseModel):
    items: list[NotificationDTO]
    unread_count: int
