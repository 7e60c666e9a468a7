from datetime import datetime

from pydantic import BaseModel, Field

from .purchase_request import RecordModel


class NotificationLog(RecordModel):
    id: str | None = None
    type: str
    pr_id: str
    recipients: list[str] = Field(default_factory=list)
    cc: list[str] = Field(default_factory=list)
    subject: str | None = None
    status: str = "queued"
    created_at: datetime


class Recipients(BaseModel):
    to: list[str] = Field(default_factory=list)
    cc: list[str] = Field(default_factory=list)


class EmailContent(BaseModel):
    subject: str
    text: str
    html: str | None = None


class NotificationResult(BaseModel):
    success: bool
    notification_id: str | None = None
    message: str | None = None
    duplicate: bool = False
