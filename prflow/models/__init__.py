from .notification import EmailContent, NotificationLog, NotificationResult, Recipients
from .purchase_request import (
    ApprovalHistoryItem,
    ApprovalWorkflow,
    Attachment,
    PRStatus,
    PurchaseRequest,
    Quote,
)
from .reference import Organization, PermissionLevel, Rule, User
