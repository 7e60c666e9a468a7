from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RecordModel(BaseModel):
    """Base for stored records: camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PRStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    RESUBMITTED = "RESUBMITTED"
    IN_QUEUE = "IN_QUEUE"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    ORDERED = "ORDERED"
    COMPLETED = "COMPLETED"
    REVISION_REQUIRED = "REVISION_REQUIRED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class Attachment(RecordModel):
    id: str | None = None
    name: str | None = None
    url: str | None = None


class Quote(RecordModel):
    id: str
    vendor_id: str | None = None
    vendor_name: str | None = None
    amount: float = 0.0
    currency: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    notes: str | None = None
    submitted_by: str | None = None
    submitted_at: datetime | None = None


class ApprovalHistoryItem(RecordModel):
    approver_id: str
    timestamp: datetime
    approved: bool = True
    selected_quote_id: str | None = None
    notes: str | None = None


class ApprovalWorkflow(RecordModel):
    current_approver: str | None = None
    second_approver: str | None = None
    requires_dual_approval: bool = False
    first_approval_complete: bool = False
    first_approver_selected_quote_id: str | None = None
    first_approver_justification: str | None = None
    second_approval_complete: bool = False
    second_approver_selected_quote_id: str | None = None
    second_approver_justification: str | None = None
    quote_conflict: bool = False
    approval_history: list[ApprovalHistoryItem] = Field(default_factory=list)
    last_updated: datetime | None = None


class PurchaseRequest(RecordModel):
    id: str
    pr_number: str | None = None
    organization_id: str
    description: str | None = None
    estimated_amount: float = 0.0
    currency: str | None = None
    status: PRStatus = PRStatus.DRAFT
    requestor_id: str | None = None
    requestor_email: str | None = None
    approver: str | None = None
    approver2: str | None = None
    requires_dual_approval: bool = False
    preferred_vendor: str | None = None
    quotes: list[Quote] = Field(default_factory=list)
    approval_workflow: ApprovalWorkflow = Field(default_factory=ApprovalWorkflow)
    notes: str | None = None
    is_urgent: bool = False
    updated_at: datetime | None = None

    @property
    def approvers(self) -> list[str]:
        """Distinct assigned approver ids, first approver first"""
        result = []
        for approver_id in (self.approver, self.approver2):
            if approver_id and approver_id not in result:
                result.append(approver_id)
        return result

    @property
    def display_number(self) -> str:
        return self.pr_number or self.id

    def find_quote(self, quote_id: str | None) -> Quote | None:
        if not quote_id:
            return None
        return next((q for q in self.quotes if q.id == quote_id), None)
