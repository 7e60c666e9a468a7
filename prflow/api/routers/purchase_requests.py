from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel

from ..deps import (
    get_acting_user,
    get_approval_validator,
    get_notification_service,
    get_reference_data,
)
from ...models.notification import NotificationLog, NotificationResult
from ...models.purchase_request import ApprovalWorkflow, PRStatus
from ...models.reference import User
from ...services.approval_rules import PRApprovalValidator, ValidationResult
from ...services.approval_workflow import ApprovalError, ApprovalNotPermitted, record_approval
from ...services.notifications.events import StatusChanged, utcnow
from ...services.notifications.service import NotificationService
from ...services.reference_data import ReferenceData

router = APIRouter(prefix="/purchase-requests", tags=["purchase-requests"])

# Target statuses that must pass the approval validator first;
# APPROVED is validated by the /approve endpoint instead
VALIDATED_TARGETS = (PRStatus.PENDING_APPROVAL,)


class ValidateRequest(BaseModel):
    """Request body for /purchase-requests/{pr_id}/validate"""
    target_status: PRStatus = PRStatus.PENDING_APPROVAL
    notes: str | None = None


class StatusChangeRequest(BaseModel):
    status: PRStatus
    notes: str | None = None


class StatusChangeResponse(BaseModel):
    pr_id: str
    previous_status: PRStatus
    status: PRStatus
    validation: ValidationResult | None = None
    notification: NotificationResult


class ApproveRequest(BaseModel):
    selected_quote_id: str | None = None
    notes: str | None = None


class ApproveResponse(BaseModel):
    pr_id: str
    status: PRStatus
    quote_conflict: bool
    validation: ValidationResult
    notification: NotificationResult | None = None


def _rejected(validation: ValidationResult) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"errors": validation.errors, "checks": validation.checks},
    )


@router.post("/{pr_id}/validate", response_model=ValidationResult)
async def validate_purchase_request(
    pr_id: str,
    req: ValidateRequest,
    user: User = Depends(get_acting_user),
    reference_data: ReferenceData = Depends(get_reference_data),
    validator: PRApprovalValidator = Depends(get_approval_validator),
):
    """
    Run the approval checks without changing anything.

    Example response:
    {
        "is_valid": false,
        "errors": ["At least 3 quotes with attachments are required for amounts above 1000 USD. ..."],
        "checks": {"permission": true, "rules_configured": true, "quotes_sufficient": false, ...},
        "metadata": {"normalized_amount": 1500.0, "rule_currency": "USD", "rate_source": "same_currency", ...}
    }
    """
    pr = await reference_data.get_purchase_request(pr_id)
    rules = await reference_data.get_rules(pr.organization_id)
    return await validator.validate(pr, rules, user, req.target_status, notes=req.notes)


@router.post("/{pr_id}/status", response_model=StatusChangeResponse)
async def change_status(
    pr_id: str,
    req: StatusChangeRequest,
    user: User = Depends(get_acting_user),
    reference_data: ReferenceData = Depends(get_reference_data),
    validator: PRApprovalValidator = Depends(get_approval_validator),
    notifications: NotificationService = Depends(get_notification_service),
):
    """Move a PR to a new status and notify whoever the transition concerns"""
    pr = await reference_data.get_purchase_request(pr_id)
    previous = pr.status
    if req.status == previous:
        raise HTTPException(status_code=422, detail=f"PR {pr.display_number} is already {previous.label}")
    if req.status == PRStatus.APPROVED:
        # Approvals go through record_approval so dual approval and quote conflicts hold
        raise HTTPException(
            status_code=422,
            detail=f"Use POST /purchase-requests/{pr_id}/approve to approve PR {pr.display_number}",
        )

    validation = None
    if req.status in VALIDATED_TARGETS:
        rules = await reference_data.get_rules(pr.organization_id)
        validation = await validator.validate(pr, rules, user, req.status, notes=req.notes)
        if not validation.is_valid:
            logger.info("Status change blocked by validation", pr_id=pr_id, target=req.status.value)
            raise _rejected(validation)

    now = utcnow()
    if req.status == PRStatus.PENDING_APPROVAL:
        high_value = validation.metadata.get("high_value_threshold")
        amount = validation.metadata.get("normalized_amount", 0.0)
        dual = pr.requires_dual_approval or (high_value is not None and amount >= high_value)
        pr.requires_dual_approval = dual
        pr.approval_workflow = ApprovalWorkflow(
            current_approver=pr.approver,
            second_approver=pr.approver2,
            requires_dual_approval=dual,
            approval_history=pr.approval_workflow.approval_history,
            last_updated=now,
        )

    pr.status = req.status
    pr.updated_at = now
    await reference_data.save_purchase_request(pr)
    logger.info("PR status changed", pr_id=pr_id, previous=previous.value, status=req.status.value, user_id=user.id)

    notification = await notifications.handle_event(
        StatusChanged(
            pr_id=pr.id,
            previous_status=previous,
            next_status=req.status,
            acting_user_id=user.id,
            notes=req.notes,
            occurred_at=now,
        )
    )
    return StatusChangeResponse(
        pr_id=pr.id,
        previous_status=previous,
        status=pr.status,
        validation=validation,
        notification=notification,
    )


@router.post("/{pr_id}/approve", response_model=ApproveResponse)
async def approve_purchase_request(
    pr_id: str,
    req: ApproveRequest,
    user: User = Depends(get_acting_user),
    reference_data: ReferenceData = Depends(get_reference_data),
    validator: PRApprovalValidator = Depends(get_approval_validator),
    notifications: NotificationService = Depends(get_notification_service),
):
    """Record one assigned approver's approval and quote selection"""
    pr = await reference_data.get_purchase_request(pr_id)
    rules = await reference_data.get_rules(pr.organization_id)
    validation = await validator.validate(pr, rules, user, PRStatus.APPROVED, notes=req.notes)
    if not validation.is_valid:
        raise _rejected(validation)

    try:
        event = record_approval(pr, user.id, req.selected_quote_id, req.notes)
    except ApprovalNotPermitted as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ApprovalError as e:
        raise HTTPException(status_code=422, detail=str(e))

    await reference_data.save_purchase_request(pr)

    notification = None
    if event is not None:
        notification = await notifications.handle_event(event)

    return ApproveResponse(
        pr_id=pr.id,
        status=pr.status,
        quote_conflict=pr.approval_workflow.quote_conflict,
        validation=validation,
        notification=notification,
    )


@router.get("/{pr_id}/notifications", response_model=list[NotificationLog])
async def list_notifications(
    pr_id: str,
    reference_data: ReferenceData = Depends(get_reference_data),
    notifications: NotificationService = Depends(get_notification_service),
):
    pr = await reference_data.get_purchase_request(pr_id)
    return await notifications.list_notifications(pr.id)
