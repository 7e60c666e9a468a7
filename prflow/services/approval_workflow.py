"""
Applies an approver's decision to a PR's approval workflow.

Returns the event the notification dispatcher needs, or None when the
decision does not change anything anyone must hear about yet.
"""

from datetime import datetime
from typing import Optional

from loguru import logger

from ..models.purchase_request import ApprovalHistoryItem, ApprovalWorkflow, PRStatus, PurchaseRequest
from .notifications.events import QuoteConflictFlagged, StatusChanged, TransitionEvent, utcnow


class ApprovalError(Exception):
    """Raised when an approval cannot be recorded"""


class ApprovalNotPermitted(ApprovalError):
    def __init__(self, pr_id: str, approver_id: str, reason: str):
        self.pr_id = pr_id
        self.approver_id = approver_id
        super().__init__(f"{approver_id} cannot approve {pr_id}: {reason}")


def workflow_has_conflict(workflow: ApprovalWorkflow) -> bool:
    """True when both approvals are in and the approvers picked different quotes"""
    return (
        workflow.first_approval_complete
        and workflow.second_approval_complete
        and workflow.first_approver_selected_quote_id != workflow.second_approver_selected_quote_id
    )


def record_approval(
    pr: PurchaseRequest,
    approver_id: str,
    selected_quote_id: str | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Optional[TransitionEvent]:
    """
    Record one approver's approval on the PR (mutates pr in place).

    Args:
        pr: PR in PENDING_APPROVAL
        approver_id: Assigned approver acting
        selected_quote_id: Quote the approver chose (must exist on the PR)
        notes: Justification for the choice
        now: Time of the decision (defaults to current UTC time)

    Returns:
        StatusChanged to APPROVED when approval is complete and consistent,
        QuoteConflictFlagged when two approvers chose different quotes,
        None when a dual-approval PR is still waiting for the other approver

    Raises:
        ApprovalNotPermitted: PR not pending approval, or approver not assigned
        ApprovalError: selected quote does not belong to the PR
    """
    now = now or utcnow()

    if pr.status != PRStatus.PENDING_APPROVAL:
        raise ApprovalNotPermitted(pr.id, approver_id, f"PR is {pr.status.label}, not PENDING APPROVAL")
    if approver_id not in pr.approvers:
        raise ApprovalNotPermitted(pr.id, approver_id, "not an assigned approver")
    if selected_quote_id and pr.find_quote(selected_quote_id) is None:
        raise ApprovalError(f"Quote {selected_quote_id} does not belong to {pr.id}")

    workflow = pr.approval_workflow
    dual = pr.requires_dual_approval or workflow.requires_dual_approval
    if dual and len(pr.approvers) < 2:
        raise ApprovalNotPermitted(pr.id, approver_id, "dual approval required but no second approver assigned")

    workflow.current_approver = pr.approver
    workflow.second_approver = pr.approver2
    workflow.requires_dual_approval = dual
    workflow.approval_history.append(
        ApprovalHistoryItem(
            approver_id=approver_id,
            timestamp=now,
            approved=True,
            selected_quote_id=selected_quote_id,
            notes=notes,
        )
    )
    workflow.last_updated = now
    pr.updated_at = now

    if approver_id == pr.approver:
        workflow.first_approval_complete = True
        workflow.first_approver_selected_quote_id = selected_quote_id
        workflow.first_approver_justification = notes
    else:
        workflow.second_approval_complete = True
        workflow.second_approver_selected_quote_id = selected_quote_id
        workflow.second_approver_justification = notes

    approved = StatusChanged(
        pr_id=pr.id,
        previous_status=PRStatus.PENDING_APPROVAL,
        next_status=PRStatus.APPROVED,
        acting_user_id=approver_id,
        notes=notes,
        occurred_at=now,
    )

    if not dual:
        pr.status = PRStatus.APPROVED
        logger.info("PR approved", pr_id=pr.id, approver_id=approver_id)
        return approved

    if not (workflow.first_approval_complete and workflow.second_approval_complete):
        logger.info("Waiting for second approval", pr_id=pr.id, approver_id=approver_id)
        return None

    if workflow_has_conflict(workflow):
        workflow.quote_conflict = True
        logger.warning(
            "Approvers selected different quotes",
            pr_id=pr.id,
            first_quote=workflow.first_approver_selected_quote_id,
            second_quote=workflow.second_approver_selected_quote_id,
        )
        return QuoteConflictFlagged(pr_id=pr.id, acting_user_id=approver_id, notes=notes, occurred_at=now)

    workflow.quote_conflict = False
    pr.status = PRStatus.APPROVED
    logger.info("PR approved by both approvers", pr_id=pr.id)
    return approved
