from datetime import datetime, timedelta, UTC

import pytest

from prflow.models.purchase_request import PRStatus
from prflow.services.approval_workflow import (
    ApprovalError,
    ApprovalNotPermitted,
    record_approval,
    workflow_has_conflict,
)
from prflow.services.notifications.events import (
    QuoteConflictFlagged,
    StatusChanged,
    notification_type_for,
)

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


@pytest.fixture
def pending_pr(make_pr, quote):
    def _pending(**overrides):
        fields = {
            "status": PRStatus.PENDING_APPROVAL,
            "quotes": [quote("q1", 1100), quote("q2", 1200), quote("q3", 1300)],
        }
        fields.update(overrides)
        return make_pr(**fields)
    return _pending


def test_single_approval_approves(pending_pr):
    pr = pending_pr()

    event = record_approval(pr, "senior", selected_quote_id="q1", notes="Cheapest", now=NOW)

    assert isinstance(event, StatusChanged)
    assert event.previous_status == PRStatus.PENDING_APPROVAL
    assert event.next_status == PRStatus.APPROVED
    assert event.acting_user_id == "senior"
    assert pr.status == PRStatus.APPROVED
    assert pr.approval_workflow.first_approval_complete is True
    assert pr.approval_workflow.first_approver_selected_quote_id == "q1"
    assert pr.approval_workflow.first_approver_justification == "Cheapest"
    assert len(pr.approval_workflow.approval_history) == 1
    assert pr.approval_workflow.approval_history[0].timestamp == NOW
    assert pr.updated_at == NOW


def test_dual_approval_waits_for_second(pending_pr):
    pr = pending_pr(approver2="senior2", requires_dual_approval=True)

    event = record_approval(pr, "senior", selected_quote_id="q1", now=NOW)

    assert event is None
    assert pr.status == PRStatus.PENDING_APPROVAL
    assert pr.approval_workflow.first_approval_complete is True
    assert pr.approval_workflow.second_approval_complete is False


def test_dual_approval_matching_quotes_approves(pending_pr):
    pr = pending_pr(approver2="senior2", requires_dual_approval=True)

    record_approval(pr, "senior2", selected_quote_id="q2", now=NOW)
    event = record_approval(pr, "senior", selected_quote_id="q2", now=NOW + timedelta(minutes=5))

    assert isinstance(event, StatusChanged)
    assert event.next_status == PRStatus.APPROVED
    assert pr.status == PRStatus.APPROVED
    assert pr.approval_workflow.quote_conflict is False
    assert [h.approver_id for h in pr.approval_workflow.approval_history] == ["senior2", "senior"]


def test_dual_approval_different_quotes_flags_conflict(pending_pr):
    pr = pending_pr(approver2="senior2", requires_dual_approval=True)

    record_approval(pr, "senior", selected_quote_id="q1", now=NOW)
    event = record_approval(pr, "senior2", selected_quote_id="q3", notes="Faster delivery", now=NOW)

    assert isinstance(event, QuoteConflictFlagged)
    assert event.acting_user_id == "senior2"
    assert event.notes == "Faster delivery"
    assert pr.status == PRStatus.PENDING_APPROVAL
    assert pr.approval_workflow.quote_conflict is True
    assert workflow_has_conflict(pr.approval_workflow) is True


def test_conflict_resolved_when_approver_changes_selection(pending_pr):
    pr = pending_pr(approver2="senior2", requires_dual_approval=True)
    record_approval(pr, "senior", selected_quote_id="q1", now=NOW)
    record_approval(pr, "senior2", selected_quote_id="q3", now=NOW)

    event = record_approval(pr, "senior2", selected_quote_id="q1", now=NOW + timedelta(days=1))

    assert isinstance(event, StatusChanged)
    assert pr.status == PRStatus.APPROVED
    assert pr.approval_workflow.quote_conflict is False


def test_workflow_without_both_approvals_has_no_conflict(pending_pr):
    pr = pending_pr(approver2="senior2", requires_dual_approval=True)
    record_approval(pr, "senior", selected_quote_id="q1", now=NOW)

    assert workflow_has_conflict(pr.approval_workflow) is False


@pytest.mark.parametrize("status", [PRStatus.IN_QUEUE, PRStatus.APPROVED, PRStatus.REJECTED])
def test_only_pending_prs_can_be_approved(pending_pr, status):
    pr = pending_pr(status=status)

    with pytest.raises(ApprovalNotPermitted, match="not PENDING APPROVAL"):
        record_approval(pr, "senior", now=NOW)


def test_unassigned_approver_rejected(pending_pr):
    pr = pending_pr()

    with pytest.raises(ApprovalNotPermitted) as exc:
        record_approval(pr, "senior2", now=NOW)

    assert exc.value.pr_id == "PR-1"
    assert exc.value.approver_id == "senior2"
    assert pr.approval_workflow.approval_history == []


def test_unknown_quote_rejected(pending_pr):
    pr = pending_pr()

    with pytest.raises(ApprovalError, match="q9"):
        record_approval(pr, "senior", selected_quote_id="q9", now=NOW)

    assert pr.status == PRStatus.PENDING_APPROVAL


def test_dual_approval_needs_second_approver(pending_pr):
    pr = pending_pr(requires_dual_approval=True)

    with pytest.raises(ApprovalNotPermitted, match="second approver"):
        record_approval(pr, "senior", now=NOW)


def test_notification_types_distinguish_events():
    created = StatusChanged(pr_id="PR-1", next_status=PRStatus.SUBMITTED, occurred_at=NOW)
    changed = StatusChanged(
        pr_id="PR-1",
        previous_status=PRStatus.PENDING_APPROVAL,
        next_status=PRStatus.APPROVED,
        occurred_at=NOW,
    )
    conflict = QuoteConflictFlagged(pr_id="PR-1", occurred_at=NOW)
    later_conflict = QuoteConflictFlagged(pr_id="PR-1", occurred_at=NOW + timedelta(hours=3))

    assert notification_type_for(created) == "PR_SUBMITTED"
    assert notification_type_for(changed).startswith("STATUS_CHANGE:PENDING_APPROVAL->APPROVED:")
    assert notification_type_for(conflict) == "QUOTE_CONFLICT:2026-03-02"
    assert notification_type_for(later_conflict) == notification_type_for(conflict)
