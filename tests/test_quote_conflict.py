from datetime import datetime, timedelta, UTC

import pytest

from prflow.models.purchase_request import PRStatus
from prflow.services.approval_workflow import record_approval
from prflow.services.notifications.conflict import QuoteConflictDetector, days_in_conflict
from prflow.services.notifications.directory import UserDirectory
from prflow.services.notifications.events import QuoteConflictFlagged
from prflow.services.notifications.handlers import TransitionContext

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


@pytest.fixture
def conflicted_pr(make_pr, quote):
    pr = make_pr(
        status=PRStatus.PENDING_APPROVAL,
        estimated_amount=12000,
        approver2="senior2",
        requires_dual_approval=True,
        quotes=[quote("q1", 12000, vendor="acme"), quote("q2", 12500), quote("q3", 13000)],
    )
    record_approval(pr, "senior", selected_quote_id="q1", notes="Approved vendor", now=NOW)
    record_approval(pr, "senior2", selected_quote_id="q3", notes="Faster delivery", now=NOW)
    return pr


@pytest.fixture
def conflict_context(seeded_store, reference_data):
    async def _context(pr, occurred_at=NOW, reminder=False):
        return TransitionContext(
            event=QuoteConflictFlagged(pr_id=pr.id, occurred_at=occurred_at, reminder=reminder),
            pr=pr,
            organization=await reference_data.get_organization(pr.organization_id),
            directory=UserDirectory(reference_data),
            base_url="http://app.test",
            default_procurement_email="fallback@example.com",
        )
    return _context


@pytest.mark.asyncio
async def test_both_approvers_notified_procurement_and_requestor_copied(conflicted_pr, conflict_context):
    ctx = await conflict_context(conflicted_pr)
    detector = QuoteConflictDetector()

    assert detector.applies(ctx) is True
    recipients = await detector.get_recipients(ctx)

    assert recipients.to == ["senior@org1.example", "senior2@org1.example"]
    assert recipients.cc == ["procurement@org1.example", "req@org1.example"]


@pytest.mark.asyncio
async def test_not_applicable_once_resolved(conflicted_pr, conflict_context):
    record_approval(conflicted_pr, "senior2", selected_quote_id="q1", now=NOW + timedelta(hours=1))
    ctx = await conflict_context(conflicted_pr)

    assert QuoteConflictDetector().applies(ctx) is False


@pytest.mark.asyncio
async def test_not_applicable_without_both_selections(make_pr, quote, conflict_context):
    pr = make_pr(status=PRStatus.PENDING_APPROVAL, approver2="senior2", requires_dual_approval=True,
                 quotes=[quote("q1", 1100)])
    pr.approval_workflow.quote_conflict = True
    ctx = await conflict_context(pr)

    assert QuoteConflictDetector().applies(ctx) is False


@pytest.mark.asyncio
async def test_content_lists_each_selection(conflicted_pr, conflict_context):
    ctx = await conflict_context(conflicted_pr)

    content = await QuoteConflictDetector().get_email_content(ctx)

    assert content.subject == "PR ORG1-202603-001: Quote Conflict - Approvers Must Agree"
    assert "- Sam Senior: acme, 12,000.00 USD" in content.text
    assert "  Justification: Approved vendor" in content.text
    assert "- Sue Second: Vendor Q3, 13,000.00 USD" in content.text
    assert "cannot proceed until both approvers select the same quote" in content.text
    assert "<td>Sue Second</td><td>Vendor Q3</td><td>13,000.00</td><td>USD</td>" in content.html
    assert "Reminder" not in content.subject


@pytest.mark.asyncio
@pytest.mark.parametrize("days,label", [(1, "1 day"), (3, "3 days")])
async def test_reminder_states_days_open(conflicted_pr, conflict_context, days, label):
    ctx = await conflict_context(conflicted_pr, occurred_at=NOW + timedelta(days=days, hours=2), reminder=True)

    content = await QuoteConflictDetector().get_email_content(ctx)

    assert content.subject == f"PR ORG1-202603-001: Reminder ({label}): Quote Conflict - Approvers Must Agree"
    assert f"This conflict has been open for {days} day(s)." in content.text


def test_days_in_conflict(conflicted_pr, make_pr):
    assert days_in_conflict(conflicted_pr, NOW + timedelta(days=2, hours=23)) == 2
    assert days_in_conflict(conflicted_pr, NOW - timedelta(days=1)) == 0
    assert days_in_conflict(make_pr(), NOW) == 0
