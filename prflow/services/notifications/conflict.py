"""
Quote conflict escalation.

When both approvers of a dual-approval PR approve but pick different quotes,
the PR stays in PENDING_APPROVAL and both approvers are asked to agree on a
single quote. Reminder invocations produce the same notice with the number
of days the conflict has been open.
"""

import html
from datetime import UTC, datetime

from ...models.notification import EmailContent, Recipients
from ...models.purchase_request import PurchaseRequest
from ..approval_workflow import workflow_has_conflict
from .events import QuoteConflictFlagged
from .handlers import TransitionContext, TransitionHandler, dedupe_recipients, format_money


def days_in_conflict(pr: PurchaseRequest, now: datetime) -> int:
    since = pr.approval_workflow.last_updated
    if since is None:
        return 0
    if since.tzinfo is None:
        since = since.replace(tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return max((now - since).days, 0)


class QuoteConflictDetector(TransitionHandler):
    def applies(self, ctx: TransitionContext) -> bool:
        workflow = ctx.pr.approval_workflow
        return workflow.quote_conflict and workflow_has_conflict(workflow)

    async def get_recipients(self, ctx: TransitionContext) -> Recipients:
        return dedupe_recipients(
            await ctx.approver_emails(),
            [ctx.procurement_email, await ctx.requestor_email()],
        )

    async def selections(self, ctx: TransitionContext) -> list[dict]:
        """One row per approver: who picked which vendor at what amount"""
        pr = ctx.pr
        workflow = pr.approval_workflow
        picks = [
            (pr.approver, workflow.first_approver_selected_quote_id, workflow.first_approver_justification),
            (pr.approver2, workflow.second_approver_selected_quote_id, workflow.second_approver_justification),
        ]
        rows = []
        for approver_id, quote_id, justification in picks:
            person = await ctx.directory.resolve(approver_id)
            quote = pr.find_quote(quote_id)
            rows.append({
                "approver": person.name if person else "Unknown",
                "vendor": (quote.vendor_name or quote.vendor_id or "Unknown vendor") if quote else "Unknown quote",
                "amount": quote.amount if quote else None,
                "currency": (quote.currency or pr.currency) if quote else None,
                "justification": justification,
            })
        return rows

    async def get_email_content(self, ctx: TransitionContext) -> EmailContent:
        event = ctx.event
        reminder = isinstance(event, QuoteConflictFlagged) and event.reminder
        days = days_in_conflict(ctx.pr, event.occurred_at) if reminder else 0

        subject_text = "Quote Conflict - Approvers Must Agree"
        if reminder:
            subject_text = f"Reminder ({days} day{'s' if days != 1 else ''}): {subject_text}"

        rows = await self.selections(ctx)

        intro = (
            f"Both approvers have approved purchase request {ctx.pr.display_number}, "
            f"but they selected different quotes."
        )
        hold = (
            "The PR stays in PENDING APPROVAL and cannot proceed until both approvers "
            "select the same quote."
        )

        text_lines = [intro, ""]
        if reminder:
            text_lines += [f"This conflict has been open for {days} day(s).", ""]
        for row in rows:
            amount = format_money(row["amount"], row["currency"]) if row["amount"] is not None else "N/A"
            text_lines.append(f"- {row['approver']}: {row['vendor']}, {amount}")
            if row["justification"]:
                text_lines.append(f"  Justification: {row['justification']}")
        text_lines += ["", hold, "", f"Review the quotes: {ctx.pr_url}"]

        table_rows = ""
        for row in rows:
            amount = "" if row["amount"] is None else f"{row['amount']:,.2f}"
            table_rows += (
                "<tr>"
                f"<td>{html.escape(row['approver'])}</td>"
                f"<td>{html.escape(row['vendor'])}</td>"
                f"<td>{amount}</td>"
                f"<td>{html.escape(row['currency'] or '')}</td>"
                "</tr>"
            )
        html_parts = [
            "<h2>Quote Conflict</h2>",
            f"<p>{html.escape(intro)}</p>",
        ]
        if reminder:
            html_parts.append(f"<p><strong>This conflict has been open for {days} day(s).</strong></p>")
        html_parts += [
            "<table><tr><th>Approver</th><th>Vendor</th><th>Amount</th><th>Currency</th></tr>"
            f"{table_rows}</table>",
            f"<p>{html.escape(hold)}</p>",
            f'<p><a href="{html.escape(ctx.pr_url)}">Review the quotes</a></p>',
        ]

        return EmailContent(
            subject=self.subject(ctx, subject_text),
            text="\n".join(text_lines),
            html="\n".join(html_parts),
        )
