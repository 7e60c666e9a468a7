"""
Transition handlers: who hears about a status change, and what they read.

Each handler computes a recipient set and an email body from the PR, its
organization's procurement contact and the requestor/approver identities.
Delivery is someone else's job; handlers only produce content.
"""

import html
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

from ...models.notification import EmailContent, Recipients
from ...models.purchase_request import PRStatus, PurchaseRequest
from ...models.reference import Organization
from .directory import Person, UserDirectory
from .events import TransitionEvent


@dataclass
class TransitionContext:
    event: TransitionEvent
    pr: PurchaseRequest
    organization: Optional[Organization]
    directory: UserDirectory
    base_url: str
    default_procurement_email: str

    @property
    def pr_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/pr/{self.pr.id}"

    @property
    def procurement_email(self) -> str:
        if self.organization and self.organization.procurement_email:
            return self.organization.procurement_email
        return self.default_procurement_email

    @property
    def next_status(self) -> PRStatus:
        return getattr(self.event, "next_status", self.pr.status)

    @property
    def notes(self) -> str | None:
        return self.event.notes

    async def requestor(self) -> Optional[Person]:
        person = await self.directory.resolve(self.pr.requestor_id)
        if person is None and self.pr.requestor_email:
            person = await self.directory.resolve(self.pr.requestor_email)
        return person

    async def requestor_email(self) -> Optional[str]:
        if self.pr.requestor_email:
            return self.pr.requestor_email
        person = await self.requestor()
        return person.email if person else None

    async def approvers(self) -> list[Person]:
        people = []
        for approver_id in self.pr.approvers:
            person = await self.directory.resolve(approver_id)
            if person is not None:
                people.append(person)
        return people

    async def approver_emails(self) -> list[str]:
        return [p.email for p in await self.approvers() if p.email]


def dedupe_recipients(to: Iterable[Optional[str]], cc: Iterable[Optional[str]] = ()) -> Recipients:
    """Drop blanks and case-insensitive repeats; nobody in `to` is also in `cc`"""
    seen: set[str] = set()

    def unique(addresses):
        result = []
        for address in addresses:
            if not address or not address.strip():
                continue
            key = address.strip().lower()
            if key in seen:
                continue
            seen.add(key)
            result.append(address.strip())
        return result

    to_list = unique(to)
    return Recipients(to=to_list, cc=unique(cc))


def format_money(amount: float, currency: str | None) -> str:
    return f"{amount:,.2f} {currency or ''}".strip()


class TransitionHandler(ABC):
    """Recipients and content for one kind of transition"""

    def applies(self, ctx: TransitionContext) -> bool:
        return True

    @abstractmethod
    async def get_recipients(self, ctx: TransitionContext) -> Recipients:
        pass

    @abstractmethod
    async def get_email_content(self, ctx: TransitionContext) -> EmailContent:
        pass

    @staticmethod
    def subject(ctx: TransitionContext, text: str) -> str:
        prefix = "URGENT: " if ctx.pr.is_urgent else ""
        return f"{prefix}PR {ctx.pr.display_number}: {text}"


class StatusTransitionHandler(TransitionHandler):
    """
    Plain status-change notice: a headline, a short explanation, the PR
    details block and a link. Subclasses supply the wording and recipients.
    """

    title = "Status Update"
    notes_label = "Notes"

    def headline(self, ctx: TransitionContext) -> str:
        return self.title

    def message(self, ctx: TransitionContext) -> str:
        return f"Purchase request {ctx.pr.display_number} is now {ctx.next_status.label}."

    def next_steps(self, ctx: TransitionContext) -> str | None:
        return None

    async def get_email_content(self, ctx: TransitionContext) -> EmailContent:
        requestor = await ctx.requestor()
        pr = ctx.pr
        details = [
            ("PR Number", pr.display_number),
            ("Description", pr.description or "N/A"),
            ("Estimated Amount", format_money(pr.estimated_amount, pr.currency)),
            ("Requestor", requestor.name if requestor else "N/A"),
            ("Status", ctx.next_status.label),
        ]
        if ctx.organization and ctx.organization.name:
            details.append(("Organization", ctx.organization.name))

        message = self.message(ctx)
        next_steps = self.next_steps(ctx)

        text_lines = [message, ""]
        text_lines += [f"{label}: {value}" for label, value in details]
        if ctx.notes:
            text_lines += ["", f"{self.notes_label}:", ctx.notes]
        if next_steps:
            text_lines += ["", next_steps]
        text_lines += ["", f"View PR: {ctx.pr_url}"]

        rows = "".join(
            f"<tr><td><strong>{html.escape(label)}</strong></td><td>{html.escape(str(value))}</td></tr>"
            for label, value in details
        )
        html_parts = [
            f"<h2>{html.escape(self.headline(ctx))}</h2>",
            f"<p>{html.escape(message)}</p>",
            f"<table>{rows}</table>",
        ]
        if ctx.notes:
            html_parts.append(f"<h3>{html.escape(self.notes_label)}</h3><p>{html.escape(ctx.notes)}</p>")
        if next_steps:
            html_parts.append(f"<p>{html.escape(next_steps)}</p>")
        html_parts.append(f'<p><a href="{html.escape(ctx.pr_url)}">View PR</a></p>')

        return EmailContent(
            subject=self.subject(ctx, self.headline(ctx)),
            text="\n".join(text_lines),
            html="\n".join(html_parts),
        )


class NewPRSubmittedHandler(StatusTransitionHandler):
    title = "New Purchase Request Submitted"

    def message(self, ctx):
        return f"A new purchase request {ctx.pr.display_number} has been submitted and is waiting for procurement."

    async def get_recipients(self, ctx):
        return dedupe_recipients([ctx.procurement_email], [await ctx.requestor_email()])


class SubmittedToInQueueHandler(StatusTransitionHandler):
    title = "Moved to Procurement Queue"

    def message(self, ctx):
        return f"Purchase request {ctx.pr.display_number} has been accepted into the procurement queue."

    def next_steps(self, ctx):
        return "Next steps: procurement will gather quotes and prepare the PR for approval."

    async def get_recipients(self, ctx):
        return dedupe_recipients([await ctx.requestor_email()], [ctx.procurement_email])


class RevisionRequiredHandler(StatusTransitionHandler):
    title = "Revision Required"
    notes_label = "Requested changes"

    def message(self, ctx):
        return f"Purchase request {ctx.pr.display_number} needs changes before it can continue."

    def next_steps(self, ctx):
        return "Next steps: update the PR as requested and resubmit it."

    async def get_recipients(self, ctx):
        return dedupe_recipients([await ctx.requestor_email()], [ctx.procurement_email])


class PendingApprovalHandler(StatusTransitionHandler):
    title = "Approval Required"

    def message(self, ctx):
        if len(ctx.pr.approvers) > 1:
            return (
                f"Purchase request {ctx.pr.display_number} is waiting for your approval. "
                f"Both assigned approvers must approve and select the same quote."
            )
        return f"Purchase request {ctx.pr.display_number} is waiting for your approval."

    async def get_recipients(self, ctx):
        return dedupe_recipients(
            await ctx.approver_emails(),
            [await ctx.requestor_email(), ctx.procurement_email],
        )


class ProcurementRejectedHandler(StatusTransitionHandler):
    title = "Rejected by Procurement"
    notes_label = "Reason"

    def message(self, ctx):
        return f"Purchase request {ctx.pr.display_number} has been rejected by procurement."

    async def get_recipients(self, ctx):
        return dedupe_recipients([await ctx.requestor_email()], [ctx.procurement_email])


class ApprovedHandler(StatusTransitionHandler):
    title = "Approved"
    notes_label = "Approval notes"

    def message(self, ctx):
        return f"Purchase request {ctx.pr.display_number} has been approved."

    def next_steps(self, ctx):
        return "Next steps: procurement will raise the purchase order."

    async def get_recipients(self, ctx):
        return dedupe_recipients(
            [await ctx.requestor_email(), ctx.procurement_email],
            await ctx.approver_emails(),
        )


class ApproverRejectedHandler(StatusTransitionHandler):
    title = "Rejected by Approver"
    notes_label = "Reason"

    def message(self, ctx):
        return f"Purchase request {ctx.pr.display_number} has been rejected by an approver."

    async def get_recipients(self, ctx):
        return dedupe_recipients(
            [await ctx.requestor_email()],
            [ctx.procurement_email, *await ctx.approver_emails()],
        )


REINSTATED_NEXT_STEPS = {
    PRStatus.SUBMITTED: "Next steps: procurement will review your PR and move it forward.",
    PRStatus.RESUBMITTED: "Next steps: procurement will review your PR and move it forward.",
    PRStatus.IN_QUEUE: "Next steps: your PR is in the procurement queue and will be prepared for approval.",
    PRStatus.PENDING_APPROVAL: "Next steps: your PR is awaiting approval from the assigned approver(s).",
}


class RevisionReinstatedHandler(StatusTransitionHandler):
    """Procurement withdrew a revision request and put the PR back where it was"""

    notes_label = "Reason for revert"

    def headline(self, ctx):
        return f"Reverted to {ctx.next_status.label}"

    def message(self, ctx):
        return (
            f"Purchase request {ctx.pr.display_number} has been reverted from REVISION REQUIRED "
            f"back to {ctx.next_status.label} by the procurement team. "
            f"The requested revision is no longer needed."
        )

    def next_steps(self, ctx):
        return REINSTATED_NEXT_STEPS.get(ctx.next_status, "Next steps: your PR will continue processing.")

    async def get_recipients(self, ctx):
        cc = [ctx.procurement_email]
        if ctx.next_status == PRStatus.PENDING_APPROVAL:
            cc += await ctx.approver_emails()
        return dedupe_recipients([await ctx.requestor_email()], cc)


class RevisionRejectedHandler(StatusTransitionHandler):
    title = "Rejected After Revision Request"
    notes_label = "Reason"

    def message(self, ctx):
        return (
            f"Purchase request {ctx.pr.display_number} was waiting for revision and has now been "
            f"rejected by procurement."
        )

    async def get_recipients(self, ctx):
        return dedupe_recipients([await ctx.requestor_email()], [ctx.procurement_email])
