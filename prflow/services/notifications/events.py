"""
Events handed to the transition dispatcher.

A status change and a quote conflict are separate event types, so a
conflict never has to be inferred from the notes of a same-state update.
"""

from datetime import datetime, UTC
from typing import Optional, Union

from pydantic import BaseModel, Field

from ...models.purchase_request import PRStatus


def utcnow() -> datetime:
    return datetime.now(UTC)


class StatusChanged(BaseModel):
    pr_id: str
    previous_status: Optional[PRStatus] = None  # None = PR just created
    next_status: PRStatus
    acting_user_id: str | None = None
    notes: str | None = None
    occurred_at: datetime = Field(default_factory=utcnow)


class QuoteConflictFlagged(BaseModel):
    pr_id: str
    acting_user_id: str | None = None
    notes: str | None = None
    occurred_at: datetime = Field(default_factory=utcnow)
    reminder: bool = False


TransitionEvent = Union[StatusChanged, QuoteConflictFlagged]


def notification_type_for(event: TransitionEvent) -> str:
    """
    Idempotency key component for the notification an event produces.

    Retries of one event map to the same type; a later repeat of the same
    transition does not. Conflict notices collapse to one per day.
    """
    if isinstance(event, QuoteConflictFlagged):
        return f"QUOTE_CONFLICT:{event.occurred_at.date().isoformat()}"
    if event.previous_status is None:
        return "PR_SUBMITTED"
    return (
        f"STATUS_CHANGE:{event.previous_status.value}->{event.next_status.value}:"
        f"{event.occurred_at.isoformat()}"
    )
