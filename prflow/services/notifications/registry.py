"""
Transition dispatch table.

Status changes are keyed by the typed (previous, next) pair; other events
are keyed by their type. Lookup is a plain dict access, and a miss means
"no notification for this transition", never an error.
"""

from typing import NamedTuple, Optional

from ...models.purchase_request import PRStatus
from .conflict import QuoteConflictDetector
from .events import QuoteConflictFlagged, StatusChanged, TransitionEvent
from .handlers import (
    ApprovedHandler,
    ApproverRejectedHandler,
    NewPRSubmittedHandler,
    PendingApprovalHandler,
    ProcurementRejectedHandler,
    RevisionReinstatedHandler,
    RevisionRejectedHandler,
    RevisionRequiredHandler,
    SubmittedToInQueueHandler,
    TransitionHandler,
)


class Transition(NamedTuple):
    previous: Optional[PRStatus]
    next: PRStatus


class TransitionRegistry:
    def __init__(self):
        self._status_handlers: dict[Transition, TransitionHandler] = {}
        self._event_handlers: dict[type, TransitionHandler] = {}

    def register(self, previous: Optional[PRStatus], next_status: PRStatus, handler: TransitionHandler) -> None:
        if previous == next_status:
            raise ValueError(f"Same-state transition {previous} cannot carry a status handler")
        self._status_handlers[Transition(previous, next_status)] = handler

    def register_event(self, event_type: type, handler: TransitionHandler) -> None:
        self._event_handlers[event_type] = handler

    def handler_for(self, event: TransitionEvent) -> Optional[TransitionHandler]:
        if isinstance(event, StatusChanged):
            return self.lookup(event.previous_status, event.next_status)
        return self._event_handlers.get(type(event))

    def lookup(self, previous: Optional[PRStatus], next_status: PRStatus) -> Optional[TransitionHandler]:
        return self._status_handlers.get(Transition(previous, next_status))

    @property
    def transitions(self) -> list[Transition]:
        return list(self._status_handlers)


def build_default_registry() -> TransitionRegistry:
    registry = TransitionRegistry()

    registry.register(None, PRStatus.SUBMITTED, NewPRSubmittedHandler())
    registry.register(PRStatus.SUBMITTED, PRStatus.IN_QUEUE, SubmittedToInQueueHandler())

    revision_required = RevisionRequiredHandler()
    for previous in (PRStatus.SUBMITTED, PRStatus.IN_QUEUE, PRStatus.PENDING_APPROVAL):
        registry.register(previous, PRStatus.REVISION_REQUIRED, revision_required)

    pending_approval = PendingApprovalHandler()
    procurement_rejected = ProcurementRejectedHandler()
    for previous in (PRStatus.SUBMITTED, PRStatus.IN_QUEUE):
        registry.register(previous, PRStatus.PENDING_APPROVAL, pending_approval)
        registry.register(previous, PRStatus.REJECTED, procurement_rejected)

    registry.register(PRStatus.PENDING_APPROVAL, PRStatus.APPROVED, ApprovedHandler())
    registry.register(PRStatus.PENDING_APPROVAL, PRStatus.REJECTED, ApproverRejectedHandler())

    reinstated = RevisionReinstatedHandler()
    for next_status in (PRStatus.SUBMITTED, PRStatus.RESUBMITTED, PRStatus.IN_QUEUE, PRStatus.PENDING_APPROVAL):
        registry.register(PRStatus.REVISION_REQUIRED, next_status, reinstated)
    registry.register(PRStatus.REVISION_REQUIRED, PRStatus.REJECTED, RevisionRejectedHandler())

    registry.register_event(QuoteConflictFlagged, QuoteConflictDetector())
    return registry
