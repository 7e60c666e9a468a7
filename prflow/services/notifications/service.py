"""
Notification dispatch and idempotent notification logging.
"""

from datetime import UTC, datetime, timedelta
from typing import Callable, Optional

from loguru import logger
from pydantic import ValidationError

from ...models.notification import EmailContent, NotificationLog, NotificationResult
from ...models.purchase_request import PRStatus, PurchaseRequest
from ..events.event_publisher import EventPublisher, NotificationQueuedEvent
from ..reference_data import NOTIFICATION_LOGS, NOTIFICATIONS, PR_NOTIFICATIONS, ReferenceData
from ..storage import PurchaseRequestNotFound
from .directory import UserDirectory
from .events import QuoteConflictFlagged, TransitionEvent, notification_type_for, utcnow
from .handlers import TransitionContext
from .registry import TransitionRegistry, build_default_registry

RECENT_LOG_WINDOW = timedelta(hours=1)


def notification_key(pr_id: str, notification_type: str) -> str:
    return f"{pr_id}:{notification_type}"


class NotificationService:
    """
    Turns transition events into notification records.

    Each event is looked up in the transition registry; the handler found
    there supplies recipients and content, which are logged once per
    (PR, notification type) and handed to the delivery queue.
    """

    def __init__(
        self,
        reference_data: ReferenceData,
        registry: Optional[TransitionRegistry] = None,
        publisher: Optional[EventPublisher] = None,
        base_url: str | None = None,
        default_procurement_email: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        from ...core.config import settings

        self.reference_data = reference_data
        self.store = reference_data.store
        self.registry = registry or build_default_registry()
        self.publisher = publisher or EventPublisher(service_bus_sender=None)
        self.base_url = base_url or settings.base_url
        self.default_procurement_email = default_procurement_email or settings.default_procurement_email
        self.clock = clock

    async def create_notification(
        self,
        pr_id: str,
        notification_type: str,
        recipients: list[str],
        cc: list[str],
        content: EmailContent,
        status: str = "queued",
    ) -> NotificationResult:
        """
        Log a notification unless one already exists for (pr_id, notification_type).

        The read checks cover records written by older producers; the final
        insert_if_absent on the canonical store is what makes the write safe
        against concurrent callers.

        Returns:
            NotificationResult; failures are reported, never raised
        """
        try:
            existing_id = await self._find_existing(pr_id, notification_type)
            if existing_id:
                logger.info("Duplicate notification suppressed", pr_id=pr_id, type=notification_type)
                return NotificationResult(
                    success=True,
                    notification_id=existing_id,
                    message="Notification already exists",
                    duplicate=True,
                )

            key = notification_key(pr_id, notification_type)
            log = NotificationLog(
                id=key,
                type=notification_type,
                pr_id=pr_id,
                recipients=recipients,
                cc=cc,
                subject=content.subject,
                status=status,
                created_at=self.clock(),
            )
            record = log.to_record()
            record["content"] = content.model_dump(exclude_none=True)

            doc_id, created = await self.store.insert_if_absent(PR_NOTIFICATIONS, key, record)
            if not created:
                logger.info("Duplicate notification suppressed", pr_id=pr_id, type=notification_type)
                return NotificationResult(
                    success=True,
                    notification_id=doc_id,
                    message="Notification already exists",
                    duplicate=True,
                )

            logger.info("Notification created", pr_id=pr_id, type=notification_type, to=recipients, cc=cc)
            return NotificationResult(success=True, notification_id=doc_id, message="Notification created")
        except Exception as e:
            logger.error(f"Failed to create notification for {pr_id}: {e}")
            return NotificationResult(success=False, message=f"Failed to create notification: {e}")

    async def _find_existing(self, pr_id: str, notification_type: str) -> Optional[str]:
        for collection in (NOTIFICATIONS, PR_NOTIFICATIONS):
            matches = await self.store.query(collection, prId=pr_id, type=notification_type)
            if matches:
                return matches[0]["id"]

        cutoff = self.clock() - RECENT_LOG_WINDOW
        for record in await self.store.query(NOTIFICATION_LOGS, prId=pr_id, type=notification_type):
            created_at = _parse_timestamp(record.get("createdAt"))
            if created_at is not None and created_at >= cutoff:
                return record["id"]
        return None

    async def handle_event(self, event: TransitionEvent) -> NotificationResult:
        """
        Dispatch one transition event.

        An unregistered transition is not an error: it simply produces no
        notification. Nothing raised while building the notification escapes,
        so a failed notice never blocks the status change that caused it.
        """
        try:
            try:
                pr = await self.reference_data.get_purchase_request(event.pr_id)
            except PurchaseRequestNotFound as e:
                logger.warning("Cannot notify for missing PR", pr_id=event.pr_id)
                return NotificationResult(success=False, message=str(e))

            handler = self.registry.handler_for(event)
            if handler is None:
                logger.debug("No notification handler", pr_id=pr.id, event=type(event).__name__)
                return NotificationResult(success=True, message="no handler")

            organization = await self.reference_data.get_organization(pr.organization_id)
            ctx = TransitionContext(
                event=event,
                pr=pr,
                organization=organization,
                directory=UserDirectory(self.reference_data),
                base_url=self.base_url,
                default_procurement_email=self.default_procurement_email,
            )
            if not handler.applies(ctx):
                logger.info("Handler not applicable", pr_id=pr.id, handler=type(handler).__name__)
                return NotificationResult(success=True, message="not applicable")

            recipients = await handler.get_recipients(ctx)
            if not recipients.to:
                logger.warning("Notification has no primary recipients", pr_id=pr.id, handler=type(handler).__name__)
                return NotificationResult(success=False, message="No recipients resolved")

            content = await handler.get_email_content(ctx)
            notification_type = notification_type_for(event)
        except Exception as e:
            logger.exception(f"Notification dispatch failed for {event.pr_id}: {e}")
            return NotificationResult(success=False, message=f"Notification dispatch failed: {e}")

        result = await self.create_notification(pr.id, notification_type, recipients.to, recipients.cc, content)
        if result.success and not result.duplicate:
            self._publish(result.notification_id, pr.id, notification_type, recipients.to, recipients.cc, content)
        return result

    def _publish(self, notification_id, pr_id, notification_type, to, cc, content: EmailContent) -> None:
        try:
            self.publisher.publish_notification_queued(
                NotificationQueuedEvent(
                    notification_id=notification_id,
                    pr_id=pr_id,
                    notification_type=notification_type,
                    to=to,
                    cc=cc,
                    subject=content.subject,
                )
            )
        except Exception as e:
            # The notification record exists; delivery can be retried from it
            logger.warning(f"Failed to publish notification event: {e}")

    async def conflicted_purchase_requests(self) -> list[PurchaseRequest]:
        prs = await self.reference_data.list_purchase_requests(status=PRStatus.PENDING_APPROVAL.value)
        return [pr for pr in prs if pr.approval_workflow.quote_conflict]

    async def send_conflict_reminders(self, now: datetime | None = None) -> dict[str, NotificationResult]:
        """Dispatch a reminder for every PR still held by a quote conflict"""
        now = now or self.clock()
        results = {}
        for pr in await self.conflicted_purchase_requests():
            event = QuoteConflictFlagged(pr_id=pr.id, occurred_at=now, reminder=True)
            results[pr.id] = await self.handle_event(event)
        logger.info("Quote conflict reminders sent", count=len(results))
        return results

    async def list_notifications(self, pr_id: str) -> list[NotificationLog]:
        logs = []
        for record in await self.store.query(PR_NOTIFICATIONS, prId=pr_id):
            try:
                logs.append(NotificationLog.model_validate(record))
            except ValidationError as e:
                logger.warning("Skipping malformed notification record", record_id=record.get("id"), errors=e.error_count())
        return logs


def _parse_timestamp(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
