"""
Azure Service Bus event publishing for queued notifications.

The engine only decides who is notified and with what content; delivery is
done by a separate email consumer reading these events:
- Email delivery picks up each queued notification
- Audit systems can track every notification the engine produced
"""

import json
from datetime import datetime, UTC
from typing import Optional
from dataclasses import dataclass, asdict, field


@dataclass
class NotificationQueuedEvent:
    """
    Event published when a notification record is created.

    Carries the notification id so the consumer can load the full content
    from the notification store.
    """

    notification_id: str
    pr_id: str
    notification_type: str
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    subject: str = ""
    event_type: str = "NotificationQueued"
    timestamp: Optional[str] = None

    def __post_init__(self):
        """Set timestamp if not provided"""
        if self.timestamp is None:
            self.timestamp = datetime.now(UTC).isoformat()

    def to_dict(self) -> dict:
        """
        Convert event to dictionary for JSON serialization.

        Returns:
            Dictionary representation suitable for Service Bus message body
        """
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class EventPublisher:
    """
    Publishes events to an Azure Service Bus queue.

    Usage:
        from azure.servicebus import ServiceBusClient
        client = ServiceBusClient.from_connection_string(conn_str)
        sender = client.get_queue_sender(queue_name="pr-notifications")
        publisher = EventPublisher(service_bus_sender=sender)

        # Disabled mode (no Service Bus configured)
        publisher = EventPublisher(service_bus_sender=None)
    """

    def __init__(
        self,
        service_bus_sender: Optional[object] = None,
        entity_name: str = "pr-notifications"
    ):
        """
        Initialize event publisher.

        Args:
            service_bus_sender: Azure Service Bus sender (ServiceBusSender) or None to disable
            entity_name: Service Bus queue name (default: pr-notifications)
        """
        self.service_bus_sender = service_bus_sender
        self.entity_name = entity_name

    @property
    def enabled(self) -> bool:
        return self.service_bus_sender is not None

    def publish_notification_queued(self, event: NotificationQueuedEvent) -> None:
        """
        Publish a notification queued event to Service Bus.

        Note:
            If service_bus_sender is None, this is a no-op (disabled mode).
        """
        if self.service_bus_sender is None:
            return

        from azure.servicebus import ServiceBusMessage

        message = ServiceBusMessage(
            event.to_json(),
            content_type="application/json",
            subject=event.event_type,
            message_id=event.notification_id,
        )
        self.service_bus_sender.send_messages(message)


def create_event_publisher() -> EventPublisher:
    """
    Build a publisher from settings.

    Returns:
        EventPublisher sending to the configured queue, or a disabled one when
        no connection string is set
    """
    from ...core.config import settings

    if not settings.service_bus_connection_string:
        return EventPublisher(service_bus_sender=None, entity_name=settings.service_bus_queue)

    from azure.servicebus import ServiceBusClient

    client = ServiceBusClient.from_connection_string(settings.service_bus_connection_string)
    sender = client.get_queue_sender(queue_name=settings.service_bus_queue)
    return EventPublisher(service_bus_sender=sender, entity_name=settings.service_bus_queue)


_default_publisher: Optional[EventPublisher] = None


def get_event_publisher() -> EventPublisher:
    """
    Get the default event publisher instance.

    Returns:
        EventPublisher instance (may be disabled if Service Bus not configured)
    """
    global _default_publisher
    if _default_publisher is None:
        _default_publisher = create_event_publisher()
    return _default_publisher
