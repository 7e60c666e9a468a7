from .event_publisher import EventPublisher, NotificationQueuedEvent, get_event_publisher

__all__ = ["EventPublisher", "NotificationQueuedEvent", "get_event_publisher"]
