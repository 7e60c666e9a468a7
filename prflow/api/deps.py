from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from ..models.reference import User
from ..services.approval_rules import PRApprovalValidator, create_approval_validator
from ..services.currency import ExchangeRateResolver, create_exchange_rate_resolver
from ..services.events.event_publisher import EventPublisher, get_event_publisher
from ..services.notifications.service import NotificationService
from ..services.reference_data import ReferenceData
from ..services.storage import RecordStore, create_record_store


@lru_cache
def get_record_store() -> RecordStore:
    return create_record_store()


def get_reference_data(store: RecordStore = Depends(get_record_store)) -> ReferenceData:
    return ReferenceData(store)


_resolver: ExchangeRateResolver | None = None


def get_exchange_rate_resolver(store: RecordStore = Depends(get_record_store)) -> ExchangeRateResolver:
    # One resolver per store so the rate cache survives across requests
    global _resolver
    if _resolver is None or _resolver.record_store is not store:
        _resolver = create_exchange_rate_resolver(record_store=store)
    return _resolver


def get_publisher() -> EventPublisher:
    return get_event_publisher()


def get_approval_validator(
    reference_data: ReferenceData = Depends(get_reference_data),
    resolver: ExchangeRateResolver = Depends(get_exchange_rate_resolver),
) -> PRApprovalValidator:
    return create_approval_validator(reference_data, resolver)


def get_notification_service(
    reference_data: ReferenceData = Depends(get_reference_data),
    publisher: EventPublisher = Depends(get_publisher),
) -> NotificationService:
    return NotificationService(reference_data, publisher=publisher)


async def get_acting_user(
    x_user_id: str = Header(..., description="Id of the user performing the action"),
    reference_data: ReferenceData = Depends(get_reference_data),
) -> User:
    """Identity comes from the upstream auth layer via X-User-Id"""
    user = await reference_data.get_user(x_user_id)
    if user is None:
        raise HTTPException(status_code=403, detail=f"Unknown user: {x_user_id}")
    return user
