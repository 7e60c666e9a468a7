"""
Typed access to the record store collections the engine reads and writes.
"""

from typing import Optional

from loguru import logger
from pydantic import ValidationError

from ..models.purchase_request import PurchaseRequest
from ..models.reference import Organization, Rule, User
from .storage import PurchaseRequestNotFound, RecordStore

PURCHASE_REQUESTS = "purchaseRequests"
RULES = "referenceData_rules"
VENDORS = "referenceData_vendors"
ORGANIZATIONS = "referenceData_organizations"
USERS = "users"
EXCHANGE_RATES = "exchangeRates"

# Notification audit stores; the second one is canonical
NOTIFICATIONS = "notifications"
PR_NOTIFICATIONS = "purchaseRequestsNotifications"
NOTIFICATION_LOGS = "notificationLogs"


class ReferenceData:
    def __init__(self, store: RecordStore):
        self.store = store

    async def get_purchase_request(self, pr_id: str) -> PurchaseRequest:
        doc = await self.store.get(PURCHASE_REQUESTS, pr_id)
        if doc is None:
            raise PurchaseRequestNotFound(pr_id)
        return PurchaseRequest.model_validate(doc)

    async def save_purchase_request(self, pr: PurchaseRequest) -> None:
        await self.store.set(PURCHASE_REQUESTS, pr.id, pr.to_record())

    async def list_purchase_requests(self, **equals) -> list[PurchaseRequest]:
        return [PurchaseRequest.model_validate(doc) for doc in await self.store.query(PURCHASE_REQUESTS, **equals)]

    async def get_rules(self, organization_id: str) -> list[Rule]:
        """Active rules for one organization; malformed records are skipped"""
        rules = []
        for doc in await self.store.query(RULES, organizationId=organization_id):
            try:
                rule = Rule.model_validate(doc)
            except ValidationError as e:
                logger.warning("Skipping malformed rule record", rule_id=doc.get("id"), errors=e.error_count())
                continue
            if rule.active:
                rules.append(rule)
        return rules

    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        doc = await self.store.get(ORGANIZATIONS, organization_id)
        return Organization.model_validate(doc) if doc else None

    async def get_user(self, user_id: str) -> Optional[User]:
        """None for unknown users and for records that do not parse"""
        doc = await self.store.get(USERS, user_id)
        if not doc:
            return None
        try:
            return User.model_validate(doc)
        except ValidationError as e:
            logger.warning("Skipping malformed user record", user_id=user_id, errors=e.error_count())
            return None

    async def get_vendor(self, vendor_id: str) -> Optional[dict]:
        return await self.store.get(VENDORS, vendor_id)
