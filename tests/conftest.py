"""
Pytest configuration and shared fixtures.

Registers the integration marker and --run-integration option, and builds
an in-memory record store seeded with one organization (ORG1), its rules,
users and vendors.
"""

from datetime import datetime, UTC

import pytest
import pytest_asyncio
import respx

from prflow.models.purchase_request import Attachment, PRStatus, PurchaseRequest, Quote
from prflow.services.currency import ExchangeRateCache, ExchangeRateResolver
from prflow.services.reference_data import ORGANIZATIONS, RULES, USERS, VENDORS, ReferenceData
from prflow.services.storage import InMemoryRecordStore

RATE_API = "https://rates.test/latest"
NOW = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against the real exchange rate service"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring network access"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


class FakeClock:
    """Monotonic clock the tests move by hand"""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_global_respx_router():
    """Drop routes registered on respx's global router so they don't leak across tests"""
    yield
    respx.mock.clear()
    respx.mock.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def reference_data(store):
    return ReferenceData(store)


@pytest.fixture
def resolver(clock, store):
    return ExchangeRateResolver(
        cache=ExchangeRateCache(ttl_seconds=3600, clock=clock),
        record_store=store,
        api_url=RATE_API,
        timeout=1.0,
    )


USERS_SEED = [
    {"id": "admin", "email": "admin@org1.example", "firstName": "Ada", "lastName": "Admin", "permissionLevel": 1},
    {"id": "senior", "email": "senior@org1.example", "firstName": "Sam", "lastName": "Senior", "permissionLevel": 2},
    {"id": "senior2", "email": "senior2@org1.example", "firstName": "Sue", "lastName": "Second", "permissionLevel": 2},
    {"id": "proc", "email": "proc@org1.example", "firstName": "Pat", "lastName": "Procurement", "permissionLevel": 3},
    {"id": "finadmin", "email": "finadmin@org1.example", "firstName": "Fay", "lastName": "Finance", "permissionLevel": 4},
    {"id": "req", "email": "req@org1.example", "firstName": "Rita", "lastName": "Requester", "permissionLevel": 5},
    {"id": "finance", "email": "finance@org1.example", "firstName": "Fred", "lastName": "Approver", "permissionLevel": 6},
]


@pytest_asyncio.fixture
async def seeded_store(store):
    """ORG1 with Rule 1 = 1000 USD and Rule 2 = 10000 USD"""
    await store.set(ORGANIZATIONS, "ORG1", {
        "name": "Org One",
        "procurementEmail": "procurement@org1.example",
        "currency": "USD",
    })
    await store.set(RULES, "r1", {"organizationId": "ORG1", "number": 1, "name": "Rule 1", "threshold": 1000, "currency": "USD"})
    await store.set(RULES, "r2", {"organizationId": "ORG1", "number": "2", "name": "Rule 2", "threshold": 10000, "uom": "USD"})
    await store.set(RULES, "r2-old", {"organizationId": "ORG1", "number": "2", "threshold": 5, "active": False})
    await store.set(RULES, "other", {"organizationId": "ORG2", "number": "1", "threshold": 1})
    for user in USERS_SEED:
        await store.set(USERS, user["id"], {k: v for k, v in user.items() if k != "id"})
    await store.set(VENDORS, "acme", {"name": "Acme Supplies", "approved": True})
    await store.set(VENDORS, "Globex", {"name": "Globex", "IsApproved": True})
    await store.set(VENDORS, "shadyco", {"name": "Shady Co", "approved": False})
    await store.set(VENDORS, "oldco", {"name": "Old Co", "approved": True, "active": False})
    return store


def make_quote(quote_id: str, amount: float, attachments: int = 1, currency: str = "USD", vendor: str = None) -> Quote:
    return Quote(
        id=quote_id,
        vendor_id=vendor or f"vendor-{quote_id}",
        vendor_name=vendor or f"Vendor {quote_id.upper()}",
        amount=amount,
        currency=currency,
        attachments=[Attachment(id=f"{quote_id}-att{i}", name=f"quote-{i}.pdf") for i in range(attachments)],
    )


@pytest.fixture
def quote():
    return make_quote


@pytest.fixture
def make_pr():
    def _make_pr(**overrides) -> PurchaseRequest:
        fields = {
            "id": "PR-1",
            "pr_number": "ORG1-202603-001",
            "organization_id": "ORG1",
            "description": "Field laptops",
            "estimated_amount": 1500.0,
            "currency": "USD",
            "status": PRStatus.IN_QUEUE,
            "requestor_id": "req",
            "requestor_email": "req@org1.example",
            "approver": "senior",
        }
        fields.update(overrides)
        return PurchaseRequest(**fields)
    return _make_pr
