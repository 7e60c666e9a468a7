from enum import IntEnum

from pydantic import field_validator

from .purchase_request import RecordModel


class PermissionLevel(IntEnum):
    ADMIN = 1
    APPROVER = 2
    PROCUREMENT = 3
    FINANCE_ADMIN = 4
    REQUESTER = 5
    FINANCE_APPROVER = 6
    SITE_MANAGER = 7
    USER_ADMIN = 8


PERMISSION_NAMES = {
    PermissionLevel.ADMIN: "Administrator",
    PermissionLevel.APPROVER: "Senior Approver",
    PermissionLevel.PROCUREMENT: "Procurement Officer",
    PermissionLevel.FINANCE_ADMIN: "Finance Admin",
    PermissionLevel.REQUESTER: "Requester",
    PermissionLevel.FINANCE_APPROVER: "Finance Approver",
    PermissionLevel.SITE_MANAGER: "Site Manager",
    PermissionLevel.USER_ADMIN: "User Administrator",
}


def permission_name(level: int | None) -> str:
    try:
        return PERMISSION_NAMES[PermissionLevel(level)]
    except ValueError:
        return f"Level {level}"


class Rule(RecordModel):
    id: str | None = None
    organization_id: str | None = None
    number: str
    name: str | None = None
    threshold: float
    currency: str | None = None
    uom: str | None = None
    active: bool = True

    @field_validator("number", mode="before")
    @classmethod
    def _number_as_string(cls, value):
        # Stored as either 1 or "1"
        return str(value).strip()


class Organization(RecordModel):
    id: str
    name: str | None = None
    procurement_email: str | None = None
    timezone: str | None = None
    currency: str | None = None


class User(RecordModel):
    id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    permission_level: int = PermissionLevel.REQUESTER
    organization_id: str | None = None

    @property
    def full_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email or self.id
