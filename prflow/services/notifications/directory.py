import re
from typing import Optional

from loguru import logger
from pydantic import BaseModel

from ..reference_data import ReferenceData
from ..storage import RecordStoreError


class Person(BaseModel):
    id: str
    email: str | None = None
    name: str


def name_from_email(email: str) -> str:
    """'jane.doe@example.com' -> 'Jane Doe'"""
    local = email.split("@", 1)[0]
    parts = [p for p in re.split(r"[._\-]+", local) if p]
    if not parts:
        return email
    return " ".join(p.capitalize() for p in parts)


class UserDirectory:
    """Resolves user ids to people, with placeholders when no user record exists"""

    def __init__(self, reference_data: ReferenceData):
        self.reference_data = reference_data
        self._cache: dict[str, Person] = {}

    async def resolve(self, user_id: Optional[str]) -> Optional[Person]:
        if not user_id:
            return None
        if user_id in self._cache:
            return self._cache[user_id]

        try:
            user = await self.reference_data.get_user(user_id)
        except RecordStoreError as e:
            logger.warning("User lookup failed", user_id=user_id, error=str(e))
            user = None

        if user is not None:
            person = Person(id=user.id, email=user.email, name=user.full_name)
        elif "@" in user_id:
            person = Person(id=user_id, email=user_id, name=name_from_email(user_id))
        else:
            logger.warning("User not found, using id as name", user_id=user_id)
            person = Person(id=user_id, name=user_id)

        self._cache[user_id] = person
        return person
