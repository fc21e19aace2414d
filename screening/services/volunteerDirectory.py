"""
Volunteer lookup contract.

The volunteer record is owned elsewhere; the screening core only needs the
identity fields for a candidate profile and a contact for notifications.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from screening.models import Volunteer

from .notificationService import RecipientContact


@dataclass(frozen=True)
class VolunteerContact:
    id: uuid.UUID
    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    birth_date: Optional[date]
    phone: Optional[str] = None
    address_line_1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def as_recipient(self) -> RecipientContact:
        return RecipientContact(
            volunteer_id=self.id,
            email=self.email or "",
            name=self.full_name,
            phone=self.phone,
        )


class VolunteerDirectory(Protocol):
    async def get_volunteer(self, volunteer_id: uuid.UUID) -> Optional[VolunteerContact]:
        ...


class SqlVolunteerDirectory:
    """Reads volunteers from the shared ``volunteers`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_volunteer(self, volunteer_id: uuid.UUID) -> Optional[VolunteerContact]:
        volunteer = await self.db.get(Volunteer, volunteer_id)
        if volunteer is None:
            return None
        return VolunteerContact(
            id=volunteer.id,
            email=volunteer.email,
            first_name=volunteer.first_name,
            last_name=volunteer.last_name,
            birth_date=volunteer.birth_date,
            phone=volunteer.phone,
            address_line_1=volunteer.address_line_1,
            city=volunteer.city,
            state=volunteer.state,
            postal_code=volunteer.postal_code,
            country=volunteer.country,
        )
