"""
SQLAlchemy read-model for the volunteers table.

Volunteer records are owned by the community/volunteer subsystem. This
service only reads the identity and contact columns it needs to build a
candidate profile and to address notifications.
"""

from datetime import date
from typing import Optional

from sqlalchemy import Date, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Volunteer(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "volunteers"

    # Identity
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    birth_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Address
    address_line_1: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(5), nullable=True, default="US")

    def __repr__(self) -> str:
        return f"<Volunteer(id={self.id}, email={self.email})>"
