"""
SQLAlchemy model for background_check_requirements.

Owned by the volunteer-opportunity subsystem; read-only here.
"""

import uuid
from typing import Optional

from sqlalchemy import Boolean, Enum, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .background_check import CheckType
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class BackgroundCheckRequirement(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "background_check_requirements"

    opportunity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    check_type: Mapped[CheckType] = mapped_column(
        Enum(
            CheckType,
            native_enum=False,
            length=30,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # NULL falls back to the configured default grace period
    grace_period_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=30)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<BackgroundCheckRequirement(opportunity={self.opportunity_id}, "
            f"type={self.check_type}, required={self.is_required})>"
        )
