"""
SQLAlchemy model for background_check_providers.

Provider rows are maintained by administrative configuration outside this
service; the screening core only reads them to build its provider registry.
"""

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class BackgroundCheckProvider(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "background_check_providers"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    # Adapter implementation key: ministrysafe, checkr, protectmyministry, simulation
    adapter: Mapped[str] = mapped_column(String(50), nullable=False)

    # Connection
    api_endpoint: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    api_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    webhook_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Capabilities
    supported_check_types: Mapped[list[str]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list
    )
    average_processing_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    cost_per_check: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)
    validity_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Demo/sandbox providers may run on the simulation adapter
    is_simulated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    settings: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<BackgroundCheckProvider(id={self.id}, name={self.name}, "
            f"adapter={self.adapter}, active={self.is_active})>"
        )
