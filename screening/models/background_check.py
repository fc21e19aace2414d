"""
SQLAlchemy model for background_checks, the only table this service writes.

Each row tracks one verification request from submission through provider
reconciliation to approval and eventual expiry. The ``events`` column is the
append-only audit trail; entries are never edited or removed.
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Enum,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin

JSONVariant = JSON().with_variant(JSONB(), "postgresql")


class CheckType(str, enum.Enum):
    BASIC = "basic"
    COMPREHENSIVE = "comprehensive"
    CHILD_PROTECTION = "child_protection"
    YOUTH_WORKER = "youth_worker"
    FINANCIAL = "financial"


class CheckStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    REQUIRES_REVIEW = "requires_review"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (CheckStatus.APPROVED, CheckStatus.REJECTED, CheckStatus.EXPIRED)


# Statuses that count toward the one-active-check-per-type rule
ACTIVE_STATUSES: tuple[CheckStatus, ...] = (
    CheckStatus.PENDING,
    CheckStatus.IN_PROGRESS,
    CheckStatus.REQUIRES_REVIEW,
)


class CheckEventKind(str, enum.Enum):
    REQUESTED = "requested"
    SUBMITTED = "submitted"
    SUBMISSION_FAILED = "submission_failed"
    CANDIDATE_REJECTED = "candidate_rejected"
    FALLBACK = "fallback"
    STATUS_CHANGED = "status_changed"
    STATUS_SYNTHESIZED = "status_synthesized"
    REMINDER_SENT = "reminder_sent"
    EXPIRED = "expired"
    STALE_FLAGGED = "stale_flagged"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class BackgroundCheck(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "background_checks"
    __table_args__ = (
        UniqueConstraint("provider", "external_id", name="uq_background_checks_provider_external_id"),
        # At most one active check per volunteer and check type
        Index(
            "uq_background_checks_active_per_type",
            "volunteer_id",
            "check_type",
            unique=True,
            postgresql_where=text("status IN ('pending', 'in_progress', 'requires_review')"),
            sqlite_where=text("status IN ('pending', 'in_progress', 'requires_review')"),
        ),
        Index("ix_background_checks_status_expires_at", "status", "expires_at"),
    )

    volunteer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(100), nullable=False)
    check_type: Mapped[CheckType] = mapped_column(
        Enum(CheckType, native_enum=False, length=30, values_callable=_enum_values),
        nullable=False,
    )
    status: Mapped[CheckStatus] = mapped_column(
        Enum(CheckStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=CheckStatus.PENDING,
    )

    # Provider correlation
    external_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    candidate_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_simulated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Lifecycle timestamps
    requested_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    results: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONVariant, nullable=True)
    renewal_reminder: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Append-only audit trail: [{timestamp, kind, detail, data}, ...]
    events: Mapped[list[dict[str, Any]]] = mapped_column(JSONVariant, nullable=False, default=list)

    def record_event(
        self,
        kind: CheckEventKind,
        detail: str,
        *,
        at: Optional[datetime] = None,
        **data: Any,
    ) -> dict[str, Any]:
        """Append an audit event.

        The list is reassigned rather than mutated so the ORM flags the JSON
        column as dirty.
        """
        event = {
            "timestamp": (at or datetime.now(timezone.utc)).isoformat(),
            "kind": kind.value,
            "detail": detail,
            "data": data,
        }
        self.events = [*(self.events or []), event]
        return event

    def events_of(self, kind: CheckEventKind) -> list[dict[str, Any]]:
        return [e for e in (self.events or []) if e.get("kind") == kind.value]

    @property
    def notes(self) -> str:
        """Human-readable rendering of the audit trail."""
        return "\n".join(
            f"[{e['timestamp']}] {e['kind']}: {e['detail']}" for e in (self.events or [])
        )

    def __repr__(self) -> str:
        return (
            f"<BackgroundCheck(id={self.id}, volunteer={self.volunteer_id}, "
            f"type={self.check_type}, provider={self.provider}, status={self.status})>"
        )
