"""
Screening SQLAlchemy Models
=============================

Central import point for all ORM models. Import ``Base`` from here for
Alembic auto-generation and for the ``create_all`` convenience in tests.

Usage::

    from screening.models import Base, BackgroundCheck, CheckStatus
"""

# -- Base & Mixins --
from .base import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin

# -- Background checks (owned by this service) --
from .background_check import (
    ACTIVE_STATUSES,
    BackgroundCheck,
    CheckEventKind,
    CheckStatus,
    CheckType,
)

# -- Read-only collaborators --
from .provider import BackgroundCheckProvider
from .requirement import BackgroundCheckRequirement
from .volunteer import Volunteer

__all__ = [
    "ACTIVE_STATUSES",
    "BackgroundCheck",
    "BackgroundCheckProvider",
    "BackgroundCheckRequirement",
    "Base",
    "CheckEventKind",
    "CheckStatus",
    "CheckType",
    "TimestampMixin",
    "UTCDateTime",
    "UUIDPrimaryKeyMixin",
    "Volunteer",
]
