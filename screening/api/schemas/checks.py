"""
Pydantic v2 schemas for the background check API.

Covers:
- Background check requests and record views (with the audit trail)
- Opportunity requirements and requirement validation
- Provider webhook acknowledgements
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from screening.models import CheckStatus, CheckType


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class BackgroundCheckCreate(BaseModel):
    """Request body for requesting a background check."""

    volunteer_id: uuid.UUID = Field(description="Volunteer to screen")
    check_type: CheckType = Field(
        default=CheckType.COMPREHENSIVE,
        description="basic, comprehensive, child_protection, youth_worker or financial",
    )
    provider_id: Optional[uuid.UUID] = Field(
        default=None,
        description="Explicit provider; defaults to the first active provider offering the check type",
    )


class ValidateRequest(BaseModel):
    """Request body for validating a volunteer against an opportunity."""

    volunteer_id: uuid.UUID
    opportunity_id: uuid.UUID


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class CheckEventOut(BaseModel):
    """One entry of a check's audit trail."""

    timestamp: datetime
    kind: str
    detail: str
    data: dict[str, Any] = Field(default_factory=dict)


class BackgroundCheckOut(BaseModel):
    """Full view of a background check record."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    volunteer_id: uuid.UUID
    provider: str
    check_type: CheckType
    status: CheckStatus
    external_id: Optional[str] = None
    candidate_url: Optional[str] = None
    is_simulated: bool
    requested_at: datetime
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    cost: Optional[Decimal] = None
    results: Optional[dict[str, Any]] = None
    renewal_reminder: bool
    events: list[CheckEventOut] = Field(default_factory=list)
    notes: str = ""
    created_at: datetime
    updated_at: datetime


class RequirementOut(BaseModel):
    """A background check requirement attached to an opportunity."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    opportunity_id: uuid.UUID
    check_type: CheckType
    is_required: bool
    grace_period_days: Optional[int] = None
    notes: Optional[str] = None


class ValidationResultOut(BaseModel):
    """Whether a volunteer satisfies an opportunity's check requirements."""

    model_config = ConfigDict(from_attributes=True)

    is_valid: bool
    missing_checks: list[CheckType]
    expired_checks: list[CheckType]
    warnings: list[str]


class WebhookAckOut(BaseModel):
    """Acknowledgement returned to the provider."""

    model_config = ConfigDict(from_attributes=True)

    check_id: uuid.UUID
    external_id: str
    status: CheckStatus
    processed: bool
    message: str
