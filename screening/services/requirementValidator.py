"""
Requirement Validator
=====================

Answers "may this volunteer serve in this opportunity?" for the external
volunteer-assignment workflow.

For each required check type, the volunteer's most recent ``approved`` (or
scheduler-``expired``) record decides the outcome, compared at day
granularity with ``D = expires_at.date() - today``:

- no record           -> missing
- ``D <= 0``          -> expired
- ``0 < D <= grace``  -> valid, with a warning "<check_type> expires on <date>"
- otherwise           -> valid

Warnings never affect ``is_valid``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from screening.core.config import settings
from screening.models import (
    BackgroundCheck,
    BackgroundCheckRequirement,
    CheckStatus,
    CheckType,
)

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Outcome of validating a volunteer against an opportunity."""
    is_valid: bool
    missing_checks: list[CheckType] = field(default_factory=list)
    expired_checks: list[CheckType] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


async def get_requirements(
    db: AsyncSession,
    opportunity_id: uuid.UUID,
) -> Sequence[BackgroundCheckRequirement]:
    """All background check requirements configured for an opportunity."""
    result = await db.execute(
        select(BackgroundCheckRequirement)
        .where(BackgroundCheckRequirement.opportunity_id == opportunity_id)
        .order_by(BackgroundCheckRequirement.check_type)
    )
    return result.scalars().all()


async def validate(
    db: AsyncSession,
    volunteer_id: uuid.UUID,
    opportunity_id: uuid.UUID,
    *,
    today: Optional[date] = None,
) -> ValidationResult:
    """Check a volunteer's background checks against an opportunity's requirements."""
    today = today or datetime.now(timezone.utc).date()

    requirements = [r for r in await get_requirements(db, opportunity_id) if r.is_required]
    if not requirements:
        return ValidationResult(is_valid=True)

    result = await db.execute(
        select(BackgroundCheck).where(
            BackgroundCheck.volunteer_id == volunteer_id,
            BackgroundCheck.status.in_((CheckStatus.APPROVED, CheckStatus.EXPIRED)),
        )
    )
    latest = _latest_per_type(result.scalars().all())

    outcome = ValidationResult(is_valid=True)
    for requirement in requirements:
        check_type = requirement.check_type
        check = latest.get(check_type)

        if check is None or check.expires_at is None:
            outcome.missing_checks.append(check_type)
            continue

        expiry_date = check.expires_at.date()
        days_left = (expiry_date - today).days
        if check.status == CheckStatus.EXPIRED or days_left <= 0:
            outcome.expired_checks.append(check_type)
        elif days_left <= _grace_period(requirement):
            outcome.warnings.append(f"{check_type.value} expires on {expiry_date.isoformat()}")

    outcome.is_valid = not outcome.missing_checks and not outcome.expired_checks
    logger.info(
        "Validated volunteer=%s for opportunity=%s: valid=%s, missing=%d, expired=%d, warnings=%d",
        volunteer_id,
        opportunity_id,
        outcome.is_valid,
        len(outcome.missing_checks),
        len(outcome.expired_checks),
        len(outcome.warnings),
    )
    return outcome


def _grace_period(requirement: BackgroundCheckRequirement) -> int:
    if requirement.grace_period_days is None:
        return settings.default_grace_period_days
    return requirement.grace_period_days


def _latest_per_type(checks: Sequence[BackgroundCheck]) -> dict[CheckType, BackgroundCheck]:
    """Most recent record per check type, independent of input order."""
    latest: dict[CheckType, BackgroundCheck] = {}
    for check in checks:
        current = latest.get(check.check_type)
        if current is None or _recency_key(check) > _recency_key(current):
            latest[check.check_type] = check
    return latest


def _recency_key(check: BackgroundCheck) -> tuple[datetime, datetime]:
    floor = datetime.min.replace(tzinfo=timezone.utc)
    return (check.completed_at or floor, check.requested_at or floor)
