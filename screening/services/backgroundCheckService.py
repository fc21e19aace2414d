"""
Background Check Service
========================

Request orchestration for volunteer background checks:

- Volunteer and provider resolution
- Duplicate-request guard (one active check per volunteer and check type)
- Submission to the provider adapter
- Degraded-mode fallback to the simulation adapter when the provider
  cannot be reached
- Read helpers used by the API (single check, per-volunteer history,
  upcoming expirations)

Business rules enforced:
- A record is persisted in ``pending`` before any external call is made
- Provider communication errors never reach the caller; they are kept in
  the record's audit events and the record continues in degraded mode
- Candidate data refused by the provider puts the record in
  ``requires_review`` instead of falling back

All functions are async and accept an ``AsyncSession`` for transactional safety.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from screening.integrations.providers import (
    AdapterKind,
    CandidateProfile,
    InvalidCandidateDataError,
    ProviderError,
    StatusUpdate,
)
from screening.models import (
    ACTIVE_STATUSES,
    BackgroundCheck,
    CheckEventKind,
    CheckStatus,
    CheckType,
)
from screening.services.backgroundCheckIntegration import ProviderRegistry
from screening.services.statusReconciler import (
    BackgroundCheckNotFoundError,
    apply_update_to_check,
    validity_days_for,
)
from screening.services.volunteerDirectory import (
    SqlVolunteerDirectory,
    VolunteerContact,
    VolunteerDirectory,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class VolunteerNotFoundError(Exception):
    """The volunteer directory has no record for the given id."""


class DuplicateRequestError(Exception):
    """A concurrent request already created an active check of this type."""


# ---------------------------------------------------------------------------
# Request orchestration
# ---------------------------------------------------------------------------

async def request_check(
    db: AsyncSession,
    volunteer_id: uuid.UUID,
    check_type: CheckType,
    registry: ProviderRegistry,
    *,
    provider_id: Optional[uuid.UUID] = None,
    directory: Optional[VolunteerDirectory] = None,
) -> BackgroundCheck:
    """Request a background check for a volunteer.

    Args:
        db: Async database session.
        volunteer_id: The volunteer to screen.
        check_type: Generic check type to request.
        registry: Configured provider registry.
        provider_id: Optional explicit provider; defaults to the first active
            provider offering ``check_type``.
        directory: Volunteer lookup; defaults to the ``volunteers`` table.

    Returns:
        The new record, or the existing active record for the same volunteer
        and check type.

    Raises:
        VolunteerNotFoundError: If the volunteer does not exist.
        NoActiveProviderError: If no active provider can serve the request.
        InvalidCandidateDataError: If required identity fields are missing.
        DuplicateRequestError: If a concurrent request won the race.
    """
    directory = directory or SqlVolunteerDirectory(db)

    # 1. Volunteer
    volunteer = await directory.get_volunteer(volunteer_id)
    if volunteer is None:
        raise VolunteerNotFoundError(f"Volunteer not found: {volunteer_id}")

    # 2. Provider
    profile = registry.resolve_provider(provider_id=provider_id, check_type=check_type)

    # 3. Duplicate guard
    existing = await _get_active_check(db, volunteer_id, check_type)
    if existing is not None:
        logger.info(
            "Reusing active background check %s for volunteer=%s, type=%s",
            existing.id,
            volunteer_id,
            check_type.value,
        )
        return existing

    # 4. Candidate + pending record
    candidate = build_candidate(volunteer)
    now = datetime.now(timezone.utc)
    check = BackgroundCheck(
        volunteer_id=volunteer_id,
        provider=profile.name,
        check_type=check_type,
        status=CheckStatus.PENDING,
        requested_at=now,
        is_simulated=False,
        renewal_reminder=True,
        events=[],
    )
    check.record_event(
        CheckEventKind.REQUESTED,
        f"Background check requested via {profile.name}",
        at=now,
        provider=profile.name,
        check_type=check_type.value,
    )
    db.add(check)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise DuplicateRequestError(
            f"An active {check_type.value} check already exists for volunteer {volunteer_id}"
        ) from exc

    # 5. Submit
    adapter = registry.adapter_for(profile.name)
    validity_days = validity_days_for(registry, profile.name)
    try:
        submission = await adapter.submit(candidate, check_type)
    except InvalidCandidateDataError as exc:
        check.record_event(
            CheckEventKind.CANDIDATE_REJECTED,
            f"{profile.name} refused candidate data: {exc}",
            fields=exc.fields,
        )
        apply_update_to_check(
            check,
            StatusUpdate(status=CheckStatus.REQUIRES_REVIEW),
            validity_days=validity_days,
            source="submission",
        )
        logger.warning(
            "Candidate data for volunteer %s refused by %s: %s",
            volunteer_id,
            profile.name,
            exc,
        )
    except ProviderError as exc:
        await _fall_back_to_simulation(check, candidate, registry, exc, validity_days)
    else:
        check.external_id = submission.external_id
        check.candidate_url = submission.candidate_url
        check.cost = profile.cost_per_check
        check.is_simulated = adapter.kind == AdapterKind.SIMULATION
        check.record_event(
            CheckEventKind.SUBMITTED,
            f"Submitted to {profile.name} (ref {submission.external_id})",
            external_id=submission.external_id,
            status=submission.status.value,
        )
        apply_update_to_check(
            check,
            StatusUpdate(
                status=submission.status,
                results=submission.results,
                completed_at=submission.completed_at,
            ),
            validity_days=validity_days,
            source="submission",
        )
        logger.info(
            "Background check submitted: id=%s, volunteer=%s, type=%s, provider=%s, ref=%s",
            check.id,
            volunteer_id,
            check_type.value,
            profile.name,
            submission.external_id,
        )

    await db.flush()
    return check


def build_candidate(volunteer: VolunteerContact) -> CandidateProfile:
    """Map a volunteer onto the identity fields every provider requires.

    Raises:
        InvalidCandidateDataError: If email, names or birth date are missing.
    """
    missing = [
        name
        for name, value in (
            ("email", volunteer.email),
            ("first_name", volunteer.first_name),
            ("last_name", volunteer.last_name),
            ("birth_date", volunteer.birth_date),
        )
        if not value
    ]
    if missing:
        raise InvalidCandidateDataError(
            f"Volunteer {volunteer.id} is missing required fields: {', '.join(missing)}",
            fields=missing,
        )
    return CandidateProfile(
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


async def _fall_back_to_simulation(
    check: BackgroundCheck,
    candidate: CandidateProfile,
    registry: ProviderRegistry,
    error: ProviderError,
    validity_days: int,
) -> None:
    """Keep the request moving in degraded mode after a provider failure."""
    check.record_event(
        CheckEventKind.SUBMISSION_FAILED,
        f"Submission to {check.provider} failed ({type(error).__name__}): {error}",
        error=type(error).__name__,
        message=str(error),
    )
    simulation = registry.simulation
    submission = await simulation.submit(candidate, check.check_type)
    check.external_id = submission.external_id
    check.is_simulated = True
    check.record_event(
        CheckEventKind.FALLBACK,
        f"FALLBACK: {check.provider} unavailable, status now simulated "
        f"(ref {submission.external_id})",
        external_id=submission.external_id,
        auto_approve=simulation.auto_approve,
    )
    apply_update_to_check(
        check,
        StatusUpdate(status=submission.status, results=submission.results),
        validity_days=validity_days,
        source="simulation",
    )
    logger.warning(
        "Background check %s fell back to simulation after %s from %s: %s",
        check.id,
        type(error).__name__,
        check.provider,
        error,
    )


# ---------------------------------------------------------------------------
# Read helpers
# ---------------------------------------------------------------------------

async def get_check(db: AsyncSession, check_id: uuid.UUID) -> BackgroundCheck:
    """Fetch a background check by ID or raise ``BackgroundCheckNotFoundError``."""
    check = await db.get(BackgroundCheck, check_id)
    if check is None:
        raise BackgroundCheckNotFoundError(f"Background check not found: {check_id}")
    return check


async def list_volunteer_checks(
    db: AsyncSession,
    volunteer_id: uuid.UUID,
) -> Sequence[BackgroundCheck]:
    """All checks for a volunteer, most recent request first."""
    result = await db.execute(
        select(BackgroundCheck)
        .where(BackgroundCheck.volunteer_id == volunteer_id)
        .order_by(BackgroundCheck.requested_at.desc())
    )
    return result.scalars().all()


async def list_expiring_checks(
    db: AsyncSession,
    days_ahead: int = 30,
    *,
    now: Optional[datetime] = None,
) -> Sequence[BackgroundCheck]:
    """Approved checks whose expiry falls within the next ``days_ahead`` days."""
    now = now or datetime.now(timezone.utc)
    horizon = now + timedelta(days=days_ahead)
    result = await db.execute(
        select(BackgroundCheck)
        .where(
            BackgroundCheck.status == CheckStatus.APPROVED,
            BackgroundCheck.expires_at.isnot(None),
            BackgroundCheck.expires_at > now,
            BackgroundCheck.expires_at <= horizon,
        )
        .order_by(BackgroundCheck.expires_at)
    )
    return result.scalars().all()


async def _get_active_check(
    db: AsyncSession,
    volunteer_id: uuid.UUID,
    check_type: CheckType,
) -> Optional[BackgroundCheck]:
    result = await db.execute(
        select(BackgroundCheck)
        .where(
            BackgroundCheck.volunteer_id == volunteer_id,
            BackgroundCheck.check_type == check_type,
            BackgroundCheck.status.in_(ACTIVE_STATUSES),
        )
        .order_by(BackgroundCheck.requested_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()
