"""
Background Check Renewal Scheduler -- Daily Scheduled Job.

This module provides a daily batch job that:

1. Refreshes ``pending`` / ``in_progress`` checks from their providers on a
   bounded worker pool (one session per record).
2. Flags checks with no provider response for ``stale_check_days`` as
   ``requires_review`` so a human can follow up.
3. Expires approved checks past their ``expires_at`` and sends one
   "expired" notification.
4. Sends "expiring" reminders when an approved check is exactly 30, 14, 7
   or 1 days from expiry. Each threshold fires once per record; the
   ``reminder_sent`` audit event is the deduplication key.

Intended to run once per day via cron or a similar scheduler::

    python -m screening.jobs.renewalScheduler
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from screening.core.config import settings
from screening.models import BackgroundCheck, CheckEventKind, CheckStatus
from screening.services.backgroundCheckIntegration import ProviderRegistry
from screening.services.checkStateManager import (
    ActorType,
    InvalidTransitionError,
    ensure_transition,
    validate_transition,
)
from screening.services.notificationService import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationKind,
    dispatch_safely,
)
from screening.services.statusReconciler import refresh_status
from screening.services.volunteerDirectory import SqlVolunteerDirectory, VolunteerDirectory

logger = logging.getLogger(__name__)

# Events that count as a provider response for the staleness sweep
_RESPONSE_EVENTS = {
    CheckEventKind.SUBMITTED.value,
    CheckEventKind.STATUS_CHANGED.value,
}


@dataclass
class RenewalRunResult:
    """Counters for one scheduler run."""
    processed: int = 0
    notifications: int = 0
    expired: int = 0
    stale_flagged: int = 0
    refreshed: int = 0


# ---------------------------------------------------------------------------
# Renewal check
# ---------------------------------------------------------------------------

async def run_renewal_check(
    db: AsyncSession,
    dispatcher: NotificationDispatcher,
    directory: VolunteerDirectory,
    *,
    now: Optional[datetime] = None,
    thresholds: Optional[Iterable[int]] = None,
) -> RenewalRunResult:
    """Expire lapsed approvals and send threshold reminders.

    Args:
        db: Async database session.
        dispatcher: Notification sink.
        directory: Volunteer lookup for recipient contacts.
        now: Reference time (defaults to the current UTC time).
        thresholds: Days-before-expiry at which to remind.

    Returns:
        RenewalRunResult with ``processed``, ``notifications`` and ``expired``.
    """
    now = now or datetime.now(timezone.utc)
    reminder_days = set(thresholds if thresholds is not None else settings.renewal_reminder_days)
    run = RenewalRunResult()

    result = await db.execute(
        select(BackgroundCheck)
        .where(
            BackgroundCheck.status == CheckStatus.APPROVED,
            BackgroundCheck.renewal_reminder.is_(True),
            BackgroundCheck.expires_at.isnot(None),
        )
        .order_by(BackgroundCheck.expires_at)
        .with_for_update(skip_locked=True)
    )
    checks = result.scalars().all()

    for check in checks:
        run.processed += 1

        if check.expires_at <= now:
            try:
                ensure_transition(check.status, CheckStatus.EXPIRED, ActorType.SCHEDULER)
            except InvalidTransitionError as exc:
                logger.warning("Cannot expire check %s: %s", check.id, exc)
                continue
            check.status = CheckStatus.EXPIRED
            check.record_event(
                CheckEventKind.EXPIRED,
                f"Expired on {check.expires_at.date().isoformat()}",
                at=now,
            )
            run.expired += 1
            logger.info("Background check expired: id=%s, volunteer=%s", check.id, check.volunteer_id)
            if await _notify(dispatcher, directory, check, NotificationKind.EXPIRED):
                run.notifications += 1
            continue

        days_left = (check.expires_at.date() - now.date()).days
        if days_left not in reminder_days or _reminder_already_sent(check, days_left):
            continue

        if await _notify(
            dispatcher,
            directory,
            check,
            NotificationKind.EXPIRING,
            days_until_expiration=days_left,
        ):
            check.record_event(
                CheckEventKind.REMINDER_SENT,
                f"Renewal reminder sent {days_left} day{'s' if days_left != 1 else ''} before expiry",
                at=now,
                threshold=days_left,
            )
            run.notifications += 1

    await db.flush()

    logger.info(
        "Renewal check completed: processed=%d, notifications=%d, expired=%d",
        run.processed,
        run.notifications,
        run.expired,
    )
    return run


def _reminder_already_sent(check: BackgroundCheck, threshold: int) -> bool:
    return any(
        (event.get("data") or {}).get("threshold") == threshold
        for event in check.events_of(CheckEventKind.REMINDER_SENT)
    )


async def _notify(
    dispatcher: NotificationDispatcher,
    directory: VolunteerDirectory,
    check: BackgroundCheck,
    kind: NotificationKind,
    days_until_expiration: Optional[int] = None,
) -> bool:
    contact = await directory.get_volunteer(check.volunteer_id)
    if contact is None:
        logger.warning(
            "Volunteer %s not found; %s notification for check %s not sent",
            check.volunteer_id,
            kind.value,
            check.id,
        )
        return False
    return await dispatch_safely(
        dispatcher,
        contact.as_recipient(),
        kind,
        check.check_type,
        days_until_expiration=days_until_expiration,
    )


# ---------------------------------------------------------------------------
# Staleness sweep
# ---------------------------------------------------------------------------

async def flag_stale_checks(
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
    stale_days: Optional[int] = None,
) -> int:
    """Move checks with no provider response for ``stale_days`` to ``requires_review``.

    Nothing is cancelled; the flag only surfaces the record for manual
    follow-up.
    """
    now = now or datetime.now(timezone.utc)
    window = timedelta(days=stale_days if stale_days is not None else settings.stale_check_days)
    cutoff = now - window

    result = await db.execute(
        select(BackgroundCheck)
        .where(
            BackgroundCheck.status.in_((CheckStatus.PENDING, CheckStatus.IN_PROGRESS)),
            BackgroundCheck.requested_at <= cutoff,
        )
        .with_for_update(skip_locked=True)
    )

    flagged = 0
    for check in result.scalars().all():
        last_response = _last_provider_response(check)
        if last_response > cutoff:
            continue
        transition = validate_transition(
            check.status, CheckStatus.REQUIRES_REVIEW, ActorType.SCHEDULER
        )
        if not transition.allowed:
            continue
        previous = check.status
        check.status = CheckStatus.REQUIRES_REVIEW
        check.record_event(
            CheckEventKind.STALE_FLAGGED,
            f"No provider response since {last_response.date().isoformat()}; "
            f"flagged for manual review",
            at=now,
            previous=previous.value,
            last_response=last_response.isoformat(),
        )
        flagged += 1
        logger.warning(
            "Background check %s flagged stale: no provider response since %s",
            check.id,
            last_response.isoformat(),
        )

    await db.flush()
    return flagged


def _last_provider_response(check: BackgroundCheck) -> datetime:
    latest = check.requested_at
    for event in check.events or []:
        if event.get("kind") not in _RESPONSE_EVENTS:
            continue
        try:
            at = datetime.fromisoformat(event["timestamp"])
        except (KeyError, ValueError):
            continue
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        if at > latest:
            latest = at
    return latest


# ---------------------------------------------------------------------------
# In-flight refresh
# ---------------------------------------------------------------------------

async def refresh_in_flight_checks(
    session_factory: async_sessionmaker[AsyncSession],
    registry: ProviderRegistry,
    *,
    dispatcher: Optional[NotificationDispatcher] = None,
    directory_factory: Callable[[AsyncSession], VolunteerDirectory] = SqlVolunteerDirectory,
    now: Optional[datetime] = None,
    concurrency: Optional[int] = None,
) -> int:
    """Refresh every ``pending`` / ``in_progress`` check from its provider.

    Records are independent, so refreshes run concurrently on a bounded
    pool. Each record gets its own session and transaction; a failure on
    one record is logged and does not affect the others.

    Returns:
        Number of records refreshed successfully.
    """
    async with session_factory() as session:
        result = await session.execute(
            select(BackgroundCheck.id).where(
                BackgroundCheck.status.in_((CheckStatus.PENDING, CheckStatus.IN_PROGRESS))
            )
        )
        check_ids: list[uuid.UUID] = list(result.scalars().all())

    semaphore = asyncio.Semaphore(max(concurrency or settings.scheduler_refresh_concurrency, 1))

    async def _refresh_one(check_id: uuid.UUID) -> bool:
        async with semaphore:
            async with session_factory() as session:
                try:
                    await refresh_status(
                        session,
                        check_id,
                        registry,
                        dispatcher=dispatcher,
                        directory=directory_factory(session),
                        now=now,
                    )
                    await session.commit()
                    return True
                except Exception:
                    await session.rollback()
                    logger.exception("Refresh failed for background check %s", check_id)
                    return False

    outcomes = await asyncio.gather(*(_refresh_one(check_id) for check_id in check_ids))
    refreshed = sum(1 for ok in outcomes if ok)
    logger.info("Refreshed %d/%d in-flight background checks", refreshed, len(check_ids))
    return refreshed


# ---------------------------------------------------------------------------
# Main daily job
# ---------------------------------------------------------------------------

async def run_daily_renewal_job(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    registry: Optional[ProviderRegistry] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    now: Optional[datetime] = None,
) -> RenewalRunResult:
    """Execute the full daily workflow: refresh -> stale sweep -> renewal check."""
    now = now or datetime.now(timezone.utc)
    dispatcher = dispatcher or LoggingNotificationDispatcher()

    logger.info("Starting daily renewal job at %s", now.isoformat())

    if registry is None:
        async with session_factory() as session:
            registry = await ProviderRegistry.load(session)

    refreshed = await refresh_in_flight_checks(
        session_factory,
        registry,
        dispatcher=dispatcher,
        now=now,
    )

    async with session_factory() as session:
        try:
            stale = await flag_stale_checks(session, now=now)
            run = await run_renewal_check(
                session,
                dispatcher,
                SqlVolunteerDirectory(session),
                now=now,
            )
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Daily renewal job failed")
            raise

    run.refreshed = refreshed
    run.stale_flagged = stale

    logger.info(
        "Daily renewal job completed: refreshed=%d, stale=%d, processed=%d, "
        "notifications=%d, expired=%d",
        run.refreshed,
        run.stale_flagged,
        run.processed,
        run.notifications,
        run.expired,
    )
    return run


# ---------------------------------------------------------------------------
# CLI entry point (for manual runs / simple cron)
# ---------------------------------------------------------------------------

async def _cli_main() -> None:
    """Entry point for running the renewal job from the command line."""
    from screening.api.deps import async_session_factory, engine

    try:
        result = await run_daily_renewal_job(async_session_factory)
        print(f"Renewal job completed: {result}")  # noqa: T201
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(_cli_main())
