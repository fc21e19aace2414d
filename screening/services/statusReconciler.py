"""
Status Reconciler
=================

Brings stored background checks in line with what the provider reports,
either by polling the provider adapter (``refresh_status``) or by applying
an update that arrived through a webhook.

Rules applied to every incoming status:

1. Same status as stored -> no-op (no event, no notification).
2. Transition not allowed by the state machine -> logged, record untouched.
3. Otherwise update ``status``/``results``/``completed_at``, append a
   ``status_changed`` event, and for ``approved`` compute ``expires_at``
   from the provider's validity window.

When a real provider cannot be reached, the simulation adapter's
elapsed-time heuristic stands in and a ``status_synthesized`` event records
that the status was not retrieved from the provider.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from screening.core.config import settings
from screening.integrations.providers import (
    InvalidCandidateDataError,
    ProviderError,
    StatusUpdate,
)
from screening.models import BackgroundCheck, CheckEventKind, CheckStatus
from screening.services.backgroundCheckIntegration import (
    ProviderConfigurationError,
    ProviderRegistry,
)
from screening.services.checkStateManager import ActorType, validate_transition
from screening.services.notificationService import (
    NotificationDispatcher,
    NotificationKind,
    dispatch_safely,
)
from screening.services.volunteerDirectory import VolunteerDirectory

logger = logging.getLogger(__name__)


class BackgroundCheckNotFoundError(Exception):
    """No background check exists with the given id."""


# ---------------------------------------------------------------------------
# Pure update logic
# ---------------------------------------------------------------------------

def validity_days_for(registry: ProviderRegistry, provider_name: str) -> int:
    """Validity window for approvals from ``provider_name``."""
    if registry.has_provider(provider_name):
        override = registry.get_profile(provider_name).validity_days
        if override:
            return override
    return settings.background_check_validity_days


def apply_update_to_check(
    check: BackgroundCheck,
    update: StatusUpdate,
    *,
    validity_days: int,
    source: str,
    actor_type: ActorType = ActorType.PROVIDER,
    now: Optional[datetime] = None,
) -> bool:
    """Apply ``update`` to ``check`` in memory.

    Returns:
        True if the stored status changed.
    """
    if update.status == check.status:
        return False

    transition = validate_transition(check.status, update.status, actor_type)
    if not transition.allowed:
        logger.warning(
            "Ignoring %s update for check %s: %s",
            source,
            check.id,
            transition.reason,
        )
        return False

    now = now or datetime.now(timezone.utc)
    previous = check.status
    check.status = update.status

    if update.results is not None:
        check.results = update.results.to_dict()

    if update.status in (CheckStatus.APPROVED, CheckStatus.REJECTED):
        check.completed_at = update.completed_at or now
    if update.status == CheckStatus.APPROVED:
        check.expires_at = check.completed_at + timedelta(days=validity_days)

    check.record_event(
        CheckEventKind.STATUS_CHANGED,
        f"Status changed from {previous.value} to {update.status.value} via {source}",
        at=now,
        previous=previous.value,
        status=update.status.value,
        source=source,
        simulated=bool(update.results and update.results.simulated),
    )
    logger.info(
        "Background check %s: %s -> %s (%s)",
        check.id,
        previous.value,
        update.status.value,
        source,
    )
    return True


# ---------------------------------------------------------------------------
# Persistence-aware helpers
# ---------------------------------------------------------------------------

async def get_check_for_update(db: AsyncSession, check_id: uuid.UUID) -> BackgroundCheck:
    """Load a check with a row lock so concurrent writers serialise."""
    result = await db.execute(
        select(BackgroundCheck).where(BackgroundCheck.id == check_id).with_for_update()
    )
    check = result.scalar_one_or_none()
    if check is None:
        raise BackgroundCheckNotFoundError(f"Background check not found: {check_id}")
    return check


async def apply_status_update(
    db: AsyncSession,
    check: BackgroundCheck,
    update: StatusUpdate,
    registry: ProviderRegistry,
    *,
    source: str,
    dispatcher: Optional[NotificationDispatcher] = None,
    directory: Optional[VolunteerDirectory] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Apply, flush and notify. Returns True if the status changed."""
    changed = apply_update_to_check(
        check,
        update,
        validity_days=validity_days_for(registry, check.provider),
        source=source,
        now=now,
    )
    if not changed:
        return False

    await db.flush()

    if dispatcher is not None and directory is not None:
        contact = await directory.get_volunteer(check.volunteer_id)
        if contact is None:
            logger.warning(
                "Volunteer %s not found; skipping status notification for check %s",
                check.volunteer_id,
                check.id,
            )
        else:
            await dispatch_safely(
                dispatcher,
                contact.as_recipient(),
                NotificationKind.STATUS_CHANGED,
                check.check_type,
                status=check.status,
            )
    return True


def _record_synthesis(
    check: BackgroundCheck,
    update: StatusUpdate,
    failure: Exception,
    now: datetime,
) -> None:
    """Append a ``status_synthesized`` event unless it would repeat the last one.

    During a long outage the daily poll keeps failing with the same outcome;
    only the first failure and any change of synthesized status are recorded.
    """
    events = check.events or []
    if (
        update.status == check.status
        and events
        and events[-1].get("kind") == CheckEventKind.STATUS_SYNTHESIZED.value
    ):
        return
    check.record_event(
        CheckEventKind.STATUS_SYNTHESIZED,
        f"Provider status unavailable ({type(failure).__name__}: {failure}); "
        f"synthesized {update.status.value}",
        at=now,
        error=type(failure).__name__,
        message=str(failure),
        status=update.status.value,
    )


async def refresh_status(
    db: AsyncSession,
    check_id: uuid.UUID,
    registry: ProviderRegistry,
    *,
    dispatcher: Optional[NotificationDispatcher] = None,
    directory: Optional[VolunteerDirectory] = None,
    now: Optional[datetime] = None,
) -> BackgroundCheck:
    """Poll the provider for a check's current status and apply it.

    Terminal records are returned unchanged. Records already in degraded
    mode are driven by the simulation adapter directly. The same heuristic
    stands in when the provider cannot answer the poll or is no longer
    configured.

    Raises:
        BackgroundCheckNotFoundError: If ``check_id`` is unknown.
    """
    check = await get_check_for_update(db, check_id)
    if check.status.is_terminal:
        return check

    now = now or datetime.now(timezone.utc)
    simulation = registry.simulation

    if check.is_simulated:
        update = await simulation.check_status(
            check.external_id or "", requested_at=check.requested_at, now=now
        )
        source = "simulation"
    elif not check.external_id:
        logger.info("Check %s has no provider reference to poll", check.id)
        return check
    else:
        failure: Optional[Exception] = None
        if not registry.has_provider(check.provider):
            failure = ProviderConfigurationError(
                f"No adapter registered for provider: {check.provider}"
            )
        else:
            adapter = registry.adapter_for(check.provider)
            try:
                update = await adapter.check_status(
                    check.external_id, requested_at=check.requested_at
                )
                source = f"{check.provider} poll"
            except (ProviderError, InvalidCandidateDataError) as exc:
                failure = exc

        if failure is not None:
            update = await simulation.check_status(
                check.external_id, requested_at=check.requested_at, now=now
            )
            source = "synthesized"
            _record_synthesis(check, update, failure, now)
            logger.warning(
                "Status for check %s synthesized as %s; %s unavailable: %s",
                check.id,
                update.status.value,
                check.provider,
                failure,
            )

    changed = await apply_status_update(
        db,
        check,
        update,
        registry,
        source=source,
        dispatcher=dispatcher,
        directory=directory,
        now=now,
    )
    if not changed:
        await db.flush()
    return check
