"""
Background Check Webhook Handler
================================

Processes inbound provider callbacks of the form::

    {"externalId": "...", "status": "<provider vocabulary>", "results": {...}}

with:
- Payload validation (pydantic); malformed bodies are rejected
- Lookup by ``(provider, externalId)``; unknown references are rejected
- Status normalisation through the provider's own adapter
- Idempotent application: re-delivery of an already applied status is
  acknowledged without touching the record or re-sending notifications

Authenticity (signatures / shared secrets) is enforced by the transport
layer in front of this service. Rejected deliveries are logged at WARNING
for manual investigation and never mutate a record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from screening.integrations.providers import CheckResults, StatusUpdate
from screening.models import BackgroundCheck, CheckStatus
from screening.services.backgroundCheckIntegration import ProviderRegistry
from screening.services.notificationService import NotificationDispatcher
from screening.services.statusReconciler import apply_status_update
from screening.services.volunteerDirectory import VolunteerDirectory

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class MalformedWebhookError(Exception):
    """The webhook body does not match the expected shape."""


class UnknownExternalIdError(Exception):
    """No background check matches the webhook's provider reference."""


# ---------------------------------------------------------------------------
# Payload / result
# ---------------------------------------------------------------------------

class WebhookPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    external_id: str = Field(..., alias="externalId", min_length=1, max_length=100)
    status: str = Field(..., min_length=1, max_length=50)
    results: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class WebhookResult:
    """Result of processing a webhook delivery."""
    check_id: Any
    external_id: str
    status: CheckStatus
    processed: bool
    message: str


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_webhook_payload(payload: Any) -> WebhookPayload:
    """Validate a raw webhook body.

    Raises:
        MalformedWebhookError: If required fields are missing or mistyped.
    """
    try:
        if isinstance(payload, (bytes, str)):
            return WebhookPayload.model_validate_json(payload)
        return WebhookPayload.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Rejected malformed background check webhook: %s", exc)
        raise MalformedWebhookError(f"Malformed webhook payload: {exc.error_count()} error(s)") from exc


async def handle_webhook(
    db: AsyncSession,
    payload: Any,
    registry: ProviderRegistry,
    *,
    provider: Optional[str] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    directory: Optional[VolunteerDirectory] = None,
) -> WebhookResult:
    """Apply a provider status callback to the matching background check.

    Raises:
        MalformedWebhookError: Invalid payload.
        UnknownExternalIdError: No record for ``(provider, externalId)``.
    """
    data = parse_webhook_payload(payload)
    check = await _find_check(db, data.external_id, provider)

    if registry.has_provider(check.provider):
        adapter = registry.adapter_for(check.provider)
    else:
        adapter = registry.simulation
    status = adapter.normalize_status(data.status, data.results)
    results = CheckResults.from_dict(data.results) if data.results else None

    update = StatusUpdate(
        status=status,
        results=results,
        completed_at=results.completed_date if results else None,
    )

    if status == check.status:
        logger.info(
            "Duplicate webhook for check %s (status %s); nothing to do",
            check.id,
            status.value,
        )
        return WebhookResult(
            check_id=check.id,
            external_id=data.external_id,
            status=check.status,
            processed=False,
            message=f"Status already {status.value}",
        )

    changed = await apply_status_update(
        db,
        check,
        update,
        registry,
        source=f"{check.provider} webhook",
        dispatcher=dispatcher,
        directory=directory,
    )
    if not changed:
        logger.warning(
            "Webhook for check %s rejected: %s -> %s is not allowed",
            check.id,
            check.status.value,
            status.value,
        )
        return WebhookResult(
            check_id=check.id,
            external_id=data.external_id,
            status=check.status,
            processed=False,
            message=f"Transition {check.status.value} -> {status.value} not allowed",
        )

    return WebhookResult(
        check_id=check.id,
        external_id=data.external_id,
        status=check.status,
        processed=True,
        message=f"Status updated to {check.status.value}",
    )


async def _find_check(
    db: AsyncSession,
    external_id: str,
    provider: Optional[str],
) -> BackgroundCheck:
    stmt = select(BackgroundCheck).where(BackgroundCheck.external_id == external_id)
    if provider is not None:
        stmt = stmt.where(BackgroundCheck.provider == provider)
    result = await db.execute(stmt.limit(2).with_for_update())
    matches = result.scalars().all()

    if not matches:
        logger.warning(
            "Rejected webhook for unknown reference: provider=%s, external_id=%s",
            provider,
            external_id,
        )
        raise UnknownExternalIdError(
            f"No background check for provider={provider}, external_id={external_id}"
        )
    if len(matches) > 1:
        logger.warning("Ambiguous webhook reference %s without a provider", external_id)
        raise MalformedWebhookError(
            f"External id {external_id} is ambiguous; the provider must be specified"
        )
    return matches[0]
