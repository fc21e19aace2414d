"""
Provider webhook routes
=======================

  POST /api/v1/webhooks/background-checks/{provider}

Providers call back with ``{externalId, status, results}``. Signature or
shared-secret verification is done by the ingress in front of this service.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from screening.api.deps import DBSession, Directory, Dispatcher, Registry
from screening.api.schemas.checks import WebhookAckOut
from screening.services.webhookHandler import (
    MalformedWebhookError,
    UnknownExternalIdError,
    handle_webhook,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post(
    "/background-checks/{provider}",
    response_model=WebhookAckOut,
    summary="Receive a provider status callback",
    description=(
        "Applies a provider status update to the matching background check. "
        "Re-delivery of an already applied status is acknowledged with "
        "processed=false and has no effect."
    ),
)
async def background_check_webhook(
    provider: str,
    request: Request,
    db: DBSession,
    registry: Registry,
    dispatcher: Dispatcher,
    directory: Directory,
) -> WebhookAckOut:
    payload = await request.body()

    try:
        result = await handle_webhook(
            db,
            payload,
            registry,
            provider=provider,
            dispatcher=dispatcher,
            directory=directory,
        )
    except MalformedWebhookError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except UnknownExternalIdError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    logger.info(
        "Webhook from %s for %s: processed=%s (%s)",
        provider,
        result.external_id,
        result.processed,
        result.message,
    )
    return WebhookAckOut.model_validate(result)
