"""
Background Check API routes
===========================

Endpoints for the background check lifecycle:

  POST /api/v1/background-checks                                  -- Request a check
  GET  /api/v1/background-checks/expiring?days=30                 -- Upcoming expirations
  GET  /api/v1/background-checks/volunteers/{volunteer_id}        -- Volunteer history
  GET  /api/v1/background-checks/requirements/{opportunity_id}    -- Opportunity requirements
  POST /api/v1/background-checks/validate                         -- Validate a placement
  GET  /api/v1/background-checks/{check_id}                       -- Single check
  POST /api/v1/background-checks/{check_id}/refresh               -- Poll the provider
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, HTTPException, Query, status

from screening.api.deps import DBSession, Directory, Dispatcher, Registry
from screening.api.schemas.checks import (
    BackgroundCheckCreate,
    BackgroundCheckOut,
    RequirementOut,
    ValidateRequest,
    ValidationResultOut,
)
from screening.integrations.providers import InvalidCandidateDataError
from screening.services.backgroundCheckIntegration import NoActiveProviderError
from screening.services.backgroundCheckService import (
    DuplicateRequestError,
    VolunteerNotFoundError,
    get_check,
    list_expiring_checks,
    list_volunteer_checks,
    request_check,
)
from screening.services.requirementValidator import get_requirements, validate
from screening.services.statusReconciler import BackgroundCheckNotFoundError, refresh_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/background-checks", tags=["Background Checks"])


# ---------------------------------------------------------------------------
# POST /api/v1/background-checks
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=BackgroundCheckOut,
    status_code=status.HTTP_201_CREATED,
    summary="Request a background check",
    description=(
        "Create a background check for a volunteer and submit it to the "
        "resolved provider.  If the volunteer already has an active check "
        "of the same type, that record is returned instead."
    ),
)
async def request_check_route(
    body: BackgroundCheckCreate,
    db: DBSession,
    registry: Registry,
    directory: Directory,
) -> BackgroundCheckOut:
    try:
        check = await request_check(
            db,
            body.volunteer_id,
            body.check_type,
            registry,
            provider_id=body.provider_id,
            directory=directory,
        )
    except VolunteerNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except NoActiveProviderError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    except DuplicateRequestError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except InvalidCandidateDataError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "fields": exc.fields},
        )

    return BackgroundCheckOut.model_validate(check)


# ---------------------------------------------------------------------------
# GET /api/v1/background-checks/expiring
# ---------------------------------------------------------------------------

@router.get(
    "/expiring",
    response_model=list[BackgroundCheckOut],
    summary="List approved checks expiring soon",
)
async def list_expiring_route(
    db: DBSession,
    days: int = Query(default=30, ge=1, le=365, description="Look-ahead window in days"),
) -> list[BackgroundCheckOut]:
    checks = await list_expiring_checks(db, days_ahead=days)
    return [BackgroundCheckOut.model_validate(c) for c in checks]


# ---------------------------------------------------------------------------
# GET /api/v1/background-checks/volunteers/{volunteer_id}
# ---------------------------------------------------------------------------

@router.get(
    "/volunteers/{volunteer_id}",
    response_model=list[BackgroundCheckOut],
    summary="List a volunteer's background checks",
)
async def list_volunteer_checks_route(
    volunteer_id: uuid.UUID,
    db: DBSession,
) -> list[BackgroundCheckOut]:
    checks = await list_volunteer_checks(db, volunteer_id)
    return [BackgroundCheckOut.model_validate(c) for c in checks]


# ---------------------------------------------------------------------------
# GET /api/v1/background-checks/requirements/{opportunity_id}
# ---------------------------------------------------------------------------

@router.get(
    "/requirements/{opportunity_id}",
    response_model=list[RequirementOut],
    summary="List an opportunity's background check requirements",
)
async def get_requirements_route(
    opportunity_id: uuid.UUID,
    db: DBSession,
) -> list[RequirementOut]:
    requirements = await get_requirements(db, opportunity_id)
    return [RequirementOut.model_validate(r) for r in requirements]


# ---------------------------------------------------------------------------
# POST /api/v1/background-checks/validate
# ---------------------------------------------------------------------------

@router.post(
    "/validate",
    response_model=ValidationResultOut,
    summary="Validate a volunteer against an opportunity",
    description=(
        "Returns whether the volunteer holds every required, unexpired "
        "background check.  Checks inside the grace period produce warnings "
        "but do not affect validity."
    ),
)
async def validate_route(
    body: ValidateRequest,
    db: DBSession,
) -> ValidationResultOut:
    result = await validate(db, body.volunteer_id, body.opportunity_id)
    return ValidationResultOut.model_validate(result)


# ---------------------------------------------------------------------------
# GET /api/v1/background-checks/{check_id}
# ---------------------------------------------------------------------------

@router.get(
    "/{check_id}",
    response_model=BackgroundCheckOut,
    summary="Get a background check",
)
async def get_check_route(
    check_id: uuid.UUID,
    db: DBSession,
) -> BackgroundCheckOut:
    try:
        check = await get_check(db, check_id)
    except BackgroundCheckNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return BackgroundCheckOut.model_validate(check)


# ---------------------------------------------------------------------------
# POST /api/v1/background-checks/{check_id}/refresh
# ---------------------------------------------------------------------------

@router.post(
    "/{check_id}/refresh",
    response_model=BackgroundCheckOut,
    summary="Refresh a background check from its provider",
)
async def refresh_check_route(
    check_id: uuid.UUID,
    db: DBSession,
    registry: Registry,
    dispatcher: Dispatcher,
    directory: Directory,
) -> BackgroundCheckOut:
    try:
        check = await refresh_status(
            db,
            check_id,
            registry,
            dispatcher=dispatcher,
            directory=directory,
        )
    except BackgroundCheckNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return BackgroundCheckOut.model_validate(check)
