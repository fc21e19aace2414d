"""
Simulation adapter: degraded-mode stand-in for a real provider.

Not a real integration. ``submit`` returns ``in_progress`` immediately with
a ``SIM-`` correlation id. ``check_status`` derives the outcome from the
time elapsed since the request: once ``simulation_approval_days`` have passed
it reports a synthetic, clearly flagged result, otherwise ``in_progress``.

Whether that synthetic outcome is ``approved`` or ``requires_review`` is
governed by ``fallback_auto_approve``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from screening.core.config import settings
from screening.models import CheckStatus, CheckType

from .base import (
    PROVIDER_STATUSES,
    AdapterKind,
    CandidateProfile,
    CheckResults,
    StatusUpdate,
    SubmissionResult,
)

logger = logging.getLogger(__name__)

SIMULATED_ID_PREFIX = "SIM-"


class SimulationAdapter:
    """Elapsed-time heuristic used when a real provider cannot be reached."""

    kind = AdapterKind.SIMULATION

    def __init__(
        self,
        *,
        approval_days: Optional[int] = None,
        auto_approve: Optional[bool] = None,
    ) -> None:
        self.approval_days = (
            approval_days if approval_days is not None else settings.simulation_approval_days
        )
        self.auto_approve = (
            auto_approve if auto_approve is not None else settings.fallback_auto_approve
        )

    @property
    def outcome(self) -> CheckStatus:
        return CheckStatus.APPROVED if self.auto_approve else CheckStatus.REQUIRES_REVIEW

    def normalize_status(
        self,
        native_status: str,
        results: Optional[dict[str, Any]] = None,
    ) -> CheckStatus:
        try:
            status = CheckStatus((native_status or "").strip().lower())
        except ValueError:
            return CheckStatus.REQUIRES_REVIEW
        return status if status in PROVIDER_STATUSES else CheckStatus.REQUIRES_REVIEW

    async def submit(self, candidate: CandidateProfile, check_type: CheckType) -> SubmissionResult:
        external_id = f"{SIMULATED_ID_PREFIX}{uuid.uuid4().hex[:16].upper()}"
        logger.info(
            "Simulated %s check %s for %s",
            check_type.value,
            external_id,
            candidate.email,
        )
        return SubmissionResult(external_id=external_id, status=CheckStatus.IN_PROGRESS)

    async def check_status(
        self,
        external_id: str,
        *,
        requested_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> StatusUpdate:
        now = now or datetime.now(timezone.utc)
        if requested_at is None or now - requested_at <= timedelta(days=self.approval_days):
            return StatusUpdate(status=CheckStatus.IN_PROGRESS)

        outcome = self.outcome
        results = CheckResults(
            overall_status=outcome,
            findings=[],
            completed_date=now,
            summary=(
                f"Synthesized after {self.approval_days} days without a provider "
                f"response ({external_id})"
            ),
            simulated=True,
        )
        return StatusUpdate(status=outcome, results=results, completed_at=now)
