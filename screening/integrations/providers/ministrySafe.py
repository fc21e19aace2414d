"""
MinistrySafe background check adapter.

Wire format::

    POST /background_checks
        {"candidate": {...}, "packageCode": "...", "callbackUrl": "..."}
    GET  /background_checks/{requestId}

    -> {"requestId": "...",
        "status": "pending" | "in_progress" | "processing" | "completed" | "failed",
        "candidateUrl": "...",
        "results": {"overallStatus": "approved" | "rejected" | "requires_review",
                    "findings": [...], "completedDate": "..."}}
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from screening.models import CheckStatus, CheckType

from .base import (
    AdapterKind,
    CandidateProfile,
    CheckResults,
    ProviderError,
    StatusUpdate,
    SubmissionResult,
)
from .httpTransport import HttpProviderAdapter

logger = logging.getLogger(__name__)

_STATUS_MAP: dict[str, CheckStatus] = {
    "pending": CheckStatus.PENDING,
    "in_progress": CheckStatus.IN_PROGRESS,
    "processing": CheckStatus.IN_PROGRESS,
    # Provider could not complete the search; a human has to follow up
    "failed": CheckStatus.REQUIRES_REVIEW,
}


class MinistrySafeAdapter(HttpProviderAdapter):
    """Adapter for the MinistrySafe screening API."""

    kind = AdapterKind.MINISTRY_SAFE
    default_base_url = "https://safetysystem.ministrysafe.com/api/v2"
    default_packages = {
        CheckType.BASIC: "standard",
        CheckType.COMPREHENSIVE: "comprehensive",
        CheckType.CHILD_PROTECTION: "child_safe",
        CheckType.YOUTH_WORKER: "youth_worker",
        CheckType.FINANCIAL: "financial_trust",
    }

    def normalize_status(
        self,
        native_status: str,
        results: Optional[dict[str, Any]] = None,
    ) -> CheckStatus:
        status = (native_status or "").strip().lower()
        if status == "completed":
            overall = (results or {}).get("overallStatus") or (results or {}).get("overall_status")
            try:
                return CheckStatus(str(overall).lower())
            except ValueError:
                logger.warning(
                    "MinistrySafe completed check without a usable overallStatus: %r",
                    overall,
                )
                return CheckStatus.REQUIRES_REVIEW
        # Already canonical (e.g. webhook relays that pre-map values)
        if status in {"approved", "rejected", "requires_review"}:
            return CheckStatus(status)
        mapped = _STATUS_MAP.get(status)
        if mapped is None:
            logger.warning("Unknown MinistrySafe status %r, flagging for review", native_status)
            return CheckStatus.REQUIRES_REVIEW
        return mapped

    def _parse(self, data: dict[str, Any]) -> tuple[CheckStatus, Optional[CheckResults]]:
        raw_results = data.get("results")
        status = self.normalize_status(str(data.get("status", "")), raw_results)
        results = CheckResults.from_dict(raw_results) if isinstance(raw_results, dict) else None
        return status, results

    async def submit(self, candidate: CandidateProfile, check_type: CheckType) -> SubmissionResult:
        body: dict[str, Any] = {
            "candidate": {
                "email": candidate.email,
                "firstName": candidate.first_name,
                "lastName": candidate.last_name,
                "birthDate": candidate.birth_date.isoformat(),
                "phone": candidate.phone,
                "address": {
                    "line1": candidate.address_line_1,
                    "city": candidate.city,
                    "state": candidate.state,
                    "postalCode": candidate.postal_code,
                    "country": candidate.country,
                },
            },
            "packageCode": self.package_for(check_type),
        }
        if self._callback_url:
            body["callbackUrl"] = self._callback_url

        data = await self._request("POST", "/background_checks", json_body=body)
        external_id = data.get("requestId")
        if not external_id:
            raise ProviderError(
                "MinistrySafe response is missing requestId",
                provider=self.profile.name,
                raw=data,
            )
        status, results = self._parse(data)
        logger.info(
            "MinistrySafe accepted %s check %s with status %s",
            check_type.value,
            external_id,
            status.value,
        )
        return SubmissionResult(
            external_id=str(external_id),
            status=status,
            results=results,
            candidate_url=data.get("candidateUrl"),
            completed_at=results.completed_date if results else None,
        )

    async def check_status(
        self,
        external_id: str,
        *,
        requested_at: Optional[datetime] = None,
    ) -> StatusUpdate:
        data = await self._request("GET", f"/background_checks/{external_id}")
        status, results = self._parse(data)
        return StatusUpdate(
            status=status,
            results=results,
            completed_at=results.completed_date if results else None,
        )
