"""
Checkr background check adapter.

Checkr uses HTTP Basic auth with the API key as the username and a blank
password. Submission is a two-step flow: create a candidate, then a hosted
invitation for the requested package. The invitation id is our correlation
id; once the candidate completes the invitation, Checkr attaches a report
and the report's ``result``/``adjudication`` carry the decision.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from screening.models import CheckStatus, CheckType

from .base import (
    AdapterKind,
    CandidateProfile,
    CheckResults,
    ProviderError,
    StatusUpdate,
    SubmissionResult,
    parse_datetime,
)
from .httpTransport import HttpProviderAdapter

logger = logging.getLogger(__name__)

# Checkr invitation/report/result/adjudication vocabulary -> canonical status
_STATUS_MAP: dict[str, CheckStatus] = {
    "pending": CheckStatus.PENDING,
    "in_progress": CheckStatus.IN_PROGRESS,
    "clear": CheckStatus.APPROVED,
    "engaged": CheckStatus.APPROVED,
    "consider": CheckStatus.REQUIRES_REVIEW,
    "pre_adverse_action": CheckStatus.REQUIRES_REVIEW,
    "suspended": CheckStatus.REQUIRES_REVIEW,
    "dispute": CheckStatus.REQUIRES_REVIEW,
    "canceled": CheckStatus.REQUIRES_REVIEW,
    "expired": CheckStatus.REQUIRES_REVIEW,
    "adverse": CheckStatus.REJECTED,
    "post_adverse_action": CheckStatus.REJECTED,
}


class CheckrAdapter(HttpProviderAdapter):
    """Adapter for the Checkr REST API."""

    kind = AdapterKind.CHECKR
    default_base_url = "https://api.checkr.com/v1"
    default_packages = {
        CheckType.BASIC: "tasker_standard",
        CheckType.COMPREHENSIVE: "driver_pro",
        CheckType.CHILD_PROTECTION: "essential_criminal",
        CheckType.YOUTH_WORKER: "essential_criminal",
        CheckType.FINANCIAL: "pro_criminal_credit",
    }

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def _auth(self) -> Optional[httpx.Auth]:
        return httpx.BasicAuth(self.profile.api_key or "", "")

    def normalize_status(
        self,
        native_status: str,
        results: Optional[dict[str, Any]] = None,
    ) -> CheckStatus:
        status = (native_status or "").strip().lower()
        if status in {"complete", "completed"}:
            # The adjudication overrides the raw screening result
            decision = (results or {}).get("adjudication") or (results or {}).get("result")
            if not decision:
                return CheckStatus.REQUIRES_REVIEW
            status = str(decision).lower()
        if status in {"approved", "rejected", "requires_review"}:
            return CheckStatus(status)
        mapped = _STATUS_MAP.get(status)
        if mapped is None:
            logger.warning("Unknown Checkr status %r, flagging for review", native_status)
            return CheckStatus.REQUIRES_REVIEW
        return mapped

    async def submit(self, candidate: CandidateProfile, check_type: CheckType) -> SubmissionResult:
        package = self.package_for(check_type)
        candidate_body = {
            key: value
            for key, value in {
                "email": candidate.email,
                "first_name": candidate.first_name,
                "last_name": candidate.last_name,
                "dob": candidate.birth_date.isoformat(),
                "phone": candidate.phone,
                "zipcode": candidate.postal_code,
            }.items()
            if value is not None
        }
        created = await self._request("POST", "/candidates", json_body=candidate_body)
        candidate_id = created.get("id")
        if not candidate_id:
            raise ProviderError(
                "Checkr candidate response is missing id",
                provider=self.profile.name,
                raw=created,
            )

        invitation_body: dict[str, Any] = {"candidate_id": candidate_id, "package": package}
        if candidate.state:
            invitation_body["work_locations"] = [
                {"country": candidate.country or "US", "state": candidate.state}
            ]
        invitation = await self._request("POST", "/invitations", json_body=invitation_body)
        invitation_id = invitation.get("id")
        if not invitation_id:
            raise ProviderError(
                "Checkr invitation response is missing id",
                provider=self.profile.name,
                raw=invitation,
            )

        logger.info(
            "Checkr invitation %s created for candidate %s (package %s)",
            invitation_id,
            candidate_id,
            package,
        )
        return SubmissionResult(
            external_id=str(invitation_id),
            status=self.normalize_status(str(invitation.get("status", "pending"))),
            candidate_url=invitation.get("invitation_url"),
        )

    async def check_status(
        self,
        external_id: str,
        *,
        requested_at: Optional[datetime] = None,
    ) -> StatusUpdate:
        invitation = await self._request("GET", f"/invitations/{external_id}")
        invitation_status = str(invitation.get("status", "pending")).lower()
        report_id = invitation.get("report_id")
        if invitation_status != "completed" or not report_id:
            return StatusUpdate(status=self.normalize_status(invitation_status))

        report = await self._request("GET", f"/reports/{report_id}")
        report_status = str(report.get("status", "pending")).lower()
        if report_status == "pending":
            return StatusUpdate(status=CheckStatus.IN_PROGRESS)

        status = self.normalize_status(report_status, report)
        completed_at = parse_datetime(report["completed_at"]) if report.get("completed_at") else None
        results = CheckResults(
            overall_status=status,
            completed_date=completed_at,
            summary=(
                f"Checkr report {report_id}: result={report.get('result')}, "
                f"adjudication={report.get('adjudication')}"
            ),
        )
        return StatusUpdate(status=status, results=results, completed_at=completed_at)
