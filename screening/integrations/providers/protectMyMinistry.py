"""
Protect My Ministry background check adapter.

Orders are placed against a package; status moves through
Received -> In Progress -> Complete (or Cancelled), and completed orders
carry a Pass / Fail / Review decision.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from screening.models import CheckStatus, CheckType

from .base import (
    AdapterKind,
    CandidateProfile,
    CheckFinding,
    CheckResults,
    ProviderError,
    StatusUpdate,
    SubmissionResult,
    parse_datetime,
)
from .httpTransport import HttpProviderAdapter

logger = logging.getLogger(__name__)

_ORDER_STATUS_MAP: dict[str, CheckStatus] = {
    "received": CheckStatus.PENDING,
    "in progress": CheckStatus.IN_PROGRESS,
    "cancelled": CheckStatus.REQUIRES_REVIEW,
}

_DECISION_MAP: dict[str, CheckStatus] = {
    "pass": CheckStatus.APPROVED,
    "fail": CheckStatus.REJECTED,
    "review": CheckStatus.REQUIRES_REVIEW,
}


class ProtectMyMinistryAdapter(HttpProviderAdapter):
    """Adapter for the Protect My Ministry ordering API."""

    kind = AdapterKind.PROTECT_MY_MINISTRY
    default_base_url = "https://api.protectmyministry.com/v1"
    default_packages = {
        CheckType.BASIC: "PMM-BASIC",
        CheckType.COMPREHENSIVE: "PMM-COMPREHENSIVE",
        CheckType.CHILD_PROTECTION: "PMM-CHILDSAFE",
        CheckType.YOUTH_WORKER: "PMM-YOUTH",
        CheckType.FINANCIAL: "PMM-FINANCIAL",
    }

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.profile.api_key:
            headers["X-API-Key"] = self.profile.api_key
        return headers

    def normalize_status(
        self,
        native_status: str,
        results: Optional[dict[str, Any]] = None,
    ) -> CheckStatus:
        status = (native_status or "").strip().lower().replace("_", " ")
        if status in {"complete", "completed"}:
            decision = str((results or {}).get("decision", "")).strip().lower()
            return _DECISION_MAP.get(decision, CheckStatus.REQUIRES_REVIEW)
        if status in _DECISION_MAP:
            return _DECISION_MAP[status]
        if status == "requires review":
            return CheckStatus.REQUIRES_REVIEW
        if status in {"approved", "rejected", "pending"}:
            return CheckStatus(status)
        mapped = _ORDER_STATUS_MAP.get(status)
        if mapped is None:
            logger.warning("Unknown Protect My Ministry status %r, flagging for review", native_status)
            return CheckStatus.REQUIRES_REVIEW
        return mapped

    def _parse(self, data: dict[str, Any]) -> StatusUpdate:
        status = self.normalize_status(str(data.get("status", "")), data)
        if not status.is_terminal and status != CheckStatus.REQUIRES_REVIEW:
            return StatusUpdate(status=status)
        completed_at = parse_datetime(data["completedOn"]) if data.get("completedOn") else None
        results = CheckResults(
            overall_status=status,
            findings=[CheckFinding.from_dict(f) for f in data.get("findings") or []],
            completed_date=completed_at,
            summary=data.get("decisionNotes"),
        )
        return StatusUpdate(status=status, results=results, completed_at=completed_at)

    async def submit(self, candidate: CandidateProfile, check_type: CheckType) -> SubmissionResult:
        body: dict[str, Any] = {
            "package": self.package_for(check_type),
            "applicant": {
                "email": candidate.email,
                "firstName": candidate.first_name,
                "lastName": candidate.last_name,
                "dateOfBirth": candidate.birth_date.isoformat(),
                "phone": candidate.phone,
                "street": candidate.address_line_1,
                "city": candidate.city,
                "state": candidate.state,
                "zip": candidate.postal_code,
            },
        }
        if self._callback_url:
            body["callbackUrl"] = self._callback_url

        data = await self._request("POST", "/orders", json_body=body)
        order_id = data.get("orderId")
        if not order_id:
            raise ProviderError(
                "Protect My Ministry response is missing orderId",
                provider=self.profile.name,
                raw=data,
            )
        update = self._parse(data)
        logger.info("Protect My Ministry order %s placed (%s)", order_id, update.status.value)
        return SubmissionResult(
            external_id=str(order_id),
            status=update.status,
            results=update.results,
            candidate_url=data.get("applicantUrl"),
            completed_at=update.completed_at,
        )

    async def check_status(
        self,
        external_id: str,
        *,
        requested_at: Optional[datetime] = None,
    ) -> StatusUpdate:
        data = await self._request("GET", f"/orders/{external_id}")
        return self._parse(data)
