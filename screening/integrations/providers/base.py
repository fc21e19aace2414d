"""
Shared types for background check provider adapters.

Every external screening provider is wrapped in an adapter that satisfies
the ``ProviderAdapter`` protocol, so the orchestration layer can work with
any of them interchangeably:

- ``submit`` translates a generic check type into the provider's package id,
  performs the outbound request and maps the provider's native status
  vocabulary onto the canonical ``CheckStatus`` set.
- ``check_status`` does the same for polling-based reconciliation.
- ``normalize_status`` exposes the vocabulary mapping on its own for
  webhook ingestion.

Adapters never touch the database.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Protocol

from screening.models import CheckStatus, CheckType


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class AdapterKind(str, enum.Enum):
    """Adapter implementations available to provider profiles."""
    MINISTRY_SAFE = "ministrysafe"
    CHECKR = "checkr"
    PROTECT_MY_MINISTRY = "protectmyministry"
    SIMULATION = "simulation"


class FindingSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Statuses an adapter may report; ``expired`` is only ever set internally
PROVIDER_STATUSES: frozenset[CheckStatus] = frozenset({
    CheckStatus.PENDING,
    CheckStatus.IN_PROGRESS,
    CheckStatus.APPROVED,
    CheckStatus.REJECTED,
    CheckStatus.REQUIRES_REVIEW,
})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ProviderError(Exception):
    """Base class for provider communication failures.

    These are recovered locally by falling back to the simulation adapter;
    they never reach a volunteer-facing caller.
    """

    def __init__(self, message: str, provider: str | None = None, raw: Any = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.raw = raw


class ProviderAuthError(ProviderError):
    """The provider rejected our credentials (HTTP 401/403)."""


class ProviderRateLimitError(ProviderError):
    """The provider throttled the request (HTTP 429)."""


class ProviderTimeoutError(ProviderError):
    """The provider did not answer within the configured timeout."""


class ProviderUnavailableError(ProviderError):
    """Connection failures or 5xx responses after all retries."""


class InvalidCandidateDataError(Exception):
    """Candidate identity data is incomplete or was refused by the provider."""

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or []


# ---------------------------------------------------------------------------
# Data transfer objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CandidateProfile:
    """The volunteer as represented to an external provider."""
    email: str
    first_name: str
    last_name: str
    birth_date: date
    phone: Optional[str] = None
    address_line_1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


@dataclass(frozen=True)
class CheckFinding:
    """A single itemised finding inside a provider result."""
    category: str
    severity: FindingSeverity
    description: str
    disqualifying: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "severity": self.severity.value,
            "description": self.description,
            "disqualifying": self.disqualifying,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckFinding:
        try:
            severity = FindingSeverity(str(data.get("severity", "low")).lower())
        except ValueError:
            severity = FindingSeverity.MEDIUM
        return cls(
            category=str(data.get("category", "general")),
            severity=severity,
            description=str(data.get("description", "")),
            disqualifying=bool(data.get("disqualifying", False)),
        )


@dataclass(frozen=True)
class CheckResults:
    """Structured findings payload stored on a completed check."""
    overall_status: CheckStatus
    findings: list[CheckFinding] = field(default_factory=list)
    completed_date: Optional[datetime] = None
    summary: Optional[str] = None
    simulated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_status": self.overall_status.value,
            "findings": [f.to_dict() for f in self.findings],
            "completed_date": self.completed_date.isoformat() if self.completed_date else None,
            "summary": self.summary,
            "simulated": self.simulated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckResults:
        """Parse a stored or inbound results block.

        Accepts both snake_case and the camelCase keys providers send.
        """
        raw_status = data.get("overall_status", data.get("overallStatus", "requires_review"))
        try:
            overall = CheckStatus(str(raw_status).lower())
        except ValueError:
            overall = CheckStatus.REQUIRES_REVIEW
        raw_date = data.get("completed_date", data.get("completedDate"))
        completed = parse_datetime(raw_date) if raw_date else None
        return cls(
            overall_status=overall,
            findings=[CheckFinding.from_dict(f) for f in data.get("findings") or []],
            completed_date=completed,
            summary=data.get("summary") or data.get("processingNotes"),
            simulated=bool(data.get("simulated", False)),
        )


@dataclass(frozen=True)
class SubmissionResult:
    """Returned by ``ProviderAdapter.submit``."""
    external_id: str
    status: CheckStatus
    results: Optional[CheckResults] = None
    candidate_url: Optional[str] = None
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class StatusUpdate:
    """Returned by ``ProviderAdapter.check_status`` and built from webhooks."""
    status: CheckStatus
    results: Optional[CheckResults] = None
    completed_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Provider profile
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderProfile:
    """Immutable snapshot of a configured provider, detached from the ORM."""
    id: uuid.UUID
    name: str
    adapter: AdapterKind
    api_endpoint: Optional[str] = None
    api_key: Optional[str] = None
    webhook_url: Optional[str] = None
    supported_check_types: frozenset[CheckType] = frozenset()
    average_processing_days: int = 7
    cost_per_check: Optional[Decimal] = None
    is_active: bool = True
    is_simulated: bool = False
    validity_days: Optional[int] = None
    settings: dict[str, Any] = field(default_factory=dict)

    def supports(self, check_type: CheckType) -> bool:
        """An empty capability set means every check type is supported."""
        return not self.supported_check_types or check_type in self.supported_check_types


# ---------------------------------------------------------------------------
# Adapter protocol
# ---------------------------------------------------------------------------

class ProviderAdapter(Protocol):
    """Protocol that every background check provider adapter must implement."""

    kind: AdapterKind

    async def submit(self, candidate: CandidateProfile, check_type: CheckType) -> SubmissionResult:
        ...

    async def check_status(
        self,
        external_id: str,
        *,
        requested_at: Optional[datetime] = None,
    ) -> StatusUpdate:
        ...

    def normalize_status(
        self,
        native_status: str,
        results: Optional[dict[str, Any]] = None,
    ) -> CheckStatus:
        ...


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from a provider payload as aware UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
