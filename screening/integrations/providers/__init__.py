"""
Background check provider adapters.

Usage::

    from screening.integrations.providers import ADAPTER_FACTORIES, AdapterKind

    adapter = ADAPTER_FACTORIES[AdapterKind.CHECKR](profile)
"""

from typing import Callable

from .base import (
    PROVIDER_STATUSES,
    AdapterKind,
    CandidateProfile,
    CheckFinding,
    CheckResults,
    FindingSeverity,
    InvalidCandidateDataError,
    ProviderAdapter,
    ProviderAuthError,
    ProviderError,
    ProviderProfile,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    StatusUpdate,
    SubmissionResult,
    parse_datetime,
)
from .checkr import CheckrAdapter
from .httpTransport import HttpProviderAdapter, request_with_retry
from .ministrySafe import MinistrySafeAdapter
from .protectMyMinistry import ProtectMyMinistryAdapter
from .simulation import SIMULATED_ID_PREFIX, SimulationAdapter

# Vendor adapters constructed from a provider profile
ADAPTER_FACTORIES: dict[AdapterKind, Callable[..., HttpProviderAdapter]] = {
    AdapterKind.MINISTRY_SAFE: MinistrySafeAdapter,
    AdapterKind.CHECKR: CheckrAdapter,
    AdapterKind.PROTECT_MY_MINISTRY: ProtectMyMinistryAdapter,
}

__all__ = [
    "ADAPTER_FACTORIES",
    "AdapterKind",
    "CandidateProfile",
    "CheckFinding",
    "CheckResults",
    "CheckrAdapter",
    "FindingSeverity",
    "HttpProviderAdapter",
    "InvalidCandidateDataError",
    "MinistrySafeAdapter",
    "PROVIDER_STATUSES",
    "ProtectMyMinistryAdapter",
    "ProviderAdapter",
    "ProviderAuthError",
    "ProviderError",
    "ProviderProfile",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "SIMULATED_ID_PREFIX",
    "SimulationAdapter",
    "StatusUpdate",
    "SubmissionResult",
    "parse_datetime",
    "request_with_retry",
]
