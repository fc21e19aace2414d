"""
Outbound HTTP plumbing shared by the provider adapters.

All provider calls go through ``request_with_retry``: httpx with an explicit
timeout and bounded exponential-backoff retries on transient failures (5xx,
timeouts, connection errors). Client errors are never retried; they are
mapped onto the provider error hierarchy immediately:

    401/403 -> ProviderAuthError
    429     -> ProviderRateLimitError
    400/422 -> InvalidCandidateDataError
    other   -> ProviderError

``HttpProviderAdapter`` is the base class for the real vendor adapters. It
holds the provider profile, resolves package ids and builds the client.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from screening.core.config import settings
from screening.models import CheckType

from .base import (
    AdapterKind,
    InvalidCandidateDataError,
    ProviderAuthError,
    ProviderError,
    ProviderProfile,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _error_fields(response: httpx.Response) -> list[str]:
    """Best-effort extraction of offending field names from a 400/422 body."""
    try:
        body = response.json()
    except ValueError:
        return []
    if not isinstance(body, dict):
        return []
    errors = body.get("errors") or body.get("fields") or []
    if isinstance(errors, dict):
        return sorted(errors.keys())
    fields: list[str] = []
    for item in errors:
        if isinstance(item, dict) and item.get("field"):
            fields.append(str(item["field"]))
        elif isinstance(item, str):
            fields.append(item)
    return fields


def _raise_for_client_error(provider: str, response: httpx.Response) -> None:
    status_code = response.status_code
    if status_code in (401, 403):
        raise ProviderAuthError(
            f"{provider} rejected credentials: HTTP {status_code}",
            provider=provider,
            raw=response.text,
        )
    if status_code == 429:
        raise ProviderRateLimitError(
            f"{provider} rate limit exceeded",
            provider=provider,
            raw=response.text,
        )
    if status_code in (400, 422):
        raise InvalidCandidateDataError(
            f"{provider} refused candidate data: HTTP {status_code}",
            fields=_error_fields(response),
        )
    raise ProviderError(
        f"{provider} client error: HTTP {status_code}",
        provider=provider,
        raw=response.text,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    provider: str,
    params: dict[str, Any] | None = None,
    json_body: dict[str, Any] | None = None,
    max_retries: int | None = None,
    backoff_seconds: float | None = None,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Execute a provider request with exponential-backoff retry logic.

    Returns:
        Parsed JSON object from the response body.

    Raises:
        ProviderTimeoutError: Every attempt timed out.
        ProviderUnavailableError: 5xx or connection failures after all retries.
        ProviderAuthError, ProviderRateLimitError, ProviderError,
        InvalidCandidateDataError: On non-retryable client errors.
    """
    attempts = max_retries if max_retries is not None else settings.provider_max_retries
    attempts = max(attempts, 1)
    backoff = backoff_seconds if backoff_seconds is not None else settings.provider_backoff_seconds
    request_timeout = timeout if timeout is not None else settings.provider_timeout_seconds
    last_exception: Exception | None = None

    for attempt in range(1, attempts + 1):
        try:
            response = await client.request(
                method,
                url,
                params=params,
                json=json_body,
                timeout=request_timeout,
            )

            if 400 <= response.status_code < 500:
                _raise_for_client_error(provider, response)

            if response.status_code >= 500:
                last_exception = ProviderUnavailableError(
                    f"{provider} server error: HTTP {response.status_code}",
                    provider=provider,
                    raw=response.text,
                )
                logger.warning(
                    "%s server error on attempt %d/%d: HTTP %d",
                    provider,
                    attempt,
                    attempts,
                    response.status_code,
                )
            else:
                try:
                    data = response.json()
                except ValueError as exc:
                    raise ProviderError(
                        f"{provider} returned malformed JSON",
                        provider=provider,
                        raw=response.text,
                    ) from exc
                if not isinstance(data, dict):
                    raise ProviderError(
                        f"{provider} returned an unexpected payload",
                        provider=provider,
                        raw=data,
                    )
                return data

        except httpx.TimeoutException as exc:
            last_exception = exc
            logger.warning(
                "%s timeout on attempt %d/%d: %s",
                provider,
                attempt,
                attempts,
                exc,
            )

        except httpx.TransportError as exc:
            last_exception = exc
            logger.warning(
                "%s connection error on attempt %d/%d: %s",
                provider,
                attempt,
                attempts,
                exc,
            )

        if attempt < attempts:
            await asyncio.sleep(backoff)
            backoff *= 2

    if isinstance(last_exception, httpx.TimeoutException):
        raise ProviderTimeoutError(
            f"{provider} did not respond within {request_timeout}s "
            f"({attempts} attempts)",
            provider=provider,
            raw=str(last_exception),
        )
    if isinstance(last_exception, ProviderUnavailableError):
        raise last_exception
    raise ProviderUnavailableError(
        f"{provider} request failed after {attempts} attempts",
        provider=provider,
        raw=str(last_exception),
    )


class HttpProviderAdapter:
    """Base class for adapters that talk to a vendor REST API."""

    kind: AdapterKind
    default_base_url: str = ""
    # Generic check type -> vendor package identifier
    default_packages: dict[CheckType, str] = {}

    def __init__(
        self,
        profile: ProviderProfile,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        timeout: Optional[float] = None,
        callback_url: Optional[str] = None,
    ) -> None:
        self.profile = profile
        self._transport = transport
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._timeout = timeout
        self._callback_url = callback_url if callback_url is not None else (
            profile.webhook_url or settings.provider_callback_url or None
        )

    @property
    def base_url(self) -> str:
        return (self.profile.api_endpoint or self.default_base_url).rstrip("/")

    def package_for(self, check_type: CheckType) -> str:
        """Translate a generic check type into this vendor's package id.

        ``settings["packages"]`` on the provider profile overrides the
        adapter's built-in table.
        """
        overrides = (self.profile.settings or {}).get("packages") or {}
        package = overrides.get(check_type.value) or self.default_packages.get(check_type)
        if not package:
            raise InvalidCandidateDataError(
                f"{self.profile.name} offers no package for check type {check_type.value}",
                fields=["check_type"],
            )
        return package

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.profile.api_key:
            headers["Authorization"] = f"Bearer {self.profile.api_key}"
        return headers

    def _auth(self) -> Optional[httpx.Auth]:
        return None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with httpx.AsyncClient(
            transport=self._transport,
            headers=self._headers(),
            auth=self._auth(),
        ) as client:
            return await request_with_retry(
                client,
                method,
                f"{self.base_url}{path}",
                provider=self.profile.name,
                params=params,
                json_body=json_body,
                max_retries=self._max_retries,
                backoff_seconds=self._backoff_seconds,
                timeout=self._timeout,
            )
