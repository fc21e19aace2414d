"""
Background Check Integration Service.

Provides a unified interface over the configured external screening
providers. Provider rows are read once at configuration time and each is
bound to an adapter implementation through a typed map keyed by provider
name, so the rest of the service never string-matches on provider names:

- MinistrySafe
- Checkr
- Protect My Ministry
- Simulation (demo providers, and the degraded-mode fallback for all others)

The registry is passed explicitly to the services that need it; tests build
one directly from ``ProviderProfile`` objects and stub adapters.
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, Mapping, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from screening.integrations.providers import (
    ADAPTER_FACTORIES,
    AdapterKind,
    ProviderAdapter,
    ProviderProfile,
    SimulationAdapter,
)
from screening.models import BackgroundCheckProvider, CheckType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class NoActiveProviderError(Exception):
    """No active provider matches the request."""


class ProviderConfigurationError(Exception):
    """A provider row cannot be bound to a usable adapter."""


# ---------------------------------------------------------------------------
# Profile mapping
# ---------------------------------------------------------------------------

def profile_from_row(row: BackgroundCheckProvider) -> ProviderProfile:
    """Detach a provider row into an immutable ``ProviderProfile``."""
    try:
        adapter = AdapterKind(row.adapter)
    except ValueError as exc:
        raise ProviderConfigurationError(
            f"Provider {row.name} references unknown adapter {row.adapter!r}"
        ) from exc

    check_types: set[CheckType] = set()
    for raw in row.supported_check_types or []:
        try:
            check_types.add(CheckType(raw))
        except ValueError:
            logger.warning("Provider %s lists unknown check type %r", row.name, raw)

    return ProviderProfile(
        id=row.id,
        name=row.name,
        adapter=adapter,
        api_endpoint=row.api_endpoint,
        api_key=row.api_key,
        webhook_url=row.webhook_url,
        supported_check_types=frozenset(check_types),
        average_processing_days=row.average_processing_days,
        cost_per_check=row.cost_per_check,
        is_active=row.is_active,
        is_simulated=row.is_simulated,
        validity_days=row.validity_days,
        settings=dict(row.settings or {}),
    )


# ---------------------------------------------------------------------------
# Provider registry
# ---------------------------------------------------------------------------

class ProviderRegistry:
    """Typed map of provider name -> (profile, adapter)."""

    def __init__(
        self,
        profiles: Iterable[ProviderProfile] = (),
        *,
        adapters: Optional[Mapping[str, ProviderAdapter]] = None,
        simulation: Optional[SimulationAdapter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._simulation = simulation or SimulationAdapter()
        self._transport = transport
        self._profiles: dict[str, ProviderProfile] = {}
        self._adapters: dict[str, ProviderAdapter] = {}
        overrides = dict(adapters or {})
        for profile in profiles:
            self.register(profile, overrides.get(profile.name))

    @classmethod
    async def load(cls, db: AsyncSession, **kwargs) -> ProviderRegistry:
        """Build a registry from every configured provider row.

        Inactive providers are kept so existing records can still be
        reconciled; they are never selected for new requests.
        """
        result = await db.execute(
            select(BackgroundCheckProvider).order_by(
                BackgroundCheckProvider.created_at,
                BackgroundCheckProvider.name,
            )
        )
        rows = result.scalars().all()
        registry = cls([profile_from_row(row) for row in rows], **kwargs)
        logger.info(
            "Provider registry loaded: %d providers (%d active)",
            len(registry._profiles),
            sum(1 for p in registry._profiles.values() if p.is_active),
        )
        return registry

    def register(self, profile: ProviderProfile, adapter: Optional[ProviderAdapter] = None) -> None:
        """Bind a provider to its adapter.

        Raises:
            ProviderConfigurationError: If the simulation adapter would be the
                primary adapter of a provider not flagged ``is_simulated``.
        """
        if adapter is None:
            if profile.adapter == AdapterKind.SIMULATION:
                adapter = self._simulation
            else:
                adapter = ADAPTER_FACTORIES[profile.adapter](profile, transport=self._transport)

        if adapter.kind == AdapterKind.SIMULATION and not profile.is_simulated:
            raise ProviderConfigurationError(
                f"Provider {profile.name} is a real integration and cannot use "
                "the simulation adapter as its primary adapter"
            )

        self._profiles[profile.name] = profile
        self._adapters[profile.name] = adapter

    @property
    def simulation(self) -> SimulationAdapter:
        return self._simulation

    @property
    def profiles(self) -> list[ProviderProfile]:
        return list(self._profiles.values())

    def get_profile(self, name: str) -> ProviderProfile:
        profile = self._profiles.get(name)
        if profile is None:
            raise ProviderConfigurationError(f"No provider registered under name: {name}")
        return profile

    def has_provider(self, name: str) -> bool:
        return name in self._profiles

    def adapter_for(self, name: str) -> ProviderAdapter:
        adapter = self._adapters.get(name)
        if adapter is None:
            raise ProviderConfigurationError(f"No adapter registered for provider: {name}")
        return adapter

    def resolve_provider(
        self,
        provider_id: Optional[uuid.UUID] = None,
        check_type: Optional[CheckType] = None,
    ) -> ProviderProfile:
        """Return the explicitly requested active provider, else the first active one.

        Providers that do not offer ``check_type`` are skipped.

        Raises:
            NoActiveProviderError: If no active provider matches.
        """
        candidates = [
            p for p in self._profiles.values()
            if p.is_active and (check_type is None or p.supports(check_type))
        ]
        if provider_id is not None:
            candidates = [p for p in candidates if p.id == provider_id]

        if not candidates:
            if provider_id is not None:
                raise NoActiveProviderError(f"Provider {provider_id} is not an active provider")
            suffix = f" for check type {check_type.value}" if check_type else ""
            raise NoActiveProviderError(f"No active background check provider found{suffix}")
        return candidates[0]
