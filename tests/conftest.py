"""
Shared pytest fixtures for the screening backend tests.

Provides an isolated SQLite database per test, a seeded volunteer, and
in-process stand-ins for the collaborators the screening services take
explicitly: provider adapters, the notification dispatcher and the
provider registry.
"""

from __future__ import annotations

import itertools
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from screening.integrations.providers import (
    AdapterKind,
    CandidateProfile,
    ProviderProfile,
    SimulationAdapter,
    StatusUpdate,
    SubmissionResult,
)
from screening.models import Base, CheckStatus, CheckType, Volunteer
from screening.services.backgroundCheckIntegration import ProviderRegistry
from screening.services.notificationService import NotificationKind, RecipientContact
from screening.services.volunteerDirectory import SqlVolunteerDirectory

VOLUNTEER_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
MINISTRY_SAFE_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
CHECKR_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path):
    """A file-backed SQLite engine so several sessions can share the data."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'screening.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def volunteer(db_session: AsyncSession) -> Volunteer:
    """A volunteer with every identity field providers require."""
    row = Volunteer(
        id=VOLUNTEER_ID,
        email="jane.doe@example.org",
        first_name="Jane",
        last_name="Doe",
        birth_date=date(1988, 4, 12),
        phone="+15555550100",
        address_line_1="12 Chapel St",
        city="Springfield",
        state="IL",
        postal_code="62701",
        country="US",
    )
    db_session.add(row)
    await db_session.commit()
    return row


@pytest.fixture
def directory(db_session: AsyncSession) -> SqlVolunteerDirectory:
    return SqlVolunteerDirectory(db_session)


# ---------------------------------------------------------------------------
# Provider stand-ins
# ---------------------------------------------------------------------------


class StubAdapter:
    """Scriptable provider adapter that records every call."""

    _ids = itertools.count(1001)

    def __init__(
        self,
        kind: AdapterKind = AdapterKind.MINISTRY_SAFE,
        *,
        submit_status: CheckStatus = CheckStatus.IN_PROGRESS,
        submit_error: Optional[Exception] = None,
        update: Optional[StatusUpdate] = None,
        status_error: Optional[Exception] = None,
    ) -> None:
        self.kind = kind
        self.submit_status = submit_status
        self.submit_error = submit_error
        self.update = update or StatusUpdate(status=CheckStatus.IN_PROGRESS)
        self.status_error = status_error
        self.submitted: list[tuple[CandidateProfile, CheckType]] = []
        self.polled: list[str] = []

    def normalize_status(self, native_status: str, results: Optional[dict[str, Any]] = None) -> CheckStatus:
        try:
            return CheckStatus(native_status.strip().lower())
        except ValueError:
            return CheckStatus.REQUIRES_REVIEW

    async def submit(self, candidate: CandidateProfile, check_type: CheckType) -> SubmissionResult:
        self.submitted.append((candidate, check_type))
        if self.submit_error is not None:
            raise self.submit_error
        return SubmissionResult(
            external_id=f"EXT-{next(self._ids)}",
            status=self.submit_status,
            candidate_url="https://screening.example.com/candidate/abc",
        )

    async def check_status(self, external_id: str, *, requested_at=None) -> StatusUpdate:
        self.polled.append(external_id)
        if self.status_error is not None:
            raise self.status_error
        return self.update


class FakeDispatcher:
    """Notification dispatcher that keeps every send in memory."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[dict[str, Any]] = []

    async def send(
        self,
        recipient: RecipientContact,
        kind: NotificationKind,
        check_type: CheckType,
        days_until_expiration: Optional[int] = None,
        status: Optional[CheckStatus] = None,
    ) -> bool:
        if self.fail:
            raise RuntimeError("messaging subsystem unavailable")
        self.sent.append(
            {
                "volunteer_id": recipient.volunteer_id,
                "kind": kind,
                "check_type": check_type,
                "days_until_expiration": days_until_expiration,
                "status": status,
            }
        )
        return True

    def of_kind(self, kind: NotificationKind) -> list[dict[str, Any]]:
        return [s for s in self.sent if s["kind"] == kind]


def build_profile(
    name: str = "MinistrySafe",
    adapter: AdapterKind = AdapterKind.MINISTRY_SAFE,
    **overrides: Any,
) -> ProviderProfile:
    values: dict[str, Any] = {
        "id": MINISTRY_SAFE_ID if name == "MinistrySafe" else uuid.uuid4(),
        "name": name,
        "adapter": adapter,
        "api_endpoint": "https://api.ministrysafe.test/v2",
        "api_key": "ms-test-key",
        "supported_check_types": frozenset(CheckType),
        "cost_per_check": Decimal("25.00"),
    }
    values.update(overrides)
    return ProviderProfile(**values)


@pytest.fixture
def stub_adapter_cls() -> type[StubAdapter]:
    return StubAdapter


@pytest.fixture
def make_profile():
    return build_profile


@pytest.fixture
def stub_adapter() -> StubAdapter:
    return StubAdapter()


@pytest.fixture
def simulation() -> SimulationAdapter:
    return SimulationAdapter(approval_days=3, auto_approve=True)


@pytest.fixture
def registry(stub_adapter: StubAdapter, simulation: SimulationAdapter) -> ProviderRegistry:
    """Registry with one active MinistrySafe provider backed by ``stub_adapter``."""
    return ProviderRegistry(
        [build_profile()],
        adapters={"MinistrySafe": stub_adapter},
        simulation=simulation,
    )


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()
