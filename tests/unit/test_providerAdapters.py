"""
Unit tests for the background check provider adapters.

Outbound HTTP is served by ``httpx.MockTransport`` so the full request /
response mapping of each adapter is exercised without network access.
"""

import base64
import json
from datetime import date, datetime, timedelta, timezone

import httpx
import pytest

from screening.integrations.providers import (
    AdapterKind,
    CandidateProfile,
    CheckrAdapter,
    InvalidCandidateDataError,
    MinistrySafeAdapter,
    ProtectMyMinistryAdapter,
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    SIMULATED_ID_PREFIX,
    SimulationAdapter,
)
from screening.models import CheckStatus, CheckType


@pytest.fixture
def candidate() -> CandidateProfile:
    return CandidateProfile(
        email="jane.doe@example.org",
        first_name="Jane",
        last_name="Doe",
        birth_date=date(1988, 4, 12),
        phone="+15555550100",
        city="Springfield",
        state="IL",
        postal_code="62701",
        country="US",
    )


class Recorder:
    """MockTransport handler that replays canned responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def body(self, index: int = 0) -> dict:
        return json.loads(self.requests[index].content)


def _ministry_safe(make_profile, recorder: Recorder, **profile_overrides) -> MinistrySafeAdapter:
    return MinistrySafeAdapter(
        make_profile(**profile_overrides),
        transport=recorder.transport,
        max_retries=3,
        backoff_seconds=0,
    )


# ---------------------------------------------------------------------------
# Retry and error mapping
# ---------------------------------------------------------------------------


class TestRequestWithRetry:

    @pytest.mark.asyncio
    async def test_retries_server_error_then_succeeds(self, make_profile):
        recorder = Recorder(
            httpx.Response(502, text="bad gateway"),
            httpx.Response(200, json={"requestId": "MS-1", "status": "processing"}),
        )
        adapter = _ministry_safe(make_profile, recorder)

        update = await adapter.check_status("MS-1")

        assert update.status == CheckStatus.IN_PROGRESS
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(self, make_profile):
        recorder = Recorder(*(httpx.Response(503) for _ in range(3)))
        adapter = _ministry_safe(make_profile, recorder)

        with pytest.raises(ProviderUnavailableError, match="HTTP 503"):
            await adapter.check_status("MS-1")
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_timeouts_raise_provider_timeout(self, make_profile):
        recorder = Recorder(*(httpx.ReadTimeout("read timed out") for _ in range(3)))
        adapter = _ministry_safe(make_profile, recorder)

        with pytest.raises(ProviderTimeoutError) as exc_info:
            await adapter.check_status("MS-1")
        assert exc_info.value.provider == "MinistrySafe"

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_unavailable(self, make_profile):
        recorder = Recorder(*(httpx.ConnectError("refused") for _ in range(3)))
        adapter = _ministry_safe(make_profile, recorder)

        with pytest.raises(ProviderUnavailableError):
            await adapter.check_status("MS-1")

    @pytest.mark.asyncio
    async def test_auth_error_is_not_retried(self, make_profile):
        recorder = Recorder(httpx.Response(401, json={"error": "bad key"}))
        adapter = _ministry_safe(make_profile, recorder)

        with pytest.raises(ProviderAuthError):
            await adapter.check_status("MS-1")
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_rate_limit(self, make_profile):
        recorder = Recorder(httpx.Response(429))
        adapter = _ministry_safe(make_profile, recorder)

        with pytest.raises(ProviderRateLimitError):
            await adapter.check_status("MS-1")

    @pytest.mark.asyncio
    async def test_unprocessable_candidate_lists_fields(self, make_profile, candidate):
        recorder = Recorder(
            httpx.Response(422, json={"errors": [{"field": "birthDate", "message": "invalid"}]})
        )
        adapter = _ministry_safe(make_profile, recorder)

        with pytest.raises(InvalidCandidateDataError) as exc_info:
            await adapter.submit(candidate, CheckType.BASIC)
        assert exc_info.value.fields == ["birthDate"]


# ---------------------------------------------------------------------------
# MinistrySafe
# ---------------------------------------------------------------------------


class TestMinistrySafeAdapter:

    @pytest.mark.asyncio
    async def test_submit_translates_package_and_status(self, make_profile, candidate):
        recorder = Recorder(
            httpx.Response(
                201,
                json={
                    "requestId": "MS-42",
                    "status": "processing",
                    "candidateUrl": "https://ministrysafe.test/c/42",
                },
            )
        )
        adapter = _ministry_safe(make_profile, recorder)

        result = await adapter.submit(candidate, CheckType.CHILD_PROTECTION)

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path.endswith("/background_checks")
        assert request.headers["Authorization"] == "Bearer ms-test-key"
        body = recorder.body()
        assert body["packageCode"] == "child_safe"
        assert body["candidate"]["birthDate"] == "1988-04-12"
        assert "callbackUrl" not in body
        assert result.external_id == "MS-42"
        assert result.status == CheckStatus.IN_PROGRESS
        assert result.candidate_url == "https://ministrysafe.test/c/42"

    @pytest.mark.asyncio
    async def test_submit_sends_callback_url_from_profile(self, make_profile, candidate):
        recorder = Recorder(httpx.Response(201, json={"requestId": "MS-43", "status": "pending"}))
        adapter = _ministry_safe(
            make_profile, recorder, webhook_url="https://screening.example.org/hooks/ms"
        )

        await adapter.submit(candidate, CheckType.BASIC)

        assert recorder.body()["callbackUrl"] == "https://screening.example.org/hooks/ms"

    @pytest.mark.asyncio
    async def test_completed_status_uses_overall_status(self, make_profile):
        recorder = Recorder(
            httpx.Response(
                200,
                json={
                    "requestId": "MS-42",
                    "status": "completed",
                    "results": {
                        "overallStatus": "approved",
                        "findings": [],
                        "completedDate": "2026-03-01T10:00:00Z",
                    },
                },
            )
        )
        adapter = _ministry_safe(make_profile, recorder)

        update = await adapter.check_status("MS-42")

        assert update.status == CheckStatus.APPROVED
        assert update.completed_at == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
        assert update.results.overall_status == CheckStatus.APPROVED

    @pytest.mark.parametrize(
        "native, results, expected",
        [
            ("pending", None, CheckStatus.PENDING),
            ("in_progress", None, CheckStatus.IN_PROGRESS),
            ("failed", None, CheckStatus.REQUIRES_REVIEW),
            ("completed", {"overallStatus": "rejected"}, CheckStatus.REJECTED),
            ("completed", {}, CheckStatus.REQUIRES_REVIEW),
            ("something_new", None, CheckStatus.REQUIRES_REVIEW),
        ],
    )
    def test_normalize_status(self, make_profile, native, results, expected):
        adapter = MinistrySafeAdapter(make_profile())
        assert adapter.normalize_status(native, results) == expected

    def test_package_override_from_profile_settings(self, make_profile):
        adapter = MinistrySafeAdapter(
            make_profile(settings={"packages": {"basic": "church_basic_v2"}})
        )
        assert adapter.package_for(CheckType.BASIC) == "church_basic_v2"
        assert adapter.package_for(CheckType.FINANCIAL) == "financial_trust"


# ---------------------------------------------------------------------------
# Checkr
# ---------------------------------------------------------------------------


class TestCheckrAdapter:

    def _adapter(self, make_profile, recorder: Recorder) -> CheckrAdapter:
        profile = make_profile(
            name="Checkr",
            adapter=AdapterKind.CHECKR,
            api_endpoint="https://api.checkr.test/v1",
            api_key="checkr_test_key",
        )
        return CheckrAdapter(profile, transport=recorder.transport, max_retries=1, backoff_seconds=0)

    @pytest.mark.asyncio
    async def test_submit_creates_candidate_then_invitation(self, make_profile, candidate):
        recorder = Recorder(
            httpx.Response(201, json={"id": "cand_123"}),
            httpx.Response(
                201,
                json={
                    "id": "inv_456",
                    "status": "pending",
                    "invitation_url": "https://apply.checkr.test/inv_456",
                },
            ),
        )
        adapter = self._adapter(make_profile, recorder)

        result = await adapter.submit(candidate, CheckType.YOUTH_WORKER)

        expected_auth = "Basic " + base64.b64encode(b"checkr_test_key:").decode()
        assert recorder.requests[0].headers["Authorization"] == expected_auth
        assert recorder.requests[0].url.path == "/v1/candidates"
        assert recorder.body(0)["dob"] == "1988-04-12"
        assert recorder.requests[1].url.path == "/v1/invitations"
        assert recorder.body(1) == {
            "candidate_id": "cand_123",
            "package": "essential_criminal",
            "work_locations": [{"country": "US", "state": "IL"}],
        }
        assert result.external_id == "inv_456"
        assert result.status == CheckStatus.PENDING
        assert result.candidate_url == "https://apply.checkr.test/inv_456"

    @pytest.mark.asyncio
    async def test_status_before_report_follows_invitation(self, make_profile):
        recorder = Recorder(httpx.Response(200, json={"id": "inv_456", "status": "pending"}))
        adapter = self._adapter(make_profile, recorder)

        update = await adapter.check_status("inv_456")

        assert update.status == CheckStatus.PENDING
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_pending_report_is_in_progress(self, make_profile):
        recorder = Recorder(
            httpx.Response(200, json={"status": "completed", "report_id": "rep_1"}),
            httpx.Response(200, json={"id": "rep_1", "status": "pending"}),
        )
        adapter = self._adapter(make_profile, recorder)

        update = await adapter.check_status("inv_456")

        assert update.status == CheckStatus.IN_PROGRESS
        assert recorder.requests[1].url.path == "/v1/reports/rep_1"

    @pytest.mark.asyncio
    async def test_adjudication_overrides_result(self, make_profile):
        recorder = Recorder(
            httpx.Response(200, json={"status": "completed", "report_id": "rep_1"}),
            httpx.Response(
                200,
                json={
                    "id": "rep_1",
                    "status": "complete",
                    "result": "consider",
                    "adjudication": "engaged",
                    "completed_at": "2026-05-02T16:30:00Z",
                },
            ),
        )
        adapter = self._adapter(make_profile, recorder)

        update = await adapter.check_status("inv_456")

        assert update.status == CheckStatus.APPROVED
        assert update.completed_at == datetime(2026, 5, 2, 16, 30, tzinfo=timezone.utc)
        assert "rep_1" in update.results.summary

    @pytest.mark.parametrize(
        "native, expected",
        [
            ("clear", CheckStatus.APPROVED),
            ("consider", CheckStatus.REQUIRES_REVIEW),
            ("post_adverse_action", CheckStatus.REJECTED),
            ("suspended", CheckStatus.REQUIRES_REVIEW),
        ],
    )
    def test_normalize_status(self, make_profile, native, expected):
        adapter = CheckrAdapter(make_profile(name="Checkr", adapter=AdapterKind.CHECKR))
        assert adapter.normalize_status(native) == expected


# ---------------------------------------------------------------------------
# Protect My Ministry
# ---------------------------------------------------------------------------


class TestProtectMyMinistryAdapter:

    @pytest.mark.asyncio
    async def test_submit_and_completed_decision(self, make_profile, candidate):
        recorder = Recorder(
            httpx.Response(200, json={"orderId": "PMM-77", "status": "Received"}),
            httpx.Response(
                200,
                json={
                    "orderId": "PMM-77",
                    "status": "Complete",
                    "decision": "Fail",
                    "completedOn": "2026-06-10T08:00:00+00:00",
                    "findings": [
                        {"category": "criminal", "severity": "high",
                         "description": "Felony record", "disqualifying": True}
                    ],
                },
            ),
        )
        profile = make_profile(
            name="Protect My Ministry",
            adapter=AdapterKind.PROTECT_MY_MINISTRY,
            api_key="pmm-key",
        )
        adapter = ProtectMyMinistryAdapter(profile, transport=recorder.transport, backoff_seconds=0)

        submission = await adapter.submit(candidate, CheckType.FINANCIAL)
        update = await adapter.check_status(submission.external_id)

        assert recorder.requests[0].headers["X-API-Key"] == "pmm-key"
        assert recorder.body(0)["package"] == "PMM-FINANCIAL"
        assert submission.status == CheckStatus.PENDING
        assert update.status == CheckStatus.REJECTED
        assert [f.disqualifying for f in update.results.findings] == [True]

    def test_in_progress_vocabulary(self, make_profile):
        adapter = ProtectMyMinistryAdapter(
            make_profile(name="Protect My Ministry", adapter=AdapterKind.PROTECT_MY_MINISTRY)
        )
        assert adapter.normalize_status("In Progress") == CheckStatus.IN_PROGRESS
        assert adapter.normalize_status("Cancelled") == CheckStatus.REQUIRES_REVIEW


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------


class TestSimulationAdapter:

    @pytest.mark.asyncio
    async def test_submit_returns_simulated_reference(self, candidate):
        result = await SimulationAdapter().submit(candidate, CheckType.BASIC)
        assert result.external_id.startswith(SIMULATED_ID_PREFIX)
        assert result.status == CheckStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_in_progress_within_window(self):
        requested = datetime(2026, 1, 1, tzinfo=timezone.utc)
        adapter = SimulationAdapter(approval_days=3, auto_approve=True)

        update = await adapter.check_status(
            "SIM-1", requested_at=requested, now=requested + timedelta(days=2)
        )

        assert update.status == CheckStatus.IN_PROGRESS
        assert update.results is None

    @pytest.mark.asyncio
    async def test_approves_after_window_with_flagged_results(self):
        requested = datetime(2026, 1, 1, tzinfo=timezone.utc)
        now = requested + timedelta(days=3, hours=1)
        adapter = SimulationAdapter(approval_days=3, auto_approve=True)

        update = await adapter.check_status("SIM-1", requested_at=requested, now=now)

        assert update.status == CheckStatus.APPROVED
        assert update.completed_at == now
        assert update.results.simulated is True

    @pytest.mark.asyncio
    async def test_without_auto_approve_lands_in_review(self):
        requested = datetime(2026, 1, 1, tzinfo=timezone.utc)
        adapter = SimulationAdapter(approval_days=3, auto_approve=False)

        update = await adapter.check_status(
            "SIM-1", requested_at=requested, now=requested + timedelta(days=10)
        )

        assert update.status == CheckStatus.REQUIRES_REVIEW

    @pytest.mark.parametrize(
        "native, expected",
        [
            ("approved", CheckStatus.APPROVED),
            ("In_Progress", CheckStatus.IN_PROGRESS),
            ("expired", CheckStatus.REQUIRES_REVIEW),
            ("lost", CheckStatus.REQUIRES_REVIEW),
        ],
    )
    def test_normalize_status_only_accepts_provider_statuses(self, native, expected):
        assert SimulationAdapter().normalize_status(native) == expected
