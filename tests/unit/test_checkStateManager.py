"""
Unit tests for the Check State Manager.

Tests the finite state machine governing background check status
transitions and the expiry guard.
"""

import pytest

from screening.models import CheckStatus
from screening.services.checkStateManager import (
    ActorType,
    InvalidTransitionError,
    TransitionResult,
    VALID_TRANSITIONS,
    ensure_transition,
    validate_transition,
)


# ---------------------------------------------------------------------------
# Valid state transitions (happy path)
# ---------------------------------------------------------------------------


class TestValidTransitions:
    """Tests that all documented valid transitions are allowed."""

    def test_pending_to_in_progress(self):
        result = validate_transition(CheckStatus.PENDING, CheckStatus.IN_PROGRESS)
        assert result.allowed is True

    @pytest.mark.parametrize(
        "target",
        [CheckStatus.APPROVED, CheckStatus.REJECTED, CheckStatus.REQUIRES_REVIEW],
    )
    def test_in_progress_to_outcome(self, target):
        assert validate_transition(CheckStatus.IN_PROGRESS, target).allowed is True

    def test_pending_straight_to_approved(self):
        """A provider may answer synchronously on submission."""
        assert validate_transition(CheckStatus.PENDING, CheckStatus.APPROVED).allowed is True

    def test_requires_review_to_approved_after_adjudication(self):
        result = validate_transition(CheckStatus.REQUIRES_REVIEW, CheckStatus.APPROVED)
        assert result.allowed is True

    def test_requires_review_to_rejected(self):
        result = validate_transition(CheckStatus.REQUIRES_REVIEW, CheckStatus.REJECTED)
        assert result.allowed is True

    def test_approved_to_expired_by_scheduler(self):
        result = validate_transition(
            CheckStatus.APPROVED, CheckStatus.EXPIRED, ActorType.SCHEDULER
        )
        assert result == TransitionResult(allowed=True)


# ---------------------------------------------------------------------------
# Invalid transitions
# ---------------------------------------------------------------------------


class TestInvalidTransitions:
    """Tests that status never moves backwards or out of terminal states."""

    def test_in_progress_back_to_pending(self):
        result = validate_transition(CheckStatus.IN_PROGRESS, CheckStatus.PENDING)
        assert result.allowed is False
        assert "Invalid transition" in result.reason

    def test_approved_back_to_in_progress(self):
        result = validate_transition(CheckStatus.APPROVED, CheckStatus.IN_PROGRESS)
        assert result.allowed is False

    def test_approved_to_rejected(self):
        assert validate_transition(CheckStatus.APPROVED, CheckStatus.REJECTED).allowed is False

    def test_requires_review_back_to_in_progress(self):
        result = validate_transition(CheckStatus.REQUIRES_REVIEW, CheckStatus.IN_PROGRESS)
        assert result.allowed is False

    @pytest.mark.parametrize("target", list(CheckStatus))
    def test_rejected_is_terminal(self, target):
        result = validate_transition(CheckStatus.REJECTED, target, ActorType.ADMIN)
        assert result.allowed is False

    @pytest.mark.parametrize("target", list(CheckStatus))
    def test_expired_is_terminal(self, target):
        result = validate_transition(CheckStatus.EXPIRED, target, ActorType.ADMIN)
        assert result.allowed is False
        assert "none" in result.reason

    def test_ensure_transition_raises(self):
        with pytest.raises(InvalidTransitionError, match="approved"):
            ensure_transition(CheckStatus.APPROVED, CheckStatus.PENDING)


# ---------------------------------------------------------------------------
# Expiry guard
# ---------------------------------------------------------------------------


class TestExpireGuard:
    """Only the renewal scheduler or an admin may expire a check."""

    def test_provider_cannot_expire(self):
        result = validate_transition(
            CheckStatus.APPROVED, CheckStatus.EXPIRED, ActorType.PROVIDER
        )
        assert result.allowed is False
        assert "scheduler" in result.reason

    def test_admin_can_expire(self):
        result = validate_transition(CheckStatus.APPROVED, CheckStatus.EXPIRED, ActorType.ADMIN)
        assert result.allowed is True

    def test_scheduler_can_expire_in_flight_check(self):
        result = validate_transition(
            CheckStatus.IN_PROGRESS, CheckStatus.EXPIRED, ActorType.SCHEDULER
        )
        assert result.allowed is True


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------


class TestTransitionTable:

    def test_every_status_has_an_entry(self):
        assert set(VALID_TRANSITIONS) == set(CheckStatus)

    def test_approved_only_leaves_through_expiry(self):
        assert VALID_TRANSITIONS[CheckStatus.APPROVED] == {CheckStatus.EXPIRED}
