"""
Check State Manager
===================

Finite state machine governing all valid background check status
transitions. Every status change MUST go through ``validate_transition``
before being persisted.

State machine overview::

    pending --> in_progress --> approved | rejected | requires_review

    pending         --> approved | rejected | requires_review   (provider answered at once)
    requires_review --> approved | rejected                     (manual adjudication)
    approved        --> expired                                 (renewal scheduler)

    (any non-terminal state) --> expired   (guard: scheduler or admin only)

``rejected`` and ``expired`` are terminal. Once a check is approved the only
way out is the explicit expiry transition.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from screening.models import CheckStatus


# ---------------------------------------------------------------------------
# Actor types for guard enforcement
# ---------------------------------------------------------------------------

class ActorType(str, enum.Enum):
    PROVIDER = "provider"      # adapter poll or webhook
    SCHEDULER = "scheduler"    # renewal / staleness jobs
    ADMIN = "admin"


# ---------------------------------------------------------------------------
# Transition guard result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransitionResult:
    """Result of a transition validation attempt."""
    allowed: bool
    reason: str | None = None


class InvalidTransitionError(Exception):
    """Raised by ``ensure_transition`` for a disallowed status change."""


# ---------------------------------------------------------------------------
# Transition definitions
# ---------------------------------------------------------------------------

VALID_TRANSITIONS: dict[CheckStatus, set[CheckStatus]] = {
    CheckStatus.PENDING: {
        CheckStatus.IN_PROGRESS,
        CheckStatus.APPROVED,
        CheckStatus.REJECTED,
        CheckStatus.REQUIRES_REVIEW,
        CheckStatus.EXPIRED,
    },
    CheckStatus.IN_PROGRESS: {
        CheckStatus.APPROVED,
        CheckStatus.REJECTED,
        CheckStatus.REQUIRES_REVIEW,
        CheckStatus.EXPIRED,
    },
    CheckStatus.REQUIRES_REVIEW: {
        CheckStatus.APPROVED,
        CheckStatus.REJECTED,
        CheckStatus.EXPIRED,
    },
    CheckStatus.APPROVED: {
        CheckStatus.EXPIRED,
    },
    CheckStatus.REJECTED: set(),
    CheckStatus.EXPIRED: set(),
}


# ---------------------------------------------------------------------------
# Guard functions
# ---------------------------------------------------------------------------

def _guard_expire(actor_type: ActorType) -> TransitionResult:
    """Providers never expire a check; only the scheduler or an admin can."""
    if actor_type in (ActorType.SCHEDULER, ActorType.ADMIN):
        return TransitionResult(allowed=True)
    return TransitionResult(
        allowed=False,
        reason="Only the renewal scheduler or an admin can expire a background check.",
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_transition(
    current_status: CheckStatus,
    new_status: CheckStatus,
    actor_type: ActorType = ActorType.PROVIDER,
) -> TransitionResult:
    """Validate whether a background check status transition is allowed.

    Returns a ``TransitionResult`` with ``allowed=True`` if the transition
    is permitted, or ``allowed=False`` with a human-readable ``reason``.
    """
    allowed_targets = VALID_TRANSITIONS.get(current_status, set())
    if new_status not in allowed_targets:
        return TransitionResult(
            allowed=False,
            reason=(
                f"Invalid transition: '{current_status.value}' -> '{new_status.value}'. "
                f"Allowed transitions from '{current_status.value}': "
                f"{', '.join(s.value for s in sorted(allowed_targets, key=lambda s: s.value)) or 'none'}."
            ),
        )

    if new_status == CheckStatus.EXPIRED:
        return _guard_expire(actor_type)

    return TransitionResult(allowed=True)


def ensure_transition(
    current_status: CheckStatus,
    new_status: CheckStatus,
    actor_type: ActorType = ActorType.PROVIDER,
) -> None:
    """Like ``validate_transition`` but raises ``InvalidTransitionError``."""
    result = validate_transition(current_status, new_status, actor_type)
    if not result.allowed:
        raise InvalidTransitionError(result.reason)
