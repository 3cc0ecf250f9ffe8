"""Enum-based state machine for one platform's authorization flow.

    IDLE → AUTH_REQUESTED → AWAITING_REDIRECT → TOKEN_EXCHANGED → STORED → SYNC_TRIGGERED

ERROR is reachable from every non-terminal state. SYNC_TRIGGERED and ERROR
are terminal. A live (non-terminal, non-stale) flow is the per-platform lock
that stops two authorizations from racing on the same token record.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# State definitions
# ---------------------------------------------------------------------------

class AuthState(str, Enum):
    """Authorization flow states."""

    IDLE = "idle"
    AUTH_REQUESTED = "auth_requested"
    AWAITING_REDIRECT = "awaiting_redirect"
    TOKEN_EXCHANGED = "token_exchanged"
    STORED = "stored"
    SYNC_TRIGGERED = "sync_triggered"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Transition rules
# ---------------------------------------------------------------------------

_AUTH_TRANSITIONS: dict[AuthState, list[AuthState]] = {
    AuthState.IDLE: [AuthState.AUTH_REQUESTED, AuthState.AWAITING_REDIRECT, AuthState.ERROR],
    AuthState.AUTH_REQUESTED: [AuthState.AWAITING_REDIRECT, AuthState.ERROR],
    AuthState.AWAITING_REDIRECT: [AuthState.TOKEN_EXCHANGED, AuthState.ERROR],
    AuthState.TOKEN_EXCHANGED: [AuthState.STORED, AuthState.ERROR],
    AuthState.STORED: [AuthState.SYNC_TRIGGERED, AuthState.ERROR],
    AuthState.SYNC_TRIGGERED: [],  # terminal
    AuthState.ERROR: [],           # terminal
}


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

@dataclass
class AuthTransition:
    """Record of a single state transition."""

    from_state: str
    to_state: str
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class AuthFlow:
    """A running authorization flow for one platform.

    Usage::

        flow = AuthFlow(platform="spotify")
        flow.transition(AuthState.AUTH_REQUESTED)
        flow.transition(AuthState.AWAITING_REDIRECT, state_token=state)
    """

    platform: str
    current_state: AuthState = AuthState.IDLE
    history: list[AuthTransition] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None

    def can_transition(self, to_state: AuthState) -> bool:
        return to_state in _AUTH_TRANSITIONS.get(self.current_state, [])

    def transition(self, to_state: AuthState, **metadata: Any) -> AuthTransition:
        """Execute a state transition.

        Raises ValueError if the transition is not allowed.
        """
        if not self.can_transition(to_state):
            allowed = [s.value for s in _AUTH_TRANSITIONS.get(self.current_state, [])]
            raise ValueError(
                f"Cannot transition from {self.current_state.value} to {to_state.value}. "
                f"Allowed: {allowed}"
            )

        record = AuthTransition(
            from_state=self.current_state.value,
            to_state=to_state.value,
            timestamp=datetime.now(timezone.utc),
            metadata=metadata,
        )
        self.history.append(record)
        self.current_state = to_state
        return record

    def fail(self, error: Exception) -> None:
        """Move to ERROR unless already terminal."""
        if not self.is_terminal:
            self.error = str(error)
            self.transition(AuthState.ERROR, error=type(error).__name__)

    @property
    def is_terminal(self) -> bool:
        return len(_AUTH_TRANSITIONS.get(self.current_state, [])) == 0

    def is_live(self, max_age_seconds: float) -> bool:
        """Non-terminal and younger than ``max_age_seconds`` (abandoned flows expire)."""
        if self.is_terminal:
            return False
        return datetime.now(timezone.utc) < self.created_at + timedelta(seconds=max_age_seconds)
