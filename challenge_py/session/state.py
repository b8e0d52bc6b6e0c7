"""Challenge session states and their transitions.

One enumerated state replaces the loose flags a session could otherwise
accumulate (verified? registered? form shown?). ``transition`` is pure: it
maps (state, event) to the next state or raises ``InvalidTransition``.
"""

from enum import Enum


class SessionState(str, Enum):
    PHONE_ENTRY = "phone_entry"
    AWAITING_OTP = "awaiting_otp"
    VERIFIED = "verified"
    NEEDS_DETAILS = "needs_details"
    REGISTERED = "registered"
    ENDED = "ended"


class SessionEvent(str, Enum):
    CODE_SENT = "code_sent"
    CODE_CONFIRMED = "code_confirmed"
    GRANT_RESTORED = "grant_restored"
    PHONE_CHANGED = "phone_changed"
    DETAILS_REQUIRED = "details_required"
    REGISTERED = "registered"
    SESSION_ENDED = "session_ended"


class InvalidTransition(ValueError):
    """Raised for an event that is not allowed in the current state."""

    def __init__(self, state: SessionState, event: SessionEvent):
        super().__init__(f"Cannot apply {event.value} in state {state.value}")
        self.state = state
        self.event = event


_TRANSITIONS = {
    (SessionState.PHONE_ENTRY, SessionEvent.CODE_SENT): SessionState.AWAITING_OTP,
    (SessionState.AWAITING_OTP, SessionEvent.CODE_SENT): SessionState.AWAITING_OTP,
    (SessionState.AWAITING_OTP, SessionEvent.CODE_CONFIRMED): SessionState.VERIFIED,
    (SessionState.PHONE_ENTRY, SessionEvent.GRANT_RESTORED): SessionState.VERIFIED,
    (SessionState.VERIFIED, SessionEvent.DETAILS_REQUIRED): SessionState.NEEDS_DETAILS,
    (SessionState.VERIFIED, SessionEvent.REGISTERED): SessionState.REGISTERED,
    (SessionState.NEEDS_DETAILS, SessionEvent.REGISTERED): SessionState.REGISTERED,
}


def transition(state: SessionState, event: SessionEvent) -> SessionState:
    """Return the state reached by applying ``event`` in ``state``."""
    if state is SessionState.ENDED:
        raise InvalidTransition(state, event)
    if event is SessionEvent.SESSION_ENDED:
        return SessionState.ENDED
    if event is SessionEvent.PHONE_CHANGED:
        return SessionState.PHONE_ENTRY
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(state, event) from None


def can_access_content(state: SessionState) -> bool:
    """Problems, MCQs and submissions are only reachable once registered."""
    return state is SessionState.REGISTERED


class SessionMachine:
    """Holds the current state of one session; shared by its components."""

    def __init__(self, state: SessionState = SessionState.PHONE_ENTRY):
        self.state = state

    def apply(self, event: SessionEvent) -> SessionState:
        self.state = transition(self.state, event)
        return self.state

    @property
    def ended(self) -> bool:
        return self.state is SessionState.ENDED
