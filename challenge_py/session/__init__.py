"""Challenge session: verification, registration, clock, drafts and submissions."""

from .clock import (
    ChallengeStatus,
    Countdown,
    SessionClock,
    SessionTimer,
    countdown,
    derive_status,
    filter_challenges,
)
from .drafts import DraftState, DraftSyncEngine
from .mcq import McqAnswer, McqSession
from .phone import format_phone_for_display, format_phone_number, validate_phone_number
from .registration import (
    RegistrationDetails,
    RegistrationOutcome,
    RegistrationResolver,
    SessionIdentity,
)
from .runner import RunSubmitOrchestrator
from .session import ChallengeSession
from .state import InvalidTransition, SessionEvent, SessionMachine, SessionState
from .templates import generate_code_template, supported_languages
from .verification import VerificationGate

__all__ = [
    "ChallengeStatus",
    "Countdown",
    "SessionClock",
    "SessionTimer",
    "countdown",
    "derive_status",
    "filter_challenges",
    "DraftState",
    "DraftSyncEngine",
    "McqAnswer",
    "McqSession",
    "format_phone_for_display",
    "format_phone_number",
    "validate_phone_number",
    "RegistrationDetails",
    "RegistrationOutcome",
    "RegistrationResolver",
    "SessionIdentity",
    "RunSubmitOrchestrator",
    "ChallengeSession",
    "InvalidTransition",
    "SessionEvent",
    "SessionMachine",
    "SessionState",
    "generate_code_template",
    "supported_languages",
    "VerificationGate",
]
