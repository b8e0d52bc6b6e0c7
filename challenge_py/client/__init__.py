"""Client module for challenge platform interaction."""

from .client import ChallengeClient
from .errors import ApiError, PhoneAuthError
from .models import (
    Challenge,
    Draft,
    McqOption,
    McqQuestion,
    Problem,
    RegistrationResult,
    RegistrationStatus,
    RunResult,
    Score,
    SubmissionResult,
    TestCaseResult,
)
from .phone_auth import FirebasePhoneAuth, PhoneConfirmation

__all__ = [
    "ChallengeClient",
    "ApiError",
    "PhoneAuthError",
    "Challenge",
    "Draft",
    "McqOption",
    "McqQuestion",
    "Problem",
    "RegistrationResult",
    "RegistrationStatus",
    "RunResult",
    "Score",
    "SubmissionResult",
    "TestCaseResult",
    "FirebasePhoneAuth",
    "PhoneConfirmation",
]
