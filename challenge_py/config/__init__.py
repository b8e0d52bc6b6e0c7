"""Configuration management."""

from .global_config import GlobalConfig
from .local_config import LocalConfig
from .state import (
    AccessCodeStore,
    McqAnswerStore,
    PreferenceStore,
    StateFile,
    VerificationStore,
)

__all__ = [
    "GlobalConfig",
    "LocalConfig",
    "StateFile",
    "VerificationStore",
    "AccessCodeStore",
    "McqAnswerStore",
    "PreferenceStore",
]
