"""Persisted client state (~/.challenge_py.state).

A single JSON document split into namespaces. Writes are last-writer-wins;
each store below owns one namespace and is handed to the session explicitly.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)

DEFAULT_PATH = Path.home() / ".challenge_py.state"

VERIFICATION_EXPIRY = timedelta(hours=24)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StateFile:
    """Namespaced key-value document. ``path=None`` keeps it in memory."""

    def __init__(self, path: Optional[Path] = DEFAULT_PATH):
        self.path = path
        self._memory: Dict[str, dict] = {}

    def _read(self) -> Dict[str, dict]:
        if self.path is None:
            return self._memory
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, e)
            return {}

    def get(self, namespace: str) -> dict:
        value = self._read().get(namespace)
        return dict(value) if isinstance(value, dict) else {}

    def set(self, namespace: str, value: dict) -> None:
        data = self._read()
        data[namespace] = value
        if self.path is None:
            self._memory = data
            return
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)


class VerificationStore:
    """Time-boxed grants proving a phone was verified for a challenge."""

    NAMESPACE = "verifications"

    def __init__(self, state: StateFile, clock: Callable[[], datetime] = utc_now):
        self.state = state
        self.clock = clock

    @staticmethod
    def key(phone: str, challenge_id: Any) -> str:
        return f"{phone}_{challenge_id}"

    def _expired(self, grant: dict) -> bool:
        try:
            verified_at = datetime.fromisoformat(grant["verifiedAt"])
        except (KeyError, TypeError, ValueError):
            return True
        if verified_at.tzinfo is None:
            verified_at = verified_at.replace(tzinfo=timezone.utc)
        return self.clock() - verified_at >= VERIFICATION_EXPIRY

    def store(self, phone: str, challenge_id: Any) -> None:
        """Write a grant for (phone, challenge) stamped now."""
        grants = self.state.get(self.NAMESPACE)
        grants[self.key(phone, challenge_id)] = {
            "phone": phone,
            "challengeId": str(challenge_id),
            "verifiedAt": self.clock().isoformat(),
        }
        self.state.set(self.NAMESPACE, grants)

    def is_verified_for_challenge(self, phone: str, challenge_id: Any) -> bool:
        """True if an unexpired grant exists; expired grants are removed."""
        grants = self.state.get(self.NAMESPACE)
        key = self.key(phone, challenge_id)
        grant = grants.get(key)
        if not grant:
            return False
        if self._expired(grant):
            del grants[key]
            self.state.set(self.NAMESPACE, grants)
            return False
        return True

    def clear(self, phone: str, challenge_id: Any) -> None:
        grants = self.state.get(self.NAMESPACE)
        if grants.pop(self.key(phone, challenge_id), None) is not None:
            self.state.set(self.NAMESPACE, grants)

    def clear_expired(self) -> int:
        """Drop every expired grant; returns how many were removed."""
        grants = self.state.get(self.NAMESPACE)
        expired = [k for k, grant in grants.items() if self._expired(grant)]
        for k in expired:
            del grants[k]
        if expired:
            self.state.set(self.NAMESPACE, grants)
        return len(expired)

    def phones_for_challenge(self, challenge_id: Any) -> List[str]:
        """Phones with a valid grant for a challenge."""
        grants = self.state.get(self.NAMESPACE)
        return [
            grant["phone"]
            for grant in grants.values()
            if grant.get("challengeId") == str(challenge_id)
            and self.is_verified_for_challenge(grant.get("phone", ""), challenge_id)
        ]


class AccessCodeStore:
    """Access codes issued at registration."""

    NAMESPACE = "access_codes"

    def __init__(self, state: StateFile):
        self.state = state

    def get(self, phone: str, challenge_id: Any) -> Optional[str]:
        return self.state.get(self.NAMESPACE).get(f"{phone}_{challenge_id}")

    def put(self, phone: str, challenge_id: Any, access_code: str) -> None:
        codes = self.state.get(self.NAMESPACE)
        codes[f"{phone}_{challenge_id}"] = access_code
        self.state.set(self.NAMESPACE, codes)


class McqAnswerStore:
    """Local cache of MCQ answers, keyed by challenge."""

    NAMESPACE = "mcq"

    def __init__(self, state: StateFile):
        self.state = state

    def answers(self, challenge_id: Any) -> Dict[str, dict]:
        entry = self.state.get(self.NAMESPACE).get(str(challenge_id)) or {}
        return dict(entry.get("answers") or {})

    def save_answers(self, challenge_id: Any, answers: Dict[str, dict]) -> None:
        data = self.state.get(self.NAMESPACE)
        entry = data.get(str(challenge_id)) or {}
        entry["answers"] = answers
        data[str(challenge_id)] = entry
        self.state.set(self.NAMESPACE, data)

    def is_submitted(self, challenge_id: Any) -> bool:
        entry = self.state.get(self.NAMESPACE).get(str(challenge_id)) or {}
        return bool(entry.get("submitted"))

    def mark_submitted(self, challenge_id: Any) -> None:
        data = self.state.get(self.NAMESPACE)
        entry = data.get(str(challenge_id)) or {}
        entry["submitted"] = True
        data[str(challenge_id)] = entry
        self.state.set(self.NAMESPACE, data)


class PreferenceStore:
    """Per-challenge preferences, such as the last language per problem."""

    NAMESPACE = "preferences"

    def __init__(self, state: StateFile):
        self.state = state

    def language_for(self, challenge_id: Any, problem_id: Any) -> Optional[str]:
        prefs = self.state.get(self.NAMESPACE).get(str(challenge_id)) or {}
        return (prefs.get("languages") or {}).get(str(problem_id))

    def set_language(self, challenge_id: Any, problem_id: Any, language: str) -> None:
        data = self.state.get(self.NAMESPACE)
        prefs = data.get(str(challenge_id)) or {}
        languages = prefs.get("languages") or {}
        languages[str(problem_id)] = language
        prefs["languages"] = languages
        data[str(challenge_id)] = prefs
        self.state.set(self.NAMESPACE, data)
