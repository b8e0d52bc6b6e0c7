"""Main HTTP client for the public challenge API."""

import logging
import time
from pathlib import Path
from typing import Any, List, Optional, Tuple

import requests

from .errors import ApiError, message_from_payload
from .models import (
    Challenge,
    Draft,
    McqQuestion,
    Problem,
    RegistrationResult,
    RegistrationStatus,
    Score,
    ServerTime,
    unwrap,
    unwrap_list,
)
from ..config.global_config import GlobalConfig


logger = logging.getLogger(__name__)


def _require_identity(user_id, registration_id) -> None:
    if not user_id or not registration_id:
        raise ValueError("userId and registrationId are required")


class ChallengeClient:
    """HTTP client for the public challenge endpoints."""

    API_BASE = "/public-challenges/challenges"

    def __init__(
        self,
        config: Optional[GlobalConfig] = None,
        config_path: Optional[Path] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the client."""
        self.config = config or GlobalConfig.load(config_path)
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    @property
    def base_url(self) -> str:
        return self.config.base_url.rstrip("/")

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Send a request and turn any failure into an ApiError."""
        url = f"{self.base_url}{path}"
        kwargs.setdefault("timeout", self.config.request_timeout)
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise ApiError(f"Network error: {e}") from e

        if not response.ok:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            raise ApiError(
                message_from_payload(payload, f"HTTP {response.status_code}"),
                status_code=response.status_code,
                payload=payload,
            )
        return response

    def _get(self, path: str, **kwargs) -> Any:
        """Make GET request and decode JSON."""
        return self._json(self._request("GET", path, **kwargs))

    def _post(self, path: str, data: Optional[dict] = None, **kwargs) -> Any:
        """Make POST request with a JSON body and decode JSON."""
        return self._json(self._request("POST", path, json=data or {}, **kwargs))

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ApiError("Invalid JSON in response", response.status_code) from e

    def get_challenges(self) -> Tuple[List[Challenge], Optional[str]]:
        """Fetch all challenges and the server's Date header."""
        response = self._request("GET", f"{self.API_BASE}/")
        challenges = [Challenge.from_api(c) for c in unwrap_list(self._json(response))]
        return challenges, response.headers.get("Date")

    def get_challenge(self, challenge_id: Any) -> Challenge:
        """Fetch challenge details (with nested MCQs and problems) by id."""
        return self._challenge_from(self._get(f"{self.API_BASE}/{challenge_id}/"))

    def get_challenge_by_slug(self, slug: str) -> Challenge:
        """Fetch challenge details by slug."""
        return self._challenge_from(self._get(f"{self.API_BASE}/slug/{slug}/"))

    @staticmethod
    def _challenge_from(payload: Any) -> Challenge:
        if isinstance(payload, dict) and payload.get("success") is False:
            raise ApiError(message_from_payload(payload, "Failed to fetch challenge details"))
        data = unwrap(payload)
        if not isinstance(data, dict):
            raise ApiError("Failed to fetch challenge details")
        return Challenge.from_api(data)

    def check_registration_status(self, challenge_id: Any, phone: str) -> RegistrationStatus:
        """Look up whether a phone is registered for a challenge."""
        data = self._get(
            f"{self.API_BASE}/{challenge_id}/registration-status/",
            params={"phone": phone},
        )
        return RegistrationStatus.from_api(data)

    def register(self, registration: dict) -> RegistrationResult:
        """Register for a challenge."""
        data = self._post(f"{self.API_BASE}/register/", registration)
        return RegistrationResult.from_api(data)

    def get_mcq_questions(
        self, challenge_id: Any, user_id: int, registration_id: int
    ) -> List[McqQuestion]:
        """Fetch MCQ questions for a registered user."""
        _require_identity(user_id, registration_id)
        data = self._get(
            f"{self.API_BASE}/{challenge_id}/mcq-questions/",
            params={"user_id": user_id, "registration_id": registration_id},
        )
        return [McqQuestion.from_api(q) for q in unwrap_list(data)]

    def submit_mcq_answers(
        self,
        challenge_id: Any,
        user_id: int,
        registration_id: int,
        submissions: List[dict],
    ) -> dict:
        """Submit MCQ answers."""
        _require_identity(user_id, registration_id)
        return self._post(
            f"{self.API_BASE}/{challenge_id}/mcq-submit/",
            {
                "user_id": user_id,
                "registration_id": registration_id,
                "submissions": submissions,
            },
        )

    def get_problems(
        self, challenge_id: Any, user_id: int, registration_id: int
    ) -> List[Problem]:
        """Fetch coding problems for a registered user."""
        _require_identity(user_id, registration_id)
        data = self._get(
            f"{self.API_BASE}/{challenge_id}/problems/",
            params={"user_id": user_id, "registration_id": registration_id},
        )
        return [Problem.from_api(p) for p in unwrap_list(data)]

    def run_sample(
        self,
        challenge_id: Any,
        problem_id: Any,
        user_id: int,
        registration_id: int,
        language: str,
        source_code: str,
    ) -> dict:
        """Run sample tests for a problem (no submission)."""
        _require_identity(user_id, registration_id)
        return self._post(
            f"{self.API_BASE}/{challenge_id}/problems/{problem_id}/sample-run/",
            {
                "user_id": user_id,
                "registration_id": registration_id,
                "language": language,
                "source_code": source_code,
            },
        )

    def submit_solution(
        self,
        challenge_id: Any,
        problem_id: Any,
        user_id: int,
        registration_id: int,
        access_code: Optional[str],
        language: str,
        source_code: str,
    ) -> dict:
        """Submit a solution for grading."""
        _require_identity(user_id, registration_id)
        data = {
            "user_id": user_id,
            "registration_id": registration_id,
            "language": language,
            "source_code": source_code,
        }
        if access_code:
            data["access_code"] = access_code
        return self._post(f"{self.API_BASE}/{challenge_id}/problems/{problem_id}/submit/", data)

    def get_my_score(
        self, challenge_id: Any, user_id: int, registration_id: Optional[int] = None
    ) -> Optional[Score]:
        """Get the user's score for a challenge."""
        if not user_id:
            raise ValueError("userId is required")
        params = {"user_id": user_id}
        if registration_id:
            params["registration_id"] = registration_id
        return Score.from_api(self._get(f"{self.API_BASE}/{challenge_id}/my-score/", params=params))

    def get_draft(
        self, challenge_id: Any, problem_id: Any, user_id: int, language: Optional[str] = None
    ) -> Optional[Draft]:
        """Fetch the stored draft for a problem."""
        params = {"user_id": user_id}
        if language:
            params["language"] = language
        data = self._get(
            f"{self.API_BASE}/{challenge_id}/problems/{problem_id}/draft/", params=params
        )
        return Draft.from_api(data)

    def save_draft(
        self, challenge_id: Any, problem_id: Any, user_id: int, language: str, source_code: str
    ) -> dict:
        """Save a code draft."""
        return self._post(
            f"{self.API_BASE}/{challenge_id}/problems/{problem_id}/draft/",
            {"user_id": user_id, "language": language, "source_code": source_code},
        )

    def get_server_time(self) -> Tuple[ServerTime, float]:
        """Read the server time reference.

        Returns the reading and the measured round trip in milliseconds.
        """
        started = time.perf_counter()
        response = self._request(
            "GET", "/student/server-time/", headers={"Cache-Control": "no-store"}
        )
        rtt_ms = (time.perf_counter() - started) * 1000
        return ServerTime.from_api(self._json(response)), rtt_ms
