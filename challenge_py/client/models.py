"""Data models for challenge platform entities.

Every response envelope the backend produces is normalized here, so the rest
of the package never has to guess between alternate field names.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp into an aware datetime (UTC if naive)."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def unwrap(payload: Any) -> Any:
    """Strip a ``{"success": ..., "data": ...}`` envelope if present."""
    if isinstance(payload, dict) and "data" in payload and (
        "success" in payload or len(payload) <= 2
    ):
        return payload["data"]
    return payload


def unwrap_list(payload: Any) -> List[dict]:
    """Return the list inside an envelope, or an empty list."""
    data = unwrap(payload)
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    return []


@dataclass
class SubmittedCode:
    """Code of the last accepted submission for a problem."""

    language: str
    source_code: str

    @classmethod
    def from_api(cls, data: Optional[dict]) -> Optional["SubmittedCode"]:
        if not isinstance(data, dict):
            return None
        return cls(
            language=data.get("language") or "",
            source_code=data.get("source_code") or "",
        )


@dataclass
class SampleTestCase:
    """A reference test case shown before any run."""

    id: Any
    input: str
    output: str
    points: Optional[float] = None


@dataclass
class Problem:
    """Represents a coding problem in a challenge."""

    id: int
    title: str
    description: str = ""
    difficulty: str = ""
    points: Optional[float] = None
    interface_spec: Optional[dict] = None
    function_templates: Optional[dict] = None
    sample_test_cases: List[SampleTestCase] = field(default_factory=list)
    is_solved: bool = False
    user_submission: Optional[SubmittedCode] = None

    @classmethod
    def from_api(cls, data: dict) -> "Problem":
        samples = [
            SampleTestCase(
                id=t.get("id"),
                input=t.get("input_text") or "",
                output=t.get("expected_output") or "",
                points=t.get("points"),
            )
            for t in data.get("sample_test_cases") or []
            if isinstance(t, dict)
        ]
        return cls(
            id=data.get("id"),
            title=data.get("title") or "",
            description=data.get("description") or "",
            difficulty=data.get("difficulty") or "",
            points=data.get("points"),
            interface_spec=data.get("interface_spec") or None,
            function_templates=data.get("function_templates") or None,
            sample_test_cases=samples,
            is_solved=bool(data.get("is_solved")),
            user_submission=SubmittedCode.from_api(data.get("user_submission")),
        )


@dataclass
class McqOption:
    """An option of a multiple-choice question."""

    id: int
    text: str


@dataclass
class McqQuestion:
    """Represents an MCQ or fill-in-the-blank question."""

    id: int
    text: str
    question_type: str = "MULTIPLE_CHOICE"
    options: List[McqOption] = field(default_factory=list)
    points: Optional[float] = None

    @classmethod
    def from_api(cls, data: dict) -> "McqQuestion":
        options = [
            McqOption(id=o.get("id"), text=o.get("option_text") or o.get("text") or "")
            for o in data.get("options") or []
            if isinstance(o, dict)
        ]
        return cls(
            id=data.get("id"),
            text=data.get("question_text") or data.get("text") or "",
            question_type=data.get("question_type") or "MULTIPLE_CHOICE",
            options=options,
            points=data.get("points"),
        )


@dataclass
class Challenge:
    """Represents a challenge with its schedule and nested content."""

    id: int
    title: str
    slug: str = ""
    description: str = ""
    status: str = ""
    challenge_type: str = ""
    target_audience: str = ""
    registration_count: int = 0
    registration_start_at: Optional[datetime] = None
    registration_end_at: Optional[datetime] = None
    challenge_start_at: Optional[datetime] = None
    challenge_end_at: Optional[datetime] = None
    mcq_questions: List[McqQuestion] = field(default_factory=list)
    problems: List[Problem] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "Challenge":
        return cls(
            id=data.get("id"),
            title=data.get("title") or "",
            slug=data.get("slug") or "",
            description=data.get("description") or "",
            status=data.get("status") or "",
            challenge_type=data.get("challenge_type") or "",
            target_audience=data.get("target_audience") or "",
            registration_count=data.get("registration_count") or 0,
            registration_start_at=parse_datetime(data.get("registration_start_at")),
            registration_end_at=parse_datetime(data.get("registration_end_at")),
            challenge_start_at=parse_datetime(data.get("challenge_start_at")),
            challenge_end_at=parse_datetime(data.get("challenge_end_at")),
            mcq_questions=[
                McqQuestion.from_api(q)
                for q in data.get("mcq_questions") or []
                if isinstance(q, dict)
            ],
            problems=[
                Problem.from_api(p) for p in data.get("problems") or [] if isinstance(p, dict)
            ],
        )

    def get_problem(self, problem_id: Any) -> Optional[Problem]:
        """Find a problem by id (string or int)."""
        for problem in self.problems:
            if str(problem.id) == str(problem_id):
                return problem
        return None


@dataclass
class RegistrationStatus:
    """Normalized registration-status lookup."""

    is_registered: bool = False
    user_id: Optional[int] = None
    registration_id: Optional[int] = None
    user_name: Optional[str] = None
    details_required: bool = False

    @classmethod
    def from_api(cls, data: dict) -> "RegistrationStatus":
        data = data or {}
        nested = data.get("data") if isinstance(data.get("data"), dict) else {}
        user = nested.get("user") if isinstance(nested.get("user"), dict) else {}
        return cls(
            is_registered=bool(data.get("is_registered") or nested.get("is_registered")),
            user_id=data.get("user_id") or nested.get("user_id") or user.get("id"),
            registration_id=data.get("registration_id") or nested.get("registration_id"),
            user_name=data.get("user_name") or user.get("name") or None,
            details_required=bool(
                data.get("details_required") or nested.get("details_required")
            ),
        )


@dataclass
class RegistrationResult:
    """Normalized response of a registration call."""

    success: bool
    user_id: Optional[int] = None
    registration_id: Optional[int] = None
    access_code: Optional[str] = None
    message: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "RegistrationResult":
        data = data or {}
        nested = data.get("data") if isinstance(data.get("data"), dict) else {}
        return cls(
            success=bool(data.get("success", True)),
            user_id=data.get("user_id") or nested.get("user_id"),
            registration_id=data.get("registration_id") or nested.get("registration_id"),
            access_code=data.get("access_code") or nested.get("access_code"),
            message=data.get("message") or "",
        )


@dataclass
class Draft:
    """A stored code draft for a problem."""

    language: str
    source_code: str

    @classmethod
    def from_api(cls, payload: Any) -> Optional["Draft"]:
        data = unwrap(payload)
        if not isinstance(data, dict) or "source_code" not in data:
            return None
        return cls(language=data.get("language") or "", source_code=data.get("source_code") or "")


@dataclass
class TestCaseResult:
    """Represents the outcome of one test case."""

    __test__ = False

    seq_no: int
    status: str
    input: str = ""
    output: str = ""
    expected_output: str = ""
    error_message: str = ""
    time_ms: Optional[float] = None
    memory_kb: Optional[float] = None

    @classmethod
    def from_api(cls, data: dict, index: int) -> "TestCaseResult":
        raw_input = data.get("inputs_json") or data.get("input_text") or ""
        return cls(
            seq_no=data.get("seq_no") or index + 1,
            status=data.get("status") or "",
            input=raw_input if isinstance(raw_input, str) else str(raw_input),
            output=data.get("output_text") or data.get("output") or "",
            expected_output=data.get("expected_output") or "",
            error_message=data.get("error_message") or "",
            time_ms=data.get("time_ms"),
            memory_kb=data.get("memory_kb"),
        )


def parse_tests(tests: Any) -> List[TestCaseResult]:
    return [
        TestCaseResult.from_api(t, i) for i, t in enumerate(tests or []) if isinstance(t, dict)
    ]


@dataclass
class RunSummary:
    """Aggregate numbers of a sample run."""

    passed: int = 0
    tests_executed: int = 0
    total_tests_available: int = 0
    time_ms_total: Optional[float] = None

    @property
    def all_passed(self) -> bool:
        return self.tests_executed > 0 and self.passed == self.tests_executed


@dataclass
class RunResult:
    """Normalized result of a sample run."""

    status: bool
    tests: List[TestCaseResult] = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)

    @classmethod
    def from_runner(cls, runner: dict) -> "RunResult":
        inner = runner.get("data") or {}
        tests = parse_tests(inner.get("tests"))
        summary = inner.get("summary") or {}
        return cls(
            status=runner.get("status") is not False,
            tests=tests,
            summary=RunSummary(
                passed=summary.get("passed") or 0,
                tests_executed=summary.get("tests_executed") or len(tests),
                total_tests_available=summary.get("total_tests_available")
                or summary.get("total_tests")
                or 0,
                time_ms_total=summary.get("time_ms_total"),
            ),
        )


@dataclass
class SubmissionResult:
    """Normalized result of a graded submission."""

    verdict: str
    points_earned: Optional[float] = None
    tests: List[TestCaseResult] = field(default_factory=list)
    message: str = ""

    @property
    def accepted(self) -> bool:
        return self.verdict.upper() == "AC"

    @classmethod
    def from_api(cls, data: dict) -> "SubmissionResult":
        execution = data.get("execution_result") or {}
        submission = data.get("submission") or {}
        verdict = execution.get("verdict") or submission.get("verdict") or data.get("verdict") or ""
        points = (
            data.get("points_earned")
            if data.get("points_earned") is not None
            else submission.get("points_earned", submission.get("score"))
        )
        tests = execution.get("tests") or (execution.get("data") or {}).get("tests")
        return cls(
            verdict=verdict,
            points_earned=points,
            tests=parse_tests(tests),
            message=data.get("message") or "",
        )


@dataclass
class Score:
    """Represents the user's score in a challenge."""

    mcq_points: float = 0
    coding_points: float = 0
    total_mcq_points: float = 0
    total_coding_points: float = 0
    rank: Optional[int] = None

    @property
    def total(self) -> float:
        return self.mcq_points + self.coding_points

    @property
    def maximum(self) -> float:
        return self.total_mcq_points + self.total_coding_points

    @classmethod
    def from_api(cls, payload: Any) -> Optional["Score"]:
        data = unwrap(payload)
        if not isinstance(data, dict):
            return None
        return cls(
            mcq_points=data.get("mcq_points") or 0,
            coding_points=data.get("coding_points") or 0,
            total_mcq_points=data.get("total_mcq_points") or 0,
            total_coding_points=data.get("total_coding_points") or 0,
            rank=data.get("rank"),
        )


@dataclass
class ServerTime:
    """A reading of the server time reference."""

    server_ms: float
    timezone: str = "Asia/Kolkata"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ServerTime":
        if data.get("datetime"):
            parsed = parse_datetime(data["datetime"])
            if parsed is None:
                raise ValueError("Invalid server time parsed")
            server_ms = parsed.timestamp() * 1000
        elif data.get("unixtime") is not None:
            server_ms = float(data["unixtime"]) * 1000
        else:
            raise ValueError("No valid time data in response")
        return cls(server_ms=server_ms, timezone=data.get("timezone") or "Asia/Kolkata")
