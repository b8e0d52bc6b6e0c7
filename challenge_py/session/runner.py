"""Run/submit orchestration for coding problems."""

import asyncio
import logging
from typing import Any, Optional, Set

from ..client.errors import ApiError
from ..client.models import Problem, RunResult, SubmissionResult, SubmittedCode


logger = logging.getLogger(__name__)


class RunSubmitOrchestrator:
    """Runs sample tests or submits a solution, one request per problem at a time.

    At most one of ``run_result`` and ``submission_result`` is set. Every call
    and every ``clear`` bumps a generation; a response that comes back after
    a newer call or a clear is dropped.
    """

    def __init__(
        self,
        client,
        challenge_id: Any,
        user_id: Optional[int],
        registration_id: Optional[int],
        drafts=None,
    ):
        self.client = client
        self.challenge_id = challenge_id
        self.user_id = user_id
        self.registration_id = registration_id
        self.drafts = drafts

        self.run_result: Optional[RunResult] = None
        self.submission_result: Optional[SubmissionResult] = None
        self.error: Optional[str] = None
        self.frozen = False

        self._generation = 0
        self._in_flight: Set[str] = set()

    def is_locked(self, problem: Problem) -> bool:
        if self.drafts is not None:
            return self.drafts.is_locked(problem)
        return problem.is_solved

    def is_busy(self, problem: Problem) -> bool:
        return str(problem.id) in self._in_flight

    def clear(self) -> None:
        """Drop any shown run or submission result."""
        self.run_result = None
        self.submission_result = None
        self.error = None
        self._generation += 1

    def freeze(self) -> None:
        self.frozen = True

    def _begin(self, problem: Problem, code: str, action: str) -> Optional[int]:
        self.error = None
        if self.frozen:
            self.error = "The challenge has ended."
            return None
        if self.is_locked(problem):
            self.error = "This problem is solved. Enter edit mode to change it."
            return None
        if not (code or "").strip():
            self.error = f"Please write some code before {action}."
            return None
        key = str(problem.id)
        if key in self._in_flight:
            self.error = "Another request for this problem is still running."
            return None

        self.clear()
        self._in_flight.add(key)
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return not self.frozen and self._generation == generation

    async def run(self, problem: Problem, code: str, language: str) -> Optional[RunResult]:
        """Run the sample tests of a problem."""
        generation = self._begin(problem, code, "running")
        if generation is None:
            return None

        try:
            response = await asyncio.to_thread(
                self.client.run_sample,
                self.challenge_id,
                problem.id,
                self.user_id,
                self.registration_id,
                language,
                code,
            )
        except (ApiError, ValueError) as e:
            if self._is_current(generation):
                self.error = str(e) or "Failed to run code. Please try again."
            return None
        finally:
            self._in_flight.discard(str(problem.id))

        if not self._is_current(generation):
            logger.debug("Discarding stale run result for problem %s", problem.id)
            return None

        runner = response.get("data") if response.get("success") else None
        if not isinstance(runner, dict):
            self.error = response.get("message") or "Sample run failed"
            return None
        if not runner.get("status") or not runner.get("data"):
            self.error = runner.get("message") or "Sample run failed"
            return None

        self.run_result = RunResult.from_runner(runner)
        return self.run_result

    async def submit(
        self,
        problem: Problem,
        code: str,
        language: str,
        access_code: Optional[str] = None,
    ) -> Optional[SubmissionResult]:
        """Submit a solution for grading; an accepted verdict locks the problem."""
        generation = self._begin(problem, code, "submitting")
        if generation is None:
            return None

        try:
            response = await asyncio.to_thread(
                self.client.submit_solution,
                self.challenge_id,
                problem.id,
                self.user_id,
                self.registration_id,
                access_code,
                language,
                code,
            )
        except (ApiError, ValueError) as e:
            if self._is_current(generation):
                self.error = str(e) or "Failed to submit solution. Please try again."
            return None
        finally:
            self._in_flight.discard(str(problem.id))

        succeeded = response.get("success") and isinstance(response.get("data"), dict)
        result = SubmissionResult.from_api(response["data"]) if succeeded else None

        if not self._is_current(generation):
            # display is stale, the accepted verdict is not
            if result is not None and result.accepted:
                self._mark_accepted(problem, language, code)
            logger.debug("Discarding stale submission result for problem %s", problem.id)
            return None

        if result is None:
            self.error = response.get("message") or "Submission failed"
            return None

        self.submission_result = result
        if result.accepted:
            self._mark_accepted(problem, language, code)
        return result

    def _mark_accepted(self, problem: Problem, language: str, code: str) -> None:
        logger.info("Problem %s accepted", problem.id)
        if self.drafts is not None:
            self.drafts.mark_accepted(problem, language, code)
        else:
            problem.is_solved = True
            problem.user_submission = SubmittedCode(language=language, source_code=code)
