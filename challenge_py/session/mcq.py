"""MCQ answering: local answer cache and submission."""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ValidationError, model_validator

from ..client.errors import ApiError, message_from_payload
from ..client.models import McqQuestion
from ..config.state import McqAnswerStore


logger = logging.getLogger(__name__)


class McqAnswer(BaseModel):
    """One answer as the backend expects it."""

    question_id: int
    selected_option_id: Optional[int] = None
    text_answer: Optional[str] = None

    @model_validator(mode="after")
    def check_answered(self) -> "McqAnswer":
        if self.text_answer is not None and not self.text_answer.strip():
            self.text_answer = None
        if self.selected_option_id is None and self.text_answer is None:
            raise ValueError("An answer is required")
        return self


class McqSession:
    """Answers for the MCQ part of one challenge.

    Answers are cached locally as they are given; ``submit`` sends them all.
    """

    def __init__(
        self,
        client,
        store: McqAnswerStore,
        challenge_id: Any,
        user_id: Optional[int],
        registration_id: Optional[int],
        questions: Optional[List[McqQuestion]] = None,
    ):
        self.client = client
        self.store = store
        self.challenge_id = challenge_id
        self.user_id = user_id
        self.registration_id = registration_id
        self.questions: List[McqQuestion] = list(questions or [])
        self.answers: Dict[str, dict] = store.answers(challenge_id)
        self.error: Optional[str] = None
        self.frozen = False
        self._saving: Set[str] = set()

    @property
    def submitted(self) -> bool:
        return self.store.is_submitted(self.challenge_id)

    def question(self, question_id: Any) -> Optional[McqQuestion]:
        for question in self.questions:
            if str(question.id) == str(question_id):
                return question
        return None

    def answer(
        self,
        question_id: Any,
        selected_option_id: Optional[int] = None,
        text_answer: Optional[str] = None,
    ) -> bool:
        """Record an answer; picking the selected option again clears it."""
        self.error = None
        if self.frozen:
            self.error = "The challenge has ended."
            return False

        question = self.question(question_id)
        if question is None:
            self.error = f"Unknown question {question_id}"
            return False

        key = str(question.id)
        current = self.answers.get(key) or {}
        reselected = current.get("selected_option_id") == selected_option_id
        if selected_option_id is not None and reselected:
            return self.clear(question.id)

        if question.question_type == "FILL_IN_BLANK":
            if not (text_answer or "").strip():
                self.error = "Please type an answer"
                return False
            selected_option_id = None
            text_answer = text_answer.strip()
        else:
            option_ids = {str(o.id) for o in question.options}
            if selected_option_id is None or str(selected_option_id) not in option_ids:
                self.error = "Please choose one of the listed options"
                return False
            text_answer = None

        try:
            parsed = McqAnswer(
                question_id=question.id,
                selected_option_id=selected_option_id,
                text_answer=text_answer,
            )
        except ValidationError as e:
            self.error = e.errors()[0].get("msg", "Invalid answer")
            return False

        self.answers[key] = parsed.model_dump(exclude={"question_id"})
        self.store.save_answers(self.challenge_id, self.answers)
        return True

    def clear(self, question_id: Any) -> bool:
        if self.frozen:
            return False
        self.answers.pop(str(question_id), None)
        self.store.save_answers(self.challenge_id, self.answers)
        return True

    def submissions(self) -> List[dict]:
        return [
            {
                "question_id": int(question_id),
                "selected_option_id": answer.get("selected_option_id") or None,
                "text_answer": answer.get("text_answer") or None,
            }
            for question_id, answer in self.answers.items()
        ]

    async def save_answer(self, question_id: Any) -> bool:
        """Send a single answer right away; failures are only logged."""
        key = str(question_id)
        if self.frozen or key in self._saving:
            return False
        answer = self.answers.get(key) or {}
        submission = {
            "question_id": int(question_id),
            "selected_option_id": answer.get("selected_option_id") or None,
            "text_answer": answer.get("text_answer") or None,
        }
        self._saving.add(key)
        try:
            await asyncio.to_thread(
                self.client.submit_mcq_answers,
                self.challenge_id,
                self.user_id,
                self.registration_id,
                [submission],
            )
        except (ApiError, ValueError) as e:
            logger.debug("Saving answer %s failed: %s", key, e)
            return False
        finally:
            self._saving.discard(key)
        return True

    async def submit(self) -> bool:
        """Submit all answers; cached answers are kept for review."""
        self.error = None
        if self.frozen:
            self.error = "The challenge has ended."
            return False
        if not self.answers:
            self.error = "Please answer at least one question before submitting."
            return False

        try:
            response = await asyncio.to_thread(
                self.client.submit_mcq_answers,
                self.challenge_id,
                self.user_id,
                self.registration_id,
                self.submissions(),
            )
        except ApiError as e:
            self.error = message_from_payload(
                e.data, e.message or "Failed to submit answers. Please try again."
            )
            return False
        except ValueError as e:
            self.error = str(e)
            return False

        if isinstance(response, dict) and response.get("success") is False:
            self.error = response.get("message") or "Failed to submit answers. Please try again."
            return False

        self.store.mark_submitted(self.challenge_id)
        logger.info("Submitted %d answers for challenge %s", len(self.answers), self.challenge_id)
        return True

    def freeze(self) -> None:
        self.frozen = True
