"""Draft sync engine: keeps the code buffer of each problem saved on the backend."""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional, Set, Tuple

from ..client.errors import ApiError
from ..client.models import Problem, SubmittedCode
from .templates import generate_code_template, normalize_draft_text


logger = logging.getLogger(__name__)

SAVE_DELAY = 3.0

DraftKey = Tuple[str, str]


class DraftState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    DRAFT_LOADED = "draft_loaded"
    TEMPLATE_LOADED = "template_loaded"
    LOCKED_SOLVED = "locked_solved"
    EDITING = "editing"
    SAVE_PENDING = "save_pending"
    SAVING = "saving"
    SAVED = "saved"


def draft_key(problem_id: Any, language: str) -> DraftKey:
    return (str(problem_id), language)


def template_for(problem: Problem, language: str) -> str:
    return generate_code_template(language, problem.interface_spec, problem.function_templates)


def should_persist(code: str, template: str) -> bool:
    """Empty buffers and untouched templates are never saved."""
    normalized = normalize_draft_text(code)
    if not normalized:
        return False
    normalized_template = normalize_draft_text(template)
    return not (normalized_template and normalized == normalized_template)


class DraftSyncEngine:
    """Buffer, cache and debounced saver for the selected problem and language.

    ``edit`` schedules its save on the running event loop, so it must be
    called from inside a coroutine.
    """

    def __init__(
        self,
        client,
        challenge_id: Any,
        user_id: Optional[int],
        save_delay: float = SAVE_DELAY,
    ):
        self.client = client
        self.challenge_id = challenge_id
        self.user_id = user_id
        self.save_delay = save_delay

        self.problem: Optional[Problem] = None
        self.language: Optional[str] = None
        self.code = ""
        self.edit_mode = False
        self.frozen = False

        self.cache: Dict[DraftKey, str] = {}
        self._last_saved: Dict[DraftKey, str] = {}
        self._saving: Set[DraftKey] = set()
        self._states: Dict[DraftKey, DraftState] = {}
        self._pending: Optional[Tuple[Problem, str, str]] = None
        self._timer: Optional[asyncio.Task] = None

    def state(self, problem_id: Any = None, language: Optional[str] = None) -> DraftState:
        """State of a (problem, language) key, the current one by default."""
        if problem_id is None:
            if self.problem is None or self.language is None:
                return DraftState.UNLOADED
            problem_id, language = self.problem.id, self.language
        return self._states.get(draft_key(problem_id, language), DraftState.UNLOADED)

    def _set_state(self, problem: Problem, language: str, state: DraftState) -> None:
        self._states[draft_key(problem.id, language)] = state

    def is_locked(self, problem: Optional[Problem] = None) -> bool:
        """A solved problem is read-only unless edit mode is on for it."""
        problem = problem or self.problem
        if problem is None or not problem.is_solved:
            return False
        current = self.problem is not None and str(problem.id) == str(self.problem.id)
        return not (self.edit_mode and current)

    @property
    def locked(self) -> bool:
        return self.is_locked()

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    async def select(self, problem: Problem, language: str) -> str:
        """Load the buffer for a problem and language.

        Solved problems show the accepted submission. Otherwise the local
        cache is used, then the backend draft, then the generated template.
        """
        await self.flush()
        self.problem = problem
        self.language = language

        if self.is_locked(problem):
            submission = problem.user_submission
            if submission is not None:
                self.language = submission.language or language
                self.code = submission.source_code
            else:
                self.code = template_for(problem, language)
            self._set_state(problem, self.language, DraftState.LOCKED_SOLVED)
            return self.code

        key = draft_key(problem.id, language)
        template = template_for(problem, language)
        self._set_state(problem, language, DraftState.LOADING)

        cached = self.cache.get(key)
        if cached is not None:
            loaded = cached if should_persist(cached, template) else None
        else:
            loaded = await self._fetch(problem, language, template)

        if self.problem is not problem or self.language != language:
            # Another selection happened while the draft was loading
            return self.code

        if loaded is not None:
            self.code = loaded
            self._set_state(problem, language, DraftState.DRAFT_LOADED)
        else:
            self.code = template
            self._set_state(problem, language, DraftState.TEMPLATE_LOADED)
        return self.code

    async def _fetch(self, problem: Problem, language: str, template: str) -> Optional[str]:
        if not self.user_id:
            return None
        try:
            draft = await asyncio.to_thread(
                self.client.get_draft, self.challenge_id, problem.id, self.user_id, language
            )
        except ApiError as e:
            logger.debug("Draft fetch failed for problem %s: %s", problem.id, e)
            return None
        if draft and draft.language == language and should_persist(draft.source_code, template):
            return draft.source_code
        return None

    def edit(self, code: str) -> bool:
        """Update the buffer now and schedule a save after a quiet period."""
        if self.frozen or self.problem is None or self.language is None or self.is_locked():
            return False

        self.code = code
        self._pending = (self.problem, self.language, code)
        self._set_state(self.problem, self.language, DraftState.SAVE_PENDING)
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.ensure_future(self._save_later())
        return True

    async def _save_later(self) -> None:
        await asyncio.sleep(self.save_delay)
        self._timer = None
        pending, self._pending = self._pending, None
        if pending is not None:
            await self.save(*pending)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def flush(self) -> bool:
        """Save the pending edit right away, if there is one."""
        self._cancel_timer()
        pending, self._pending = self._pending, None
        if pending is None:
            return False
        return await self.save(*pending)

    async def save(self, problem: Problem, language: str, code: str) -> bool:
        """Write one draft; returns True only when a request was made and succeeded.

        Failures are logged and otherwise ignored.
        """
        if self.frozen or not self.user_id:
            return False
        if problem is self.problem and self.is_locked(problem):
            return False
        if not should_persist(code, template_for(problem, language)):
            return False

        key = draft_key(problem.id, language)
        normalized = normalize_draft_text(code)
        if self._last_saved.get(key) == normalized:
            return False
        if key in self._saving:
            logger.debug("Save already running for %s, dropped", key)
            return False

        self._saving.add(key)
        self._states[key] = DraftState.SAVING
        try:
            await asyncio.to_thread(
                self.client.save_draft, self.challenge_id, problem.id, self.user_id, language, code
            )
        except ApiError as e:
            logger.debug("Draft save failed for %s: %s", key, e)
            self._states[key] = DraftState.EDITING
            return False
        finally:
            self._saving.discard(key)

        self._last_saved[key] = normalized
        self.cache[key] = code
        if self._pending is not None and draft_key(self._pending[0].id, self._pending[1]) == key:
            self._states[key] = DraftState.SAVE_PENDING
        else:
            self._states[key] = DraftState.SAVED
        return True

    async def _save_current(self) -> None:
        await self.flush()
        if self.problem is not None and self.language is not None and not self.is_locked():
            await self.save(self.problem, self.language, self.code)

    async def switch_language(self, language: str) -> str:
        """Save the current buffer, then load ``language`` for the same problem."""
        if self.problem is None or self.frozen:
            return self.code
        if self.is_locked() or language == self.language:
            return self.code
        await self._save_current()
        return await self.select(self.problem, language)

    async def switch_problem(self, problem: Problem, language: Optional[str] = None) -> str:
        """Save the current buffer, then load another problem."""
        if not self.frozen:
            await self._save_current()
        self.edit_mode = False
        return await self.select(problem, language or self.language or "python")

    def enter_edit_mode(self) -> bool:
        """Unlock a solved problem, keeping the accepted code as the buffer."""
        if self.frozen or self.problem is None or not self.problem.is_solved:
            return False
        self.edit_mode = True
        self._set_state(self.problem, self.language, DraftState.EDITING)
        return True

    async def exit_edit_mode(self) -> str:
        """Lock the solved problem again and show the accepted submission."""
        await self.flush()
        self.edit_mode = False
        if self.problem is None:
            return self.code
        return await self.select(self.problem, self.language)

    def mark_accepted(self, problem: Problem, language: str, code: str) -> None:
        """Record an accepted submission and re-lock the problem."""
        problem.is_solved = True
        problem.user_submission = SubmittedCode(language=language, source_code=code)
        if self._pending is not None and str(self._pending[0].id) == str(problem.id):
            self._cancel_timer()
            self._pending = None
        if self.problem is not None and str(self.problem.id) == str(problem.id):
            self.edit_mode = False
            self.problem = problem
            self.language = language
            self.code = code
        self._set_state(problem, language, DraftState.LOCKED_SOLVED)

    def freeze(self) -> None:
        """Stop all saving; later edits are rejected."""
        self.frozen = True
        self._cancel_timer()
        self._pending = None
