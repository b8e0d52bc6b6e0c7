"""One user's session in one challenge."""

import asyncio
import logging
from typing import Any, Callable, List, Optional

from ..client.models import Challenge, McqQuestion, Problem
from ..config.state import (
    AccessCodeStore,
    McqAnswerStore,
    PreferenceStore,
    StateFile,
    VerificationStore,
)
from .clock import (
    ChallengeStatus,
    Countdown,
    SessionClock,
    SessionTimer,
    countdown,
    derive_status,
    local_ms,
)
from .drafts import DraftSyncEngine
from .mcq import McqSession
from .phone import DEFAULT_COUNTRY_CODE
from .registration import RegistrationOutcome, RegistrationResolver, SessionIdentity
from .runner import RunSubmitOrchestrator
from .state import SessionEvent, SessionMachine, SessionState, can_access_content
from .verification import VerificationGate


logger = logging.getLogger(__name__)


def is_slug(challenge_ref: Any) -> bool:
    return not str(challenge_ref).strip().isdigit()


class ChallengeSession:
    """Owns the stores and components of a session and wires them together.

    Components are created by ``load`` and share one ``SessionMachine``;
    content becomes reachable once the machine is REGISTERED.
    """

    def __init__(
        self,
        client,
        challenge_ref: Any,
        provider=None,
        state_file: Optional[StateFile] = None,
        country_code: str = DEFAULT_COUNTRY_CODE,
        time_source: Callable[[], float] = local_ms,
        save_delay: Optional[float] = None,
    ):
        self.client = client
        self.challenge_ref = challenge_ref
        self.provider = provider
        self.country_code = country_code
        self.save_delay = save_delay

        self.state_file = state_file if state_file is not None else StateFile()
        self.verifications = VerificationStore(self.state_file)
        self.access_codes = AccessCodeStore(self.state_file)
        self.mcq_answers = McqAnswerStore(self.state_file)
        self.preferences = PreferenceStore(self.state_file)

        self.machine = SessionMachine()
        self.identity = SessionIdentity()
        self.clock = SessionClock(client, time_source)

        self.challenge: Optional[Challenge] = None
        self.gate: Optional[VerificationGate] = None
        self.resolver: Optional[RegistrationResolver] = None
        self.drafts: Optional[DraftSyncEngine] = None
        self.runner: Optional[RunSubmitOrchestrator] = None
        self.mcq: Optional[McqSession] = None
        self.timer: Optional[SessionTimer] = None
        self.end_callbacks: List[Callable[[], None]] = []

    @property
    def state(self) -> SessionState:
        return self.machine.state

    @property
    def ended(self) -> bool:
        return self.machine.ended

    def status(self) -> ChallengeStatus:
        if self.challenge is None:
            raise ValueError("Challenge is not loaded")
        return derive_status(self.challenge, self.clock.now())

    async def load(self) -> Challenge:
        """Fetch the challenge (by id or slug) and sync the clock."""
        if is_slug(self.challenge_ref):
            fetch = self.client.get_challenge_by_slug
        else:
            fetch = self.client.get_challenge
        self.challenge = await asyncio.to_thread(fetch, str(self.challenge_ref).strip())
        await self.clock.sync()

        self.verifications.clear_expired()
        self.gate = VerificationGate(
            self.provider,
            self.verifications,
            self.challenge.id,
            machine=self.machine,
            country_code=self.country_code,
        )
        self.resolver = RegistrationResolver(
            self.client, self.access_codes, machine=self.machine, identity=self.identity
        )
        logger.debug("Loaded challenge %s (%s)", self.challenge.id, self.challenge.title)
        return self.challenge

    def _require_loaded(self) -> Challenge:
        if self.challenge is None or self.gate is None:
            raise ValueError("Challenge is not loaded")
        return self.challenge

    async def restore(
        self, preferred_phone: Optional[str] = None
    ) -> Optional[RegistrationOutcome]:
        """Skip phone verification using a stored grant, then resolve registration."""
        self._require_loaded()
        phone = self.gate.restore(preferred_phone)
        if phone is None:
            return None
        return await self.resolve()

    async def resolve(self) -> Optional[RegistrationOutcome]:
        """Resolve registration for the verified phone."""
        challenge = self._require_loaded()
        if not self.gate.is_verified:
            self.resolver.error = "Please verify your phone number first."
            return None
        outcome = await self.resolver.resolve(challenge.id, self.gate.verified_phone)
        if self.state is SessionState.REGISTERED:
            self._build_workspace()
        return outcome

    async def register(self, details: dict) -> bool:
        """Register with form details; the phone must still be the verified one."""
        challenge = self._require_loaded()
        phone = details.get("phone") or self.gate.verified_phone or ""
        if not self.gate.is_phone_consistent(phone):
            self.resolver.error = self.gate.error
            return False
        payload = dict(details, phone=self.gate.verified_phone, challenge_id=challenge.id)
        result = await self.resolver.register(payload)
        if result is None:
            return False
        self._build_workspace()
        return True

    def _build_workspace(self) -> None:
        if self.drafts is not None or not self.identity.complete:
            return
        challenge = self._require_loaded()
        kwargs = {} if self.save_delay is None else {"save_delay": self.save_delay}
        self.drafts = DraftSyncEngine(
            self.client, challenge.id, self.identity.user_id, **kwargs
        )
        self.runner = RunSubmitOrchestrator(
            self.client,
            challenge.id,
            self.identity.user_id,
            self.identity.registration_id,
            drafts=self.drafts,
        )
        self.mcq = McqSession(
            self.client,
            self.mcq_answers,
            challenge.id,
            self.identity.user_id,
            self.identity.registration_id,
            questions=challenge.mcq_questions,
        )

    def _require_registered(self) -> Challenge:
        challenge = self._require_loaded()
        if not can_access_content(self.state) or not self.identity.complete:
            raise ValueError("Registration is required before accessing challenge content")
        return challenge

    async def problems(self) -> List[Problem]:
        """Coding problems for the registered user."""
        challenge = self._require_registered()
        problems = await asyncio.to_thread(
            self.client.get_problems,
            challenge.id,
            self.identity.user_id,
            self.identity.registration_id,
        )
        if problems:
            challenge.problems = problems
        return challenge.problems

    async def mcq_questions(self) -> List[McqQuestion]:
        """MCQ questions, from the challenge details or the questions endpoint."""
        challenge = self._require_registered()
        if not challenge.mcq_questions:
            challenge.mcq_questions = await asyncio.to_thread(
                self.client.get_mcq_questions,
                challenge.id,
                self.identity.user_id,
                self.identity.registration_id,
            )
        if self.mcq is not None:
            self.mcq.questions = list(challenge.mcq_questions)
        return challenge.mcq_questions

    def language_for(self, problem: Problem, default: str = "python") -> str:
        challenge = self._require_loaded()
        return self.preferences.language_for(challenge.id, problem.id) or default

    def remember_language(self, problem: Problem, language: str) -> None:
        challenge = self._require_loaded()
        self.preferences.set_language(challenge.id, problem.id, language)

    def remaining(self) -> Countdown:
        challenge = self._require_loaded()
        return countdown(challenge.challenge_end_at, self.clock.now())

    def start_timer(
        self,
        on_tick: Optional[Callable[[Countdown], None]] = None,
        **kwargs,
    ) -> asyncio.Task:
        """Start the countdown; the session ends when it reaches zero."""
        challenge = self._require_loaded()
        if self.timer is None:
            self.timer = SessionTimer(
                self.clock, challenge.challenge_end_at, self.end, on_tick=on_tick, **kwargs
            )
        return self.timer.start()

    def end(self) -> None:
        """Move to the terminal state; runs once, later calls do nothing."""
        if self.ended:
            return
        self.machine.apply(SessionEvent.SESSION_ENDED)
        for component in (self.drafts, self.runner, self.mcq):
            if component is not None:
                component.freeze()
        if self.timer is not None:
            self.timer.ended = True
        logger.info("Session ended for challenge %s", self.challenge_ref)
        for callback in self.end_callbacks:
            callback()

    def close(self) -> None:
        if self.timer is not None:
            self.timer.stop()
