"""Server-corrected clock, challenge status and countdown."""

import asyncio
import logging
import math
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, List, NamedTuple, Optional

from ..client.errors import ApiError
from ..client.models import Challenge


logger = logging.getLogger(__name__)

SYNC_INTERVAL_MS = 5 * 60 * 1000
MAX_OFFSET_MS = 24 * 60 * 60 * 1000


def local_ms() -> float:
    return time.time() * 1000


class ChallengeStatus(str, Enum):
    UPCOMING = "upcoming"
    REGISTRATION_OPEN = "registration_open"
    ONGOING = "ongoing"
    ENDED = "ended"
    AVAILABLE = "available"


def derive_status(challenge: Challenge, now: datetime) -> ChallengeStatus:
    """Status of a challenge at ``now``; exactly one status always applies.

    A running challenge window wins over any registration window.
    """
    reg_start = challenge.registration_start_at
    reg_end = challenge.registration_end_at
    start = challenge.challenge_start_at
    end = challenge.challenge_end_at

    if start and end and start <= now <= end:
        return ChallengeStatus.ONGOING
    if reg_start and now < reg_start:
        return ChallengeStatus.UPCOMING
    if reg_start and reg_end and reg_start <= now <= reg_end:
        if challenge.status.upper() == "PUBLISHED":
            return ChallengeStatus.UPCOMING
        return ChallengeStatus.REGISTRATION_OPEN
    if end and now > end:
        return ChallengeStatus.ENDED
    return ChallengeStatus.AVAILABLE


class Countdown(NamedTuple):
    hours: int
    minutes: int
    seconds: int

    @property
    def expired(self) -> bool:
        return self.hours == 0 and self.minutes == 0 and self.seconds == 0

    @property
    def urgent(self) -> bool:
        return self.hours == 0 and self.minutes < 5

    def __str__(self) -> str:
        return f"{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d}"


def countdown(end: Optional[datetime], now: datetime) -> Countdown:
    """Whole hours, minutes and seconds left until ``end``, never negative."""
    if end is None:
        return Countdown(0, 0, 0)
    remaining = max(0, math.ceil((end - now).total_seconds()))
    hours, rest = divmod(remaining, 3600)
    minutes, seconds = divmod(rest, 60)
    return Countdown(hours, minutes, seconds)


def filter_challenges(
    challenges: Iterable[Challenge], now: datetime, search: Optional[str] = None
) -> List[Challenge]:
    """Challenges worth listing: open, not yet ended, or marked active."""
    visible = []
    for challenge in challenges:
        if challenge.challenge_type.upper() != "PUBLIC":
            continue
        reg_start = challenge.registration_start_at
        reg_end = challenge.registration_end_at
        end = challenge.challenge_end_at
        registration_open = bool(reg_start and reg_end and reg_start <= now <= reg_end)
        not_over = bool(end and now <= end)
        backend_active = challenge.status.upper() in ("REGISTRATION", "ACTIVE")
        if not (registration_open or not_over or backend_active):
            continue
        if search:
            needle = search.lower()
            haystack = f"{challenge.title}\n{challenge.description}".lower()
            if needle not in haystack:
                continue
        visible.append(challenge)
    return visible


class SessionClock:
    """Holds the offset between the local clock and the server clock.

    ``time_source`` returns local epoch milliseconds and is injectable for
    tests.
    """

    def __init__(self, client, time_source: Callable[[], float] = local_ms):
        self.client = client
        self.time_source = time_source
        self.offset_ms = 0.0
        self.last_sync_ms: Optional[float] = None
        self._inflight: Optional[asyncio.Future] = None

    def now_ms(self) -> float:
        return self.time_source() + self.offset_ms

    def now(self) -> datetime:
        return datetime.fromtimestamp(self.now_ms() / 1000, tz=timezone.utc)

    def is_synced(self) -> bool:
        return self.last_sync_ms is not None and abs(self.offset_ms) < MAX_OFFSET_MS

    async def sync(self, force: bool = False) -> float:
        """Refresh the offset; concurrent callers share one request.

        Returns the offset in milliseconds. Failures keep the previous offset.
        """
        if self._inflight is not None and not self._inflight.done():
            return await asyncio.shield(self._inflight)
        if (
            not force
            and self.last_sync_ms is not None
            and self.time_source() - self.last_sync_ms < SYNC_INTERVAL_MS
        ):
            return self.offset_ms

        self._inflight = asyncio.ensure_future(self._sync())
        return await asyncio.shield(self._inflight)

    async def _sync(self) -> float:
        try:
            reading, rtt_ms = await asyncio.to_thread(self.client.get_server_time)
        except (ApiError, ValueError) as e:
            logger.debug("Time sync failed, keeping offset %.0f ms: %s", self.offset_ms, e)
            return self.offset_ms

        local_after = self.time_source()
        self.offset_ms = reading.server_ms - (local_after - rtt_ms / 2)
        self.last_sync_ms = local_after
        logger.debug("Clock offset %.0f ms (rtt %.0f ms)", self.offset_ms, rtt_ms)
        return self.offset_ms


class SessionTimer:
    """Ticks once a second until ``end_at`` and fires ``on_end`` once."""

    def __init__(
        self,
        clock: SessionClock,
        end_at: Optional[datetime],
        on_end: Callable[[], None],
        on_tick: Optional[Callable[[Countdown], None]] = None,
        tick_seconds: float = 1.0,
        resync_seconds: float = SYNC_INTERVAL_MS / 1000,
        sleep=asyncio.sleep,
    ):
        self.clock = clock
        self.end_at = end_at
        self.on_end = on_end
        self.on_tick = on_tick
        self.tick_seconds = tick_seconds
        self.resync_seconds = resync_seconds
        self.sleep = sleep
        self.ended = False
        self._task: Optional[asyncio.Task] = None
        self._resync: Optional[asyncio.Task] = None

    def remaining(self) -> Countdown:
        return countdown(self.end_at, self.clock.now())

    def _finish(self) -> None:
        if self.ended:
            return
        self.ended = True
        logger.info("Challenge time is over")
        self.on_end()

    async def run(self) -> None:
        if self.end_at is None:
            logger.debug("No end time, timer not started")
            return
        since_resync = 0.0
        while True:
            left = self.remaining()
            if self.on_tick:
                self.on_tick(left)
            if left.expired:
                self._finish()
                return
            await self.sleep(self.tick_seconds)
            since_resync += self.tick_seconds
            if since_resync >= self.resync_seconds:
                since_resync = 0.0
                if self._resync is None or self._resync.done():
                    self._resync = asyncio.ensure_future(self.clock.sync())

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self.run())
        return self._task

    def stop(self) -> None:
        for task in (self._task, self._resync):
            if task is not None and not task.done():
                task.cancel()
