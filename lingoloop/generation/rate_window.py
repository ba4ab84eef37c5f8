"""
Generation Window Guard

Refuses a new bulk generation for a (topic, exercise type) pair while a
previous one for the same pair is younger than the window. The newest
persisted deliverable is the primary signal; requests accepted by this
process are also remembered so a double submit is caught before the
first request has stored anything.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from lingoloop.common.error_handling import RateLimitedError
from lingoloop.common.logger import app_logger
from lingoloop.domain.models import ExerciseType
from lingoloop.domain.repository import DeliverableRepository

logger = app_logger.getChild("generation.rate_window")

DEFAULT_WINDOW_SECONDS = 120


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class WindowCheck:
    blocked: bool
    seconds_remaining: float = 0.0


class RateWindowGuard:
    """
    Time-window check per (topic, exercise type) pair.

    Examples:
        guard = RateWindowGuard(repository)
        check = await guard.check_window("topic-1", ExerciseType.FILL_BLANK)
        if check.blocked:
            ...
    """

    def __init__(
        self,
        repository: DeliverableRepository,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.repository = repository
        self.window_seconds = window_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._accepted: Dict[Tuple[str, ExerciseType], datetime] = {}

    async def _last_event(self, topic_id: str, exercise_type: ExerciseType) -> Optional[datetime]:
        persisted = await self.repository.latest_created_at(topic_id, exercise_type)
        local = self._accepted.get((topic_id, exercise_type))
        candidates = [_aware(t) for t in (persisted, local) if t is not None]
        return max(candidates) if candidates else None

    async def check_window(
        self,
        topic_id: str,
        exercise_type: ExerciseType,
        window_seconds: Optional[int] = None
    ) -> WindowCheck:
        """
        Check whether a generation for the pair may start now.

        Args:
            topic_id: Topic identifier
            exercise_type: Exercise type
            window_seconds: Window override

        Returns:
            ``WindowCheck`` with ``seconds_remaining > 0`` when blocked
        """
        window = self.window_seconds if window_seconds is None else window_seconds
        last = await self._last_event(topic_id, exercise_type)
        if last is None:
            return WindowCheck(blocked=False)

        elapsed = (self._clock() - last).total_seconds()
        if elapsed < window:
            return WindowCheck(blocked=True, seconds_remaining=window - elapsed)
        return WindowCheck(blocked=False)

    async def acquire(self, topic_id: str, exercise_type: ExerciseType) -> None:
        """
        Claim the window for the pair or refuse.

        Raises:
            RateLimitedError: a generation for the pair happened within the window
        """
        check = await self.check_window(topic_id, exercise_type)
        if check.blocked:
            remaining = round(check.seconds_remaining)
            logger.warning(
                f"Generation for {topic_id}/{exercise_type.value} blocked for another {remaining}s"
            )
            raise RateLimitedError(
                f"Generation for this topic and exercise type ran less than "
                f"{self.window_seconds} seconds ago. Wait {max(1, remaining)} seconds.",
                retry_after=check.seconds_remaining,
                context={"topic_id": topic_id, "exercise_type": exercise_type.value}
            )
        now = self._clock()
        self._forget_expired(now)
        self._accepted[(topic_id, exercise_type)] = now

    def _forget_expired(self, now: datetime) -> None:
        expired = [
            key for key, accepted_at in self._accepted.items()
            if (now - _aware(accepted_at)).total_seconds() >= self.window_seconds
        ]
        for key in expired:
            del self._accepted[key]
