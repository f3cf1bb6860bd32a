"""Retest scheduling: attempt history, cooldown enforcement, and readiness."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from uwa.certification.schemas import CertificationAttempt, Requirement, RetestStatus
from uwa.progress.schemas import GameProgress
from uwa.timeutils import MS_PER_HOUR, hours_to_ms, now_ms

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_HOURS = 48


def can_retest(
    last_attempt_time: int | None,
    now: int | None = None,
    cooldown_hours: float = DEFAULT_COOLDOWN_HOURS,
) -> RetestStatus:
    """Whether the cooldown since ``last_attempt_time`` has elapsed.

    The retest opens exactly at ``last_attempt_time + cooldown``. Before that,
    ``hours_remaining`` is the remaining time rounded up to whole hours.
    """
    if last_attempt_time is None:
        return RetestStatus(can_retest=True)
    if now is None:
        now = now_ms()

    next_retest_time = last_attempt_time + hours_to_ms(cooldown_hours)
    if now >= next_retest_time:
        return RetestStatus(can_retest=True)

    remaining = next_retest_time - now
    return RetestStatus(
        can_retest=False,
        next_retest_time=next_retest_time,
        hours_remaining=-(-remaining // MS_PER_HOUR),
    )


def is_improving(attempts: Sequence[CertificationAttempt]) -> bool:
    """True when every attempt scored at least as well as the one before it."""
    return all(
        later.overall_score >= earlier.overall_score
        for earlier, later in zip(attempts, attempts[1:])
    )


def average_improvement(attempts: Sequence[CertificationAttempt]) -> float:
    """Mean score change between consecutive attempts; 0.0 with fewer than two."""
    if len(attempts) < 2:
        return 0.0
    deltas = [
        later.overall_score - earlier.overall_score
        for earlier, later in zip(attempts, attempts[1:])
    ]
    return sum(deltas) / len(deltas)


def is_ready_for_retest(
    game_progress: Sequence[GameProgress],
    requirements: Sequence[Requirement],
) -> bool:
    """Every requirement has a progress record whose best score reaches it."""
    by_type = {p.game_type: p for p in game_progress}
    for req in requirements:
        progress = by_type.get(req.game_type)
        if progress is None:
            return False
        if progress.best_score < req.required_score:
            return False
    return True


def record_game_result(
    progress: GameProgress,
    score: float,
    time_spent: float,
    now: int | None = None,
) -> GameProgress:
    """Fold one practice result into a game's progress.

    Best score and achievements only ever grow; completed levels grow by one
    but never past the game's total.
    """
    if now is None:
        now = now_ms()
    plays = progress.completed_levels + 1
    return progress.model_copy(
        update={
            "best_score": max(progress.best_score, score),
            "average_score": (progress.average_score * progress.completed_levels + score) / plays,
            "completed_levels": min(plays, progress.total_levels),
            "time_spent": progress.time_spent + time_spent,
            "last_played": now,
        }
    )


class AttemptHistory:
    """Append-only, chronologically ordered certification attempts for one learner."""

    def __init__(self, attempts: Iterable[CertificationAttempt] = ()) -> None:
        self._attempts: list[CertificationAttempt] = []
        for attempt in sorted(attempts, key=lambda a: a.timestamp):
            self._attempts.append(attempt)

    def __len__(self) -> int:
        return len(self._attempts)

    @property
    def attempts(self) -> tuple[CertificationAttempt, ...]:
        return tuple(self._attempts)

    @property
    def latest(self) -> CertificationAttempt | None:
        return self._attempts[-1] if self._attempts else None

    @property
    def failed(self) -> list[CertificationAttempt]:
        return [a for a in self._attempts if not a.passed]

    @property
    def last_failed(self) -> CertificationAttempt | None:
        failed = self.failed
        return failed[-1] if failed else None

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def append(self, attempt: CertificationAttempt) -> None:
        latest = self.latest
        if latest is not None and attempt.timestamp < latest.timestamp:
            msg = (
                f"Attempt at {attempt.timestamp} predates the latest recorded "
                f"attempt at {latest.timestamp}"
            )
            raise ValueError(msg)
        self._attempts.append(attempt)

    def retest_status(
        self,
        now: int | None = None,
        cooldown_hours: float = DEFAULT_COOLDOWN_HOURS,
    ) -> RetestStatus:
        """Cooldown counts from the most recent failed attempt; passing never starts one."""
        last_failed = self.last_failed
        status = can_retest(
            last_failed.timestamp if last_failed is not None else None,
            now=now,
            cooldown_hours=cooldown_hours,
        )
        status.attempt_count = self.failed_count
        if not status.can_retest:
            logger.debug("Retest blocked: %d hour(s) remaining", status.hours_remaining)
        return status

    def is_improving(self) -> bool:
        return is_improving(self._attempts)

    def average_improvement(self) -> float:
        return average_improvement(self._attempts)
