"""Derive a learner's overall progress from their per-game progress.

Completion weights per game type (sum to 1.0). These weight level
completion for the progress bar only; certification uses its own table in
uwa.certification.requirements.
"""

from __future__ import annotations

from collections.abc import Sequence

from uwa.progress.schemas import GameProgress, OverallProgress

COMPLETION_WEIGHTS: dict[str, float] = {
    "artifact_identification": 0.25,
    "excavation_simulation": 0.3,
    "site_documentation": 0.2,
    "historical_timeline": 0.15,
    "conservation_lab": 0.1,
}


def game_completion(progress: GameProgress | None) -> float:
    """Level completion for one game, 0-100. Unplayed or level-less games count as 0."""
    if progress is None or progress.total_levels <= 0:
        return 0.0
    return progress.completed_levels / progress.total_levels * 100


def overall_completion(game_progress: Sequence[GameProgress]) -> int:
    by_type = {p.game_type: p for p in game_progress}
    weighted = 0.0
    total_weight = 0.0
    for game_type, weight in COMPLETION_WEIGHTS.items():
        weighted += game_completion(by_type.get(game_type)) * weight
        total_weight += weight
    return round(weighted / total_weight) if total_weight > 0 else 0


def summarize_progress(
    game_progress: Sequence[GameProgress],
    current: OverallProgress | None,
    now: int,
) -> OverallProgress:
    """Recompute the overall summary after a game's progress changed.

    Certification status is carried over; it only changes through
    certification evaluation and issuance.
    """
    return OverallProgress(
        overall_completion=overall_completion(game_progress),
        certification_status=current.certification_status if current is not None else "not_eligible",
        last_activity=now,
        total_game_time=sum(p.time_spent for p in game_progress),
        total_score=sum(p.best_score for p in game_progress),
    )


def merge_game_update(
    existing: GameProgress | None,
    update: GameProgress,
) -> GameProgress:
    """Apply a game session's report without letting monotonic fields go backwards.

    Completed levels and best score keep the higher value; achievements are
    append-only.
    """
    if existing is None:
        return update
    achievements = list(existing.achievements)
    for achievement in update.achievements:
        if achievement not in achievements:
            achievements.append(achievement)
    total_levels = max(update.total_levels, existing.total_levels)
    return update.model_copy(
        update={
            "completed_levels": min(max(existing.completed_levels, update.completed_levels), total_levels),
            "total_levels": total_levels,
            "best_score": max(existing.best_score, update.best_score),
            "achievements": achievements,
        }
    )
