"""Trend analytics over recorded game sessions.

Sessions are grouped by UTC calendar day. Each day reports the mean overall
completion and mean session score of its sessions plus the summed play
time. Pure functions; the service fetches the history.
"""

from __future__ import annotations

from collections.abc import Sequence

from uwa.progress.schemas import ProgressHistoryEntry, ProgressTrends, TrendPoint, TrendSummary
from uwa.timeutils import MS_PER_DAY


def day_start(timestamp: int) -> int:
    """UTC midnight of the day containing ``timestamp``."""
    return timestamp - timestamp % MS_PER_DAY


def filter_history(
    entries: Sequence[ProgressHistoryEntry],
    game_type: str | None = None,
    start: int | None = None,
    end: int | None = None,
) -> list[ProgressHistoryEntry]:
    """Entries matching the game type and inclusive date range, newest first."""
    selected = [
        e
        for e in entries
        if (game_type is None or e.game_type == game_type)
        and (start is None or e.timestamp >= start)
        and (end is None or e.timestamp <= end)
    ]
    return sorted(selected, key=lambda e: e.timestamp, reverse=True)


def daily_trends(entries: Sequence[ProgressHistoryEntry]) -> list[TrendPoint]:
    days: dict[int, list[ProgressHistoryEntry]] = {}
    for entry in entries:
        days.setdefault(day_start(entry.timestamp), []).append(entry)

    return [
        TrendPoint(
            date=day,
            completion_percentage=sum(e.overall_completion for e in sessions) / len(sessions),
            average_score=sum(e.score for e in sessions) / len(sessions),
            time_spent=sum(e.time_spent for e in sessions),
        )
        for day, sessions in sorted(days.items())
    ]


def summarize_trends(trends: Sequence[TrendPoint]) -> TrendSummary:
    """First-to-last day changes. Fewer than two days means no change."""
    if not trends:
        return TrendSummary()

    first, last = trends[0], trends[-1]
    most_active = trends[0]
    for point in trends[1:]:
        # Earliest day wins ties.
        if point.time_spent > most_active.time_spent:
            most_active = point

    return TrendSummary(
        total_improvement=last.completion_percentage - first.completion_percentage,
        average_score_change=last.average_score - first.average_score,
        total_time_spent=sum(t.time_spent for t in trends),
        most_active_day=most_active.date,
    )


def progress_trends(
    entries: Sequence[ProgressHistoryEntry],
    now: int,
    days: int = 30,
    game_type: str | None = None,
) -> ProgressTrends:
    """Trends over the last ``days`` days, optionally for one game type."""
    window = filter_history(entries, game_type=game_type, start=now - days * MS_PER_DAY)
    trends = daily_trends(window)
    return ProgressTrends(trends=trends, summary=summarize_trends(trends))


def history_cutoff(now: int, days_to_keep: int) -> int:
    """Sessions recorded strictly before this timestamp are past retention."""
    return now - days_to_keep * MS_PER_DAY
