"""Progress snapshots: backup/restore serialization, diffing, and cross-device resolution.

Backups are the self-describing JSON text the web client stores:

    {"overallProgress": {...} | null, "gameProgress": [...], "syncTime": <ms>}

Conflicts between devices are resolved last-write-wins at whole-snapshot
granularity. A device holding an older snapshot can lose progress made on
another device; no field-level merge is attempted.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from uwa.progress.schemas import (
    GameProgress,
    OverallProgress,
    ProgressDiff,
    ProgressSnapshot,
)
from uwa.timeutils import MS_PER_MINUTE, now_ms

logger = logging.getLogger(__name__)

BACKUP_TYPE_LABELS: dict[str, str] = {
    "automatic": "Automatic Backup",
    "manual": "Manual Backup",
    "pre_sync": "Pre-Sync Backup",
}

NEVER_SYNCED = "Never synced"


class ProgressParseError(ValueError):
    """Backup text is not valid JSON or does not describe a progress snapshot."""


def snapshot(
    overall_progress: OverallProgress | None,
    game_progress: Sequence[GameProgress] | None = None,
    now: int | None = None,
) -> ProgressSnapshot:
    """Bundle the current progress state, stamped with the sync time."""
    if now is None:
        now = now_ms()
    return ProgressSnapshot(
        overall_progress=overall_progress,
        game_progress=list(game_progress) if game_progress is not None else [],
        sync_time=now,
    )


def serialize_snapshot(bundle: ProgressSnapshot) -> str:
    """Render a snapshot as backup text. An absent overall progress is written as null."""
    return bundle.model_dump_json(by_alias=True)


def format_progress_for_backup(
    overall_progress: OverallProgress | None,
    game_progress: Sequence[GameProgress] | None = None,
    now: int | None = None,
) -> str:
    return serialize_snapshot(snapshot(overall_progress, game_progress, now=now))


def restore(backup_text: str) -> ProgressSnapshot | None:
    """Parse backup text back into a snapshot.

    The literal JSON ``null`` is valid backup text and yields ``None``.
    Anything else that fails to parse raises ProgressParseError.
    """
    try:
        data = json.loads(backup_text)
    except (json.JSONDecodeError, TypeError) as exc:
        msg = f"Failed to parse backup data: {exc}"
        raise ProgressParseError(msg) from exc

    if data is None:
        return None

    try:
        return ProgressSnapshot.model_validate(data)
    except ValidationError as exc:
        msg = f"Failed to parse backup data: {exc.error_count()} invalid field(s)"
        raise ProgressParseError(msg) from exc


def validate(data: Any) -> bool:  # noqa: ANN401
    """Structural check of a parsed backup. Never raises."""
    if isinstance(data, ProgressSnapshot):
        return True
    if not isinstance(data, Mapping):
        return False
    if "syncTime" not in data:
        return False

    games = data.get("gameProgress")
    if not isinstance(games, list):
        return False

    for game in games:
        if not isinstance(game, Mapping):
            return False
        if not game.get("gameType"):
            return False
        if "completedLevels" not in game:
            return False

    return True


def _overall_value(bundle: ProgressSnapshot, field: str) -> float:
    # Absent overall progress is a zero baseline.
    if bundle.overall_progress is None:
        return 0.0
    return float(getattr(bundle.overall_progress, field))


def diff(old: ProgressSnapshot, new: ProgressSnapshot) -> ProgressDiff:
    """Compute what changed between two snapshots.

    New achievements are matched per game type: an achievement counts as new
    when the old snapshot's record for the same game type did not have it.
    """
    old_achievements: dict[str, set[str]] = {}
    for game in old.game_progress:
        old_achievements.setdefault(game.game_type, set()).update(game.achievements)

    new_achievements: list[str] = []
    for game in new.game_progress:
        earned_before = old_achievements.get(game.game_type, set())
        for achievement in game.achievements:
            if achievement not in earned_before and achievement not in new_achievements:
                new_achievements.append(achievement)

    return ProgressDiff(
        overall_completion_change=(
            _overall_value(new, "overall_completion") - _overall_value(old, "overall_completion")
        ),
        score_change=_overall_value(new, "total_score") - _overall_value(old, "total_score"),
        time_change=_overall_value(new, "total_game_time") - _overall_value(old, "total_game_time"),
        new_achievements=new_achievements,
    )


def resolve(device_a: ProgressSnapshot, device_b: ProgressSnapshot) -> ProgressSnapshot:
    """Last-write-wins: the snapshot with the strictly greater syncTime wins in full.

    On a tie ``device_a`` is kept.
    """
    if device_b.sync_time > device_a.sync_time:
        winner = device_b
    else:
        winner = device_a
    logger.debug(
        "Resolved snapshot conflict: %d vs %d -> %d",
        device_a.sync_time, device_b.sync_time, winner.sync_time,
    )
    return winner


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''} ago"


def time_since_sync(last_sync_time: int | None, now: int | None = None) -> str:
    """Human-readable age of the last sync."""
    if last_sync_time is None:
        return NEVER_SYNCED
    if now is None:
        now = now_ms()

    minutes = (now - last_sync_time) // MS_PER_MINUTE
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return _plural(days, "day")
    if hours > 0:
        return _plural(hours, "hour")
    if minutes > 0:
        return _plural(minutes, "minute")
    return "Just now"


def backup_type_label(backup_type: str) -> str:
    return BACKUP_TYPE_LABELS.get(backup_type, "Unknown")


def should_auto_backup(
    last_backup: ProgressSnapshot | None,
    current: OverallProgress | None,
    completion_step: float = 5.0,
) -> bool:
    """Automatic backups are taken when overall completion has grown by ``completion_step`` points."""
    last_completion = 0.0
    if last_backup is not None and last_backup.overall_progress is not None:
        last_completion = last_backup.overall_progress.overall_completion
    current_completion = current.overall_completion if current is not None else 0.0
    return current_completion - last_completion >= completion_step
