"""Pydantic models for learner progress and progress snapshots.

Snapshots travel between devices as camelCase JSON (the shape the web client
writes), so every model here carries camelCase aliases and accepts either
spelling on input.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

GameType = Literal[
    "artifact_identification",
    "excavation_simulation",
    "site_documentation",
    "historical_timeline",
    "conservation_lab",
]

GAME_TYPES: tuple[str, ...] = (
    "artifact_identification",
    "excavation_simulation",
    "site_documentation",
    "historical_timeline",
    "conservation_lab",
)

CertificationStatus = Literal["not_eligible", "eligible", "certified"]
BackupType = Literal["automatic", "manual", "pre_sync"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GameProgress(CamelModel):
    """Per-(learner, game type) progress record."""

    game_type: GameType
    completed_levels: int = Field(ge=0)
    total_levels: int = Field(default=0, ge=0)
    best_score: float = 0.0
    average_score: float = 0.0
    time_spent: float = Field(default=0.0, ge=0)
    last_played: int = 0
    achievements: list[str] = []

    @model_validator(mode="before")
    @classmethod
    def _total_defaults_to_completed(cls, data: Any) -> Any:  # noqa: ANN401
        # Entries carrying only gameType/completedLevels count as fully played.
        if isinstance(data, Mapping) and "totalLevels" not in data and "total_levels" not in data:
            completed = data.get("completedLevels", data.get("completed_levels"))
            if completed is not None:
                data = {**data, "totalLevels": completed}
        return data

    @model_validator(mode="after")
    def _levels_within_total(self) -> GameProgress:
        if self.completed_levels > self.total_levels:
            msg = f"completedLevels ({self.completed_levels}) exceeds totalLevels ({self.total_levels})"
            raise ValueError(msg)
        return self


class OverallProgress(CamelModel):
    """Learner-wide progress summary."""

    overall_completion: float = 0.0
    certification_status: CertificationStatus = "not_eligible"
    last_activity: int = 0
    total_game_time: float = 0.0
    total_score: float = 0.0


class ProgressSnapshot(CamelModel):
    """Point-in-time bundle of a learner's progress, exchanged between devices."""

    overall_progress: OverallProgress | None = None
    game_progress: list[GameProgress] = []
    sync_time: int


class ProgressDiff(CamelModel):
    overall_completion_change: float = 0.0
    score_change: float = 0.0
    time_change: float = 0.0
    new_achievements: list[str] = []


# --- API request / response models ---


class GameProgressUpdateRequest(CamelModel):
    completed_levels: int = Field(ge=0)
    total_levels: int = Field(ge=0)
    best_score: float = Field(ge=0)
    average_score: float = Field(ge=0)
    time_spent: float = Field(ge=0)
    achievements: list[str] = []

    @model_validator(mode="after")
    def _levels_within_total(self) -> GameProgressUpdateRequest:
        if self.completed_levels > self.total_levels:
            msg = "completedLevels cannot exceed totalLevels"
            raise ValueError(msg)
        return self


class PracticeResultRequest(CamelModel):
    score: float = Field(ge=0)
    time_spent: float = Field(ge=0)


class OverallProgressUpdateRequest(CamelModel):
    overall_completion: float = Field(ge=0, le=100)
    certification_status: CertificationStatus
    total_game_time: float = Field(ge=0)
    total_score: float = Field(ge=0)


class LearnerProgressResponse(CamelModel):
    learner_id: str
    overall_progress: OverallProgress | None
    game_progress: list[GameProgress]


class BackupCreateRequest(CamelModel):
    backup_type: BackupType = "manual"
    device_info: str | None = None


class BackupResponse(CamelModel):
    id: str
    learner_id: str
    backup_date: int
    backup_type: BackupType
    backup_label: str
    device_info: str | None = None
    backup_data: str


class RestoreResponse(CamelModel):
    success: bool
    message: str


class SyncRequest(CamelModel):
    backup_data: str
    device_info: str | None = None


class SyncResponse(CamelModel):
    winner: Literal["server", "device"]
    snapshot: ProgressSnapshot
    diff: ProgressDiff
    last_sync_time: int
    last_sync_label: str


class DiffRequest(CamelModel):
    old_backup: str
    new_backup: str


# --- History and trends ---


class ProgressHistoryEntry(CamelModel):
    """One recorded game session."""

    id: str
    learner_id: str
    timestamp: int
    game_type: GameType
    completed_levels: int
    total_levels: int
    score: float
    time_spent: float
    overall_completion: float
    snapshot_data: str


class TrendPoint(CamelModel):
    """Per-day averages; ``date`` is the UTC midnight of the day in epoch ms."""

    date: int
    completion_percentage: float
    average_score: float
    time_spent: float


class TrendSummary(CamelModel):
    total_improvement: float = 0.0
    average_score_change: float = 0.0
    total_time_spent: float = 0.0
    most_active_day: int | None = None


class ProgressTrends(CamelModel):
    trends: list[TrendPoint]
    summary: TrendSummary


class HistoryCleanupResponse(CamelModel):
    deleted_count: int
