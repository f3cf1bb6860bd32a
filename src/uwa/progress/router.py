"""Progress API endpoints: game progress, history and trends, backups, restore, and cross-device sync."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from uwa.config import get_settings
from uwa.database import get_session
from uwa.db.models import ProgressBackupRecord
from uwa.progress.schemas import (
    BackupCreateRequest,
    BackupResponse,
    DiffRequest,
    GameProgress,
    GameProgressUpdateRequest,
    GameType,
    HistoryCleanupResponse,
    LearnerProgressResponse,
    OverallProgress,
    OverallProgressUpdateRequest,
    ProgressDiff,
    ProgressHistoryEntry,
    ProgressSnapshot,
    ProgressTrends,
    RestoreResponse,
    SyncRequest,
    SyncResponse,
)
from uwa.progress.service import ProgressService
from uwa.progress.sync import ProgressParseError, backup_type_label, diff, restore
from uwa.timeutils import now_ms

router = APIRouter(prefix="/api/v1/progress", tags=["Progress"])


def _backup_response(record: ProgressBackupRecord) -> BackupResponse:
    return BackupResponse(
        id=record.id,
        learner_id=record.learner_id,
        backup_date=record.backup_date,
        backup_type=record.backup_type,
        backup_label=backup_type_label(record.backup_type),
        device_info=record.device_info,
        backup_data=record.backup_data,
    )


@router.get("/{learner_id}", response_model=LearnerProgressResponse)
async def get_progress(
    learner_id: str,
    db: AsyncSession = Depends(get_session),
) -> LearnerProgressResponse:
    svc = ProgressService(db)
    return LearnerProgressResponse(
        learner_id=learner_id,
        overall_progress=await svc.get_overall_progress(learner_id),
        game_progress=await svc.get_game_progress(learner_id),
    )


@router.put("/{learner_id}/games/{game_type}", response_model=GameProgress)
async def save_game_progress(
    learner_id: str,
    game_type: GameType,
    body: GameProgressUpdateRequest,
    db: AsyncSession = Depends(get_session),
) -> GameProgress:
    """Report a game session. Overall progress is recomputed and may trigger an automatic backup."""
    svc = ProgressService(db)
    saved = await svc.save_game_progress(
        learner_id,
        GameProgress(game_type=game_type, **body.model_dump()),
        completion_step=get_settings().auto_backup_completion_step,
    )
    await db.commit()
    return saved


@router.put("/{learner_id}/overall", response_model=OverallProgress)
async def save_overall_progress(
    learner_id: str,
    body: OverallProgressUpdateRequest,
    db: AsyncSession = Depends(get_session),
) -> OverallProgress:
    svc = ProgressService(db)
    overall = OverallProgress(**body.model_dump(), last_activity=now_ms())
    await svc.write_overall_progress(learner_id, overall)
    await db.commit()
    return overall


# ── Backups ──


@router.post("/{learner_id}/backups", response_model=BackupResponse, status_code=201)
async def create_backup(
    learner_id: str,
    body: BackupCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> BackupResponse:
    svc = ProgressService(db)
    record = await svc.create_backup(learner_id, backup_type=body.backup_type, device_info=body.device_info)
    await db.commit()
    return _backup_response(record)


@router.get("/{learner_id}/backups", response_model=list[BackupResponse])
async def list_backups(
    learner_id: str,
    limit: int | None = Query(None, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> list[BackupResponse]:
    """Most recent backups first."""
    svc = ProgressService(db)
    records = await svc.list_backups(learner_id, limit=limit or get_settings().backup_list_limit)
    return [_backup_response(r) for r in records]


@router.post("/backups/{backup_id}/restore", response_model=RestoreResponse)
async def restore_backup(
    backup_id: str,
    db: AsyncSession = Depends(get_session),
) -> RestoreResponse:
    svc = ProgressService(db)
    try:
        bundle = await svc.restore_backup(backup_id)
    except ProgressParseError:
        raise
    except ValueError as exc:
        raise HTTPException(404, str(exc)) from exc
    await db.commit()
    if bundle is None:
        return RestoreResponse(success=True, message="Backup was empty; nothing restored")
    return RestoreResponse(success=True, message="Progress restored successfully")


# ── Sync ──


@router.post("/{learner_id}/sync", response_model=SyncResponse)
async def sync_progress(
    learner_id: str,
    body: SyncRequest,
    db: AsyncSession = Depends(get_session),
) -> SyncResponse:
    """Reconcile a device's snapshot with the stored progress (last write wins)."""
    svc = ProgressService(db)
    result = await svc.sync(learner_id, body.backup_data, device_info=body.device_info)
    await db.commit()
    return result


@router.post("/diff", response_model=ProgressDiff)
async def diff_snapshots(body: DiffRequest) -> ProgressDiff:
    """What changed between two snapshot texts. A ``null`` snapshot counts as empty."""
    old = restore(body.old_backup) or ProgressSnapshot(sync_time=0)
    new = restore(body.new_backup) or ProgressSnapshot(sync_time=0)
    return diff(old, new)


# ── History ──


@router.get("/{learner_id}/history", response_model=list[ProgressHistoryEntry])
async def get_history(
    learner_id: str,
    game_type: GameType | None = None,
    start: int | None = Query(None, ge=0),
    end: int | None = Query(None, ge=0),
    db: AsyncSession = Depends(get_session),
) -> list[ProgressHistoryEntry]:
    """Recorded game sessions newest first. ``start``/``end`` are inclusive epoch ms."""
    svc = ProgressService(db)
    return await svc.get_history(learner_id, game_type=game_type, start=start, end=end)


@router.get("/{learner_id}/trends", response_model=ProgressTrends)
async def get_trends(
    learner_id: str,
    game_type: GameType | None = None,
    days: int | None = Query(None, ge=1, le=365),
    db: AsyncSession = Depends(get_session),
) -> ProgressTrends:
    """Per-day completion, score and play time over the trailing window."""
    svc = ProgressService(db)
    return await svc.get_trends(learner_id, days=days or get_settings().trend_window_days, game_type=game_type)


@router.post("/history/cleanup", response_model=HistoryCleanupResponse)
async def cleanup_history(
    days_to_keep: int | None = Query(None, ge=1),
    db: AsyncSession = Depends(get_session),
) -> HistoryCleanupResponse:
    """Drop sessions older than the retention window for every learner."""
    svc = ProgressService(db)
    deleted = await svc.cleanup_history(days_to_keep or get_settings().history_retention_days)
    await db.commit()
    return HistoryCleanupResponse(deleted_count=deleted)
