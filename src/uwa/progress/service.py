"""Progress service: game/overall progress storage, session history, backups, restore, and device sync."""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from uwa.db.models import GameProgressRecord, OverallProgressRecord, ProgressBackupRecord, ProgressHistoryRecord
from uwa.progress.schemas import (
    BackupType,
    GameProgress,
    OverallProgress,
    ProgressHistoryEntry,
    ProgressSnapshot,
    ProgressTrends,
    SyncResponse,
)
from uwa.progress.sync import (
    diff,
    resolve,
    restore,
    serialize_snapshot,
    should_auto_backup,
    snapshot,
    time_since_sync,
)
from uwa.progress.tracker import merge_game_update, summarize_progress
from uwa.progress.trends import history_cutoff, progress_trends
from uwa.timeutils import MS_PER_DAY, now_ms

logger = logging.getLogger(__name__)


def game_progress_from_record(record: GameProgressRecord) -> GameProgress:
    return GameProgress(
        game_type=record.game_type,
        completed_levels=record.completed_levels,
        total_levels=record.total_levels,
        best_score=record.best_score,
        average_score=record.average_score,
        time_spent=record.time_spent,
        last_played=record.last_played,
        achievements=list(record.achievements or []),
    )


def overall_progress_from_record(record: OverallProgressRecord) -> OverallProgress:
    return OverallProgress(
        overall_completion=record.overall_completion,
        certification_status=record.certification_status,
        last_activity=record.last_activity,
        total_game_time=record.total_game_time,
        total_score=record.total_score,
    )


def history_entry_from_record(record: ProgressHistoryRecord) -> ProgressHistoryEntry:
    return ProgressHistoryEntry(
        id=record.id,
        learner_id=record.learner_id,
        timestamp=record.timestamp,
        game_type=record.game_type,
        completed_levels=record.completed_levels,
        total_levels=record.total_levels,
        score=record.score,
        time_spent=record.time_spent,
        overall_completion=record.overall_completion,
        snapshot_data=record.snapshot_data,
    )


class ProgressService:
    """Reads and writes learner progress and its backups."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # --- Progress ---

    async def _game_records(self, learner_id: str) -> list[GameProgressRecord]:
        result = await self.db.execute(
            select(GameProgressRecord)
            .where(GameProgressRecord.learner_id == learner_id)
            .order_by(GameProgressRecord.game_type)
        )
        return list(result.scalars().all())

    async def get_game_progress(self, learner_id: str) -> list[GameProgress]:
        return [game_progress_from_record(r) for r in await self._game_records(learner_id)]

    async def get_overall_progress(self, learner_id: str) -> OverallProgress | None:
        record = await self.db.get(OverallProgressRecord, learner_id)
        return overall_progress_from_record(record) if record else None

    async def _write_game_progress(self, learner_id: str, progress: GameProgress) -> None:
        result = await self.db.execute(
            select(GameProgressRecord).where(
                GameProgressRecord.learner_id == learner_id,
                GameProgressRecord.game_type == progress.game_type,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            record = GameProgressRecord(learner_id=learner_id, game_type=progress.game_type)
            self.db.add(record)
        record.completed_levels = progress.completed_levels
        record.total_levels = progress.total_levels
        record.best_score = progress.best_score
        record.average_score = progress.average_score
        record.time_spent = progress.time_spent
        record.last_played = progress.last_played
        record.achievements = list(progress.achievements)

    async def write_overall_progress(self, learner_id: str, overall: OverallProgress) -> None:
        record = await self.db.get(OverallProgressRecord, learner_id)
        if record is None:
            record = OverallProgressRecord(learner_id=learner_id)
            self.db.add(record)
        record.overall_completion = overall.overall_completion
        record.certification_status = overall.certification_status
        record.last_activity = overall.last_activity
        record.total_game_time = overall.total_game_time
        record.total_score = overall.total_score

    async def set_certification_status(self, learner_id: str, status: str) -> None:
        """Patch the certification status if the learner has an overall progress row."""
        record = await self.db.get(OverallProgressRecord, learner_id)
        if record is not None:
            record.certification_status = status

    async def save_game_progress(
        self,
        learner_id: str,
        update: GameProgress,
        now: int | None = None,
        completion_step: float = 5.0,
    ) -> GameProgress:
        """Store a game's progress and refresh the learner's overall summary."""
        if now is None:
            now = now_ms()
        games = await self.get_game_progress(learner_id)
        existing = next((g for g in games if g.game_type == update.game_type), None)
        merged = merge_game_update(existing, update.model_copy(update={"last_played": now}))
        await self._write_game_progress(learner_id, merged)

        games = [g for g in games if g.game_type != merged.game_type] + [merged]
        overall = summarize_progress(games, await self.get_overall_progress(learner_id), now)
        await self.write_overall_progress(learner_id, overall)
        await self.record_history(
            learner_id,
            merged,
            score=update.best_score,
            time_spent=update.time_spent,
            overall_completion=overall.overall_completion,
            now=now,
        )
        await self.db.flush()
        await self.maybe_auto_backup(learner_id, overall, now=now, completion_step=completion_step)
        return merged

    async def replace_game_progress(self, learner_id: str, progress: GameProgress) -> None:
        """Write a game's progress as-is (used by practice results and restores)."""
        await self._write_game_progress(learner_id, progress)

    async def current_snapshot(self, learner_id: str, now: int | None = None) -> ProgressSnapshot:
        if now is None:
            now = now_ms()
        overall = await self.get_overall_progress(learner_id)
        return snapshot(overall, await self.get_game_progress(learner_id), now=now)

    async def _last_write_time(self, learner_id: str) -> int:
        overall = await self.get_overall_progress(learner_id)
        stamps = [g.last_played for g in await self.get_game_progress(learner_id)]
        if overall is not None:
            stamps.append(overall.last_activity)
        return max(stamps, default=0)

    # --- History ---

    async def record_history(
        self,
        learner_id: str,
        game: GameProgress,
        score: float,
        time_spent: float,
        overall_completion: float,
        now: int | None = None,
    ) -> ProgressHistoryRecord:
        """Append one game session to the learner's history."""
        if now is None:
            now = now_ms()
        record = ProgressHistoryRecord(
            learner_id=learner_id,
            timestamp=now,
            game_type=game.game_type,
            completed_levels=game.completed_levels,
            total_levels=game.total_levels,
            score=score,
            time_spent=time_spent,
            overall_completion=overall_completion,
            snapshot_data=game.model_dump_json(by_alias=True),
        )
        self.db.add(record)
        return record

    async def get_history(
        self,
        learner_id: str,
        game_type: str | None = None,
        start: int | None = None,
        end: int | None = None,
    ) -> list[ProgressHistoryEntry]:
        """Recorded sessions newest first, optionally filtered by game and inclusive date range."""
        stmt = (
            select(ProgressHistoryRecord)
            .where(ProgressHistoryRecord.learner_id == learner_id)
            .order_by(ProgressHistoryRecord.timestamp.desc())
        )
        if game_type is not None:
            stmt = stmt.where(ProgressHistoryRecord.game_type == game_type)
        if start is not None:
            stmt = stmt.where(ProgressHistoryRecord.timestamp >= start)
        if end is not None:
            stmt = stmt.where(ProgressHistoryRecord.timestamp <= end)
        result = await self.db.execute(stmt)
        return [history_entry_from_record(r) for r in result.scalars().all()]

    async def get_trends(
        self,
        learner_id: str,
        days: int = 30,
        game_type: str | None = None,
        now: int | None = None,
    ) -> ProgressTrends:
        if now is None:
            now = now_ms()
        entries = await self.get_history(learner_id, game_type=game_type, start=now - days * MS_PER_DAY)
        return progress_trends(entries, now=now, days=days, game_type=game_type)

    async def cleanup_history(self, days_to_keep: int = 90, now: int | None = None) -> int:
        """Delete sessions older than the retention window, for every learner."""
        if now is None:
            now = now_ms()
        result = await self.db.execute(
            delete(ProgressHistoryRecord).where(ProgressHistoryRecord.timestamp < history_cutoff(now, days_to_keep))
        )
        logger.info("Deleted %d progress history rows older than %d days", result.rowcount, days_to_keep)
        return result.rowcount

    async def list_learners_by_status(self, status: str) -> list[tuple[str, OverallProgress]]:
        """Learners whose overall progress carries ``status``, most recently active first."""
        result = await self.db.execute(
            select(OverallProgressRecord)
            .where(OverallProgressRecord.certification_status == status)
            .order_by(OverallProgressRecord.last_activity.desc())
        )
        return [(r.learner_id, overall_progress_from_record(r)) for r in result.scalars().all()]

    # --- Backups ---

    async def create_backup(
        self,
        learner_id: str,
        backup_type: BackupType = "manual",
        device_info: str | None = None,
        now: int | None = None,
    ) -> ProgressBackupRecord:
        if now is None:
            now = now_ms()
        bundle = await self.current_snapshot(learner_id, now=now)
        record = ProgressBackupRecord(
            learner_id=learner_id,
            backup_date=now,
            backup_data=serialize_snapshot(bundle),
            backup_type=backup_type,
            device_info=device_info,
        )
        self.db.add(record)
        await self.db.flush()
        logger.info("Created %s backup %s for learner %s", backup_type, record.id, learner_id)
        return record

    async def list_backups(
        self,
        learner_id: str,
        limit: int | None = None,
        backup_type: str | None = None,
    ) -> list[ProgressBackupRecord]:
        """Backups newest first."""
        stmt = (
            select(ProgressBackupRecord)
            .where(ProgressBackupRecord.learner_id == learner_id)
            .order_by(ProgressBackupRecord.backup_date.desc())
        )
        if backup_type is not None:
            stmt = stmt.where(ProgressBackupRecord.backup_type == backup_type)
        if limit:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def maybe_auto_backup(
        self,
        learner_id: str,
        overall: OverallProgress,
        now: int,
        completion_step: float = 5.0,
    ) -> ProgressBackupRecord | None:
        """Take an automatic backup when completion grew enough since the last one."""
        latest = await self.list_backups(learner_id, limit=1, backup_type="automatic")
        last_bundle = restore(latest[0].backup_data) if latest else None
        if not should_auto_backup(last_bundle, overall, completion_step=completion_step):
            return None
        return await self.create_backup(learner_id, backup_type="automatic", now=now)

    async def apply_snapshot(self, learner_id: str, bundle: ProgressSnapshot) -> None:
        """Overwrite stored progress with a snapshot's contents."""
        if bundle.overall_progress is not None:
            await self.write_overall_progress(learner_id, bundle.overall_progress)
        for game in bundle.game_progress:
            await self._write_game_progress(learner_id, game)
        await self.db.flush()

    async def restore_backup(self, backup_id: str) -> ProgressSnapshot | None:
        """Restore a learner's progress from a stored backup.

        Raises ValueError if the backup does not exist and ProgressParseError
        if its text is corrupt.
        """
        record = await self.db.get(ProgressBackupRecord, backup_id)
        if record is None:
            raise ValueError("Backup not found")

        bundle = restore(record.backup_data)
        if bundle is not None:
            await self.apply_snapshot(record.learner_id, bundle)
        logger.info("Restored learner %s from backup %s", record.learner_id, backup_id)
        return bundle

    # --- Cross-device sync ---

    async def sync(
        self,
        learner_id: str,
        device_backup: str,
        device_info: str | None = None,
        now: int | None = None,
    ) -> SyncResponse:
        """Reconcile a device's snapshot with the stored one, last write wins.

        The stored state is backed up (``pre_sync``) before anything is
        overwritten.
        """
        if now is None:
            now = now_ms()

        device = restore(device_backup)
        server = await self.current_snapshot(learner_id, now=await self._last_write_time(learner_id))
        await self.create_backup(learner_id, backup_type="pre_sync", device_info=device_info, now=now)

        winner = server if device is None else resolve(server, device)
        if winner is not server:
            await self.apply_snapshot(learner_id, winner)
            logger.info(
                "Device snapshot for learner %s won sync (%d > %d)",
                learner_id, winner.sync_time, server.sync_time,
            )

        return SyncResponse(
            winner="server" if winner is server else "device",
            snapshot=winner,
            diff=diff(server, winner),
            last_sync_time=now,
            last_sync_label=time_since_sync(now, now=now),
        )
