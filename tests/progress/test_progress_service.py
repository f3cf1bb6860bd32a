"""ProgressService tests with an explicit clock."""

from __future__ import annotations

import json

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from uwa.progress.schemas import GameProgress
from uwa.progress.service import ProgressService
from uwa.progress.sync import format_progress_for_backup, restore, snapshot
from uwa.timeutils import MS_PER_DAY

pytestmark = pytest.mark.asyncio

LEARNER = "learner-9"
T0 = 1_700_000_000_000


def _game(game_type: str, completed: int, best: float = 70) -> GameProgress:
    return GameProgress(game_type=game_type, completed_levels=completed, total_levels=10, best_score=best)


class TestBackups:
    async def test_list_newest_first(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        for offset in (0, 2, 1):
            await svc.create_backup(LEARNER, now=T0 + offset)
        backups = await svc.list_backups(LEARNER)
        assert [b.backup_date for b in backups] == [T0 + 2, T0 + 1, T0]

    async def test_filter_by_type(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.create_backup(LEARNER, backup_type="manual", now=T0)
        await svc.create_backup(LEARNER, backup_type="pre_sync", now=T0 + 1)
        backups = await svc.list_backups(LEARNER, backup_type="manual")
        assert [b.backup_type for b in backups] == ["manual"]

    async def test_automatic_backups_follow_completion_steps(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 2), now=T0)  # 5%
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 3), now=T0 + 1)  # 7.5% -> 8
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 4), now=T0 + 2)  # 10%

        automatic = await svc.list_backups(LEARNER, backup_type="automatic")
        assert [b.backup_date for b in automatic] == [T0 + 2, T0]

    async def test_backup_text_restores(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.save_game_progress(LEARNER, _game("excavation_simulation", 5, best=77), now=T0)
        record = await svc.create_backup(LEARNER, now=T0 + 5)

        bundle = restore(record.backup_data)
        assert bundle.sync_time == T0 + 5
        assert bundle.game_progress[0].best_score == 77
        assert bundle.overall_progress.overall_completion == 15

    async def test_restore_unknown(self, db_session: AsyncSession):
        with pytest.raises(ValueError, match="Backup not found"):
            await ProgressService(db_session).restore_backup("missing")


class TestSync:
    async def test_server_stamped_with_last_write(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 5, best=90), now=T0)

        older = format_progress_for_backup(None, [_game("artifact_identification", 1, best=10)], now=T0 - 1)
        result = await svc.sync(LEARNER, older, now=T0 + 1000)
        assert result.winner == "server"
        assert result.snapshot.sync_time == T0
        assert result.last_sync_time == T0 + 1000

    async def test_tie_keeps_server(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 5, best=90), now=T0)

        same_time = format_progress_for_backup(None, [_game("artifact_identification", 1, best=10)], now=T0)
        result = await svc.sync(LEARNER, same_time, now=T0 + 1000)
        assert result.winner == "server"
        assert (await svc.get_game_progress(LEARNER))[0].best_score == 90

    async def test_device_wins_and_is_applied(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 5, best=90), now=T0)

        device = snapshot(None, [_game("artifact_identification", 2, best=40)], now=T0 + 1)
        result = await svc.sync(LEARNER, device.model_dump_json(by_alias=True), device_info="phone", now=T0 + 2)
        assert result.winner == "device"
        assert (await svc.get_game_progress(LEARNER))[0].best_score == 40

        [pre_sync] = await svc.list_backups(LEARNER, backup_type="pre_sync")
        assert pre_sync.device_info == "phone"
        assert restore(pre_sync.backup_data).game_progress[0].best_score == 90


class TestHistory:
    async def test_each_save_recorded(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 2, best=60), now=T0)
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 4, best=50), now=T0 + 1)

        history = await svc.get_history(LEARNER)
        assert [h.timestamp for h in history] == [T0 + 1, T0]
        latest = history[0]
        assert latest.score == 50
        assert latest.completed_levels == 4
        assert latest.overall_completion == 10
        assert json.loads(latest.snapshot_data)["bestScore"] == 60

    async def test_filters(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 2), now=T0)
        await svc.save_game_progress(LEARNER, _game("conservation_lab", 2), now=T0 + 10)
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 3), now=T0 + 20)

        by_game = await svc.get_history(LEARNER, game_type="artifact_identification")
        assert [h.timestamp for h in by_game] == [T0 + 20, T0]
        in_range = await svc.get_history(LEARNER, start=T0 + 10, end=T0 + 20)
        assert [h.timestamp for h in in_range] == [T0 + 20, T0 + 10]

    async def test_trends(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 2, best=40), now=T0 - 3 * MS_PER_DAY)
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 4, best=70), now=T0)

        trends = await svc.get_trends(LEARNER, days=30, now=T0)
        assert len(trends.trends) == 2
        assert trends.summary.total_improvement == 5
        assert trends.summary.average_score_change == 30

    async def test_cleanup_drops_old_sessions_for_every_learner(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        old = T0 - 100 * MS_PER_DAY
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 2), now=old)
        await svc.save_game_progress("learner-10", _game("conservation_lab", 2), now=old)
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 3), now=T0)

        deleted = await svc.cleanup_history(days_to_keep=90, now=T0)
        assert deleted == 2
        assert [h.timestamp for h in await svc.get_history(LEARNER)] == [T0]
        assert await svc.get_history("learner-10") == []

    async def test_learners_by_status(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.save_game_progress(LEARNER, _game("artifact_identification", 2), now=T0)
        await svc.save_game_progress("learner-10", _game("artifact_identification", 2), now=T0 + 1)
        await svc.set_certification_status(LEARNER, "eligible")
        await db_session.flush()

        eligible = await svc.list_learners_by_status("eligible")
        assert [learner_id for learner_id, _ in eligible] == [LEARNER]
