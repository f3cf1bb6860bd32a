"""Progress synchronizer tests: backup text format, validation, diffs, last-write-wins."""

from __future__ import annotations

import json

import pytest

from uwa.progress.schemas import GameProgress, OverallProgress, ProgressSnapshot
from uwa.progress.sync import (
    NEVER_SYNCED,
    ProgressParseError,
    backup_type_label,
    diff,
    format_progress_for_backup,
    resolve,
    restore,
    serialize_snapshot,
    should_auto_backup,
    snapshot,
    time_since_sync,
    validate,
)
from uwa.timeutils import MS_PER_DAY, MS_PER_HOUR, MS_PER_MINUTE, MS_PER_SECOND

NOW = 1_700_000_000_000


def _overall(**kwargs) -> OverallProgress:
    defaults = {
        "overall_completion": 40.0,
        "certification_status": "not_eligible",
        "last_activity": NOW,
        "total_game_time": 120.0,
        "total_score": 150.0,
    }
    return OverallProgress(**{**defaults, **kwargs})


def _game(game_type: str = "artifact_identification", achievements: list[str] | None = None) -> GameProgress:
    return GameProgress(
        game_type=game_type,
        completed_levels=4,
        total_levels=10,
        best_score=82.5,
        average_score=70.0,
        time_spent=45.0,
        last_played=NOW,
        achievements=achievements or [],
    )


class TestSnapshot:
    def test_absent_overall_is_explicit_null(self):
        bundle = snapshot(None, now=NOW)
        assert bundle.overall_progress is None
        assert bundle.game_progress == []
        assert bundle.sync_time == NOW
        assert json.loads(serialize_snapshot(bundle)) == {
            "overallProgress": None,
            "gameProgress": [],
            "syncTime": NOW,
        }

    def test_camel_case_wire_format(self):
        data = json.loads(format_progress_for_backup(_overall(), [_game()], now=NOW))
        assert set(data) == {"overallProgress", "gameProgress", "syncTime"}
        assert data["overallProgress"]["overallCompletion"] == 40.0
        assert data["overallProgress"]["certificationStatus"] == "not_eligible"
        assert data["gameProgress"][0]["gameType"] == "artifact_identification"
        assert data["gameProgress"][0]["completedLevels"] == 4


class TestRestore:
    @pytest.mark.parametrize(
        ("overall", "games"),
        [
            (None, []),
            (_overall(), []),
            (_overall(certification_status="certified"), [_game(), _game("excavation_simulation", ["deep_dig"])]),
            (None, [_game(achievements=["a", "b"])]),
        ],
    )
    def test_round_trip(self, overall, games):
        bundle = snapshot(overall, games, now=NOW)
        restored = restore(serialize_snapshot(bundle))
        assert restored is not None
        assert restored.model_dump() == bundle.model_dump()

    def test_null_text_is_empty_bundle(self):
        assert restore("null") is None

    def test_invalid_json_raises(self):
        with pytest.raises(ProgressParseError, match="Failed to parse backup data"):
            restore("{not json")

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            restore("")

    @pytest.mark.parametrize(
        "text",
        [
            '{"gameProgress": []}',
            '{"syncTime": 1, "gameProgress": [{"gameType": "underwater_basket_weaving", "completedLevels": 1}]}',
            '{"syncTime": 1, "gameProgress": [{"gameType": "artifact_identification"}]}',
            '{"syncTime": 1, "gameProgress": [{"gameType": "artifact_identification", "completedLevels": 9, "totalLevels": 3}]}',
            "[1, 2, 3]",
            "42",
        ],
    )
    def test_structurally_invalid_raises(self, text):
        with pytest.raises(ProgressParseError):
            restore(text)

    def test_minimal_entries_accepted(self):
        restored = restore(
            '{"syncTime": 5, "gameProgress": [{"gameType": "conservation_lab", "completedLevels": 2}]}'
        )
        assert restored.sync_time == 5
        assert restored.overall_progress is None
        assert restored.game_progress[0].completed_levels == 2
        assert restored.game_progress[0].achievements == []
        assert restored.game_progress[0].total_levels == 2

    def test_entry_without_total_round_trips(self):
        bundle = snapshot(None, [GameProgress(game_type="conservation_lab", completed_levels=2)], now=NOW)
        restored = restore(serialize_snapshot(bundle))
        assert restored is not None
        assert restored.model_dump() == bundle.model_dump()
        assert restored.game_progress[0].total_levels == 2


class TestValidate:
    """Structural check that never raises."""

    @pytest.mark.parametrize(
        "data",
        [
            {"syncTime": 1, "gameProgress": []},
            {"syncTime": 1, "gameProgress": [{"gameType": "artifact_identification", "completedLevels": 0}]},
            {"syncTime": 1, "gameProgress": [], "overallProgress": "not deep-validated"},
        ],
    )
    def test_valid(self, data):
        assert validate(data) is True

    def test_snapshot_instance_is_valid(self):
        assert validate(snapshot(None, now=NOW)) is True

    @pytest.mark.parametrize(
        "data",
        [
            None,
            42,
            "text",
            [],
            {},
            {"gameProgress": []},
            {"syncTime": 1},
            {"syncTime": 1, "gameProgress": "nope"},
            {"syncTime": 1, "gameProgress": [None]},
            {"syncTime": 1, "gameProgress": [{"completedLevels": 1}]},
            {"syncTime": 1, "gameProgress": [{"gameType": "", "completedLevels": 1}]},
            {"syncTime": 1, "gameProgress": [{"gameType": "artifact_identification"}]},
        ],
    )
    def test_invalid(self, data):
        assert validate(data) is False


class TestDiff:
    def test_self_diff_is_empty(self):
        for bundle in (
            snapshot(None, now=NOW),
            snapshot(_overall(), [_game(achievements=["a"])], now=NOW),
        ):
            result = diff(bundle, bundle)
            assert result.overall_completion_change == 0
            assert result.score_change == 0
            assert result.time_change == 0
            assert result.new_achievements == []

    def test_changes(self):
        old = snapshot(_overall(), [_game(achievements=["first_find"])], now=NOW)
        new = snapshot(
            _overall(overall_completion=55.0, total_score=210.0, total_game_time=150.0),
            [_game(achievements=["first_find", "sharp_eye"])],
            now=NOW + 1,
        )
        result = diff(old, new)
        assert result.overall_completion_change == pytest.approx(15.0)
        assert result.score_change == pytest.approx(60.0)
        assert result.time_change == pytest.approx(30.0)
        assert result.new_achievements == ["sharp_eye"]

    def test_absent_overall_is_zero_baseline(self):
        old = snapshot(None, now=NOW)
        new = snapshot(_overall(), now=NOW + 1)
        result = diff(old, new)
        assert result.overall_completion_change == pytest.approx(40.0)
        assert result.score_change == pytest.approx(150.0)
        assert result.time_change == pytest.approx(120.0)

        back = diff(new, old)
        assert back.overall_completion_change == pytest.approx(-40.0)

    def test_achievements_matched_by_game_type(self):
        """An achievement earned in a different game still counts as new."""
        old = snapshot(None, [_game("artifact_identification", ["explorer"])], now=NOW)
        new = snapshot(
            None,
            [
                _game("artifact_identification", ["explorer", "sharp_eye"]),
                _game("excavation_simulation", ["explorer"]),
            ],
            now=NOW + 1,
        )
        assert diff(old, new).new_achievements == ["sharp_eye", "explorer"]

    def test_new_achievements_deduplicated(self):
        old = snapshot(None, now=NOW)
        new = snapshot(
            None,
            [_game("artifact_identification", ["explorer"]), _game("excavation_simulation", ["explorer"])],
            now=NOW + 1,
        )
        assert diff(old, new).new_achievements == ["explorer"]


class TestResolve:
    """Whole-snapshot last-write-wins."""

    def test_later_wins(self):
        older = snapshot(_overall(overall_completion=90.0), now=NOW)
        newer = snapshot(_overall(overall_completion=10.0), now=NOW + 1)
        assert resolve(older, newer) is newer
        assert resolve(newer, older) is newer

    def test_tie_keeps_first(self):
        a = snapshot(_overall(overall_completion=1.0), now=NOW)
        b = snapshot(_overall(overall_completion=2.0), now=NOW)
        assert resolve(a, b) is a
        assert resolve(b, a) is b

    def test_no_field_level_merge(self):
        """The newer snapshot replaces the older one even where the older had better scores."""
        older = ProgressSnapshot(game_progress=[_game().model_copy(update={"best_score": 99.0})], sync_time=NOW)
        newer = ProgressSnapshot(game_progress=[_game().model_copy(update={"best_score": 10.0})], sync_time=NOW + 1)
        assert resolve(older, newer).game_progress[0].best_score == 10.0


class TestTimeSinceSync:
    @pytest.mark.parametrize(
        ("elapsed", "expected"),
        [
            (0, "Just now"),
            (59 * MS_PER_SECOND, "Just now"),
            (MS_PER_MINUTE, "1 minute ago"),
            (5 * MS_PER_MINUTE + 30 * MS_PER_SECOND, "5 minutes ago"),
            (59 * MS_PER_MINUTE, "59 minutes ago"),
            (MS_PER_HOUR, "1 hour ago"),
            (23 * MS_PER_HOUR + 59 * MS_PER_MINUTE, "23 hours ago"),
            (MS_PER_DAY, "1 day ago"),
            (3 * MS_PER_DAY + 5 * MS_PER_HOUR, "3 days ago"),
        ],
    )
    def test_buckets(self, elapsed, expected):
        assert time_since_sync(NOW - elapsed, now=NOW) == expected

    def test_never_synced(self):
        assert time_since_sync(None, now=NOW) == NEVER_SYNCED == "Never synced"

    def test_epoch_zero_is_a_real_timestamp(self):
        assert time_since_sync(0, now=0) == "Just now"


class TestBackupHelpers:
    @pytest.mark.parametrize(
        ("backup_type", "label"),
        [
            ("automatic", "Automatic Backup"),
            ("manual", "Manual Backup"),
            ("pre_sync", "Pre-Sync Backup"),
            ("something_else", "Unknown"),
        ],
    )
    def test_labels(self, backup_type, label):
        assert backup_type_label(backup_type) == label

    def test_auto_backup_threshold(self):
        assert should_auto_backup(None, _overall(overall_completion=5.0)) is True
        assert should_auto_backup(None, _overall(overall_completion=4.9)) is False
        assert should_auto_backup(None, None) is False

        last = snapshot(_overall(overall_completion=40.0), now=NOW)
        assert should_auto_backup(last, _overall(overall_completion=44.0)) is False
        assert should_auto_backup(last, _overall(overall_completion=45.0)) is True
        assert should_auto_backup(last, _overall(overall_completion=42.0), completion_step=2) is True
