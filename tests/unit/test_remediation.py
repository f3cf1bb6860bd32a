"""Remediation planner tests: priority buckets, difficulty, time estimates, feedback."""

from __future__ import annotations

import pytest

from uwa.certification.remediation import (
    IMPROVEMENT_TIPS,
    attempt_feedback,
    difficulty_for_score,
    estimate_remediation_minutes,
    gap_feedback,
    plan_remediation,
    priority_for_gap,
)
from uwa.certification.requirements import CERTIFICATION_REQUIREMENTS
from uwa.certification.schemas import FailingRequirement
from uwa.timeutils import MS_PER_HOUR

NOW = 1_700_000_000_000

URGENCY = {"low": 0, "medium": 1, "high": 2}


def _failing(game_type: str, required: float, actual: float) -> FailingRequirement:
    return FailingRequirement(
        game_type=game_type, required_score=required, actual_score=actual, gap=required - actual
    )


class TestPriority:
    """gap > 20 high, 10 < gap <= 20 medium, otherwise low."""

    @pytest.mark.parametrize(
        ("gap", "expected"),
        [
            (0, "low"),
            (5, "low"),
            (10, "low"),
            (10.01, "medium"),
            (15, "medium"),
            (20, "medium"),
            (20.01, "high"),
            (80, "high"),
        ],
    )
    def test_buckets(self, gap, expected):
        assert priority_for_gap(gap) == expected

    def test_monotonic(self):
        """A larger gap never lands in a less urgent bucket."""
        gaps = [x / 4 for x in range(0, 400)]
        urgencies = [URGENCY[priority_for_gap(g)] for g in gaps]
        assert urgencies == sorted(urgencies)


class TestDifficulty:
    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            (0, "beginner"),
            (59.9, "beginner"),
            (60, "intermediate"),
            (69.9, "intermediate"),
            (70, "advanced"),
            (100, "advanced"),
        ],
    )
    def test_buckets(self, score, expected):
        assert difficulty_for_score(score) == expected


class TestEstimate:
    def test_two_minutes_per_point(self):
        failing = [_failing("artifact_identification", 80, 75), _failing("excavation_simulation", 75, 62.5)]
        assert estimate_remediation_minutes(failing) == pytest.approx(35.0)

    def test_nothing_failing(self):
        assert estimate_remediation_minutes([]) == 0


class TestFeedback:
    def test_gap_to_one_decimal(self):
        """Required 80 vs actual 75 -> "5.0%"."""
        [line] = gap_feedback([_failing("artifact_identification", 80, 75)])
        assert "5.0%" in line
        assert line == "artifact_identification: Need 5.0% more to reach the required 80% score."

    def test_fractional_gap(self):
        [line] = gap_feedback([_failing("excavation_simulation", 75, 62.7)])
        assert "12.3%" in line

    def test_pass_feedback(self):
        lines = attempt_feedback(86.0, [])
        assert lines[0].startswith("Congratulations!")
        assert "86.0%" in lines[1]

    def test_fail_feedback(self):
        lines = attempt_feedback(60.0, [_failing("artifact_identification", 80, 70)])
        assert lines[0] == "You do not yet meet all certification requirements."
        assert "10.0%" in lines[1]


class TestPlan:
    """Full remediation plan for a failed attempt."""

    def test_sorted_by_priority(self):
        failing = [
            _failing("excavation_simulation", 75, 70),
            _failing("artifact_identification", 80, 55),
        ]
        plan = plan_remediation(failing, CERTIFICATION_REQUIREMENTS, now=NOW, cooldown_hours=48)

        assert [a.game_type for a in plan.recommended_activities] == [
            "artifact_identification",
            "excavation_simulation",
        ]
        high, low = plan.recommended_activities
        assert high.priority == "high"
        assert high.difficulty == "beginner"
        assert high.estimated_time == 50
        assert high.description == (
            "Practice Artifact Identification at beginner level to improve your score from 55% to 80%"
        )
        assert high.tips == IMPROVEMENT_TIPS["artifact_identification"]
        assert low.priority == "low"
        assert low.difficulty == "advanced"
        assert low.estimated_time == 10

    def test_weak_areas_and_totals(self):
        failing = [_failing("artifact_identification", 80, 72.5)]
        plan = plan_remediation(failing, CERTIFICATION_REQUIREMENTS, now=NOW, cooldown_hours=48)
        assert plan.weak_areas == ["Artifact Identification"]
        assert plan.estimated_completion_time == pytest.approx(15.0)
        assert plan.retest_eligible_date == NOW + 48 * MS_PER_HOUR

    def test_empty_plan(self):
        plan = plan_remediation([], CERTIFICATION_REQUIREMENTS, now=NOW)
        assert plan.recommended_activities == []
        assert plan.estimated_completion_time == 0
