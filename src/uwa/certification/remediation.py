"""Remediation planning for learners who fall short of certification.

Priority by score gap (percentage points):
  gap > 20        → high
  10 < gap <= 20  → medium
  gap <= 10       → low

Practice time is estimated at 2 minutes per percentage point of gap.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from uwa.certification.requirements import requirement_name
from uwa.certification.schemas import (
    Difficulty,
    FailingRequirement,
    Priority,
    RemediationActivity,
    RemediationPlan,
    Requirement,
)
from uwa.certification.scoring import format_score
from uwa.timeutils import hours_to_ms, now_ms

MINUTES_PER_GAP_POINT = 2

PRIORITY_ORDER: dict[str, int] = {"high": 0, "medium": 1, "low": 2}

IMPROVEMENT_TIPS: dict[str, list[str]] = {
    "artifact_identification": [
        "Study artifact characteristics from different historical periods",
        "Practice identifying artifacts by their cultural context",
        "Review the significance and discovery stories of key artifacts",
    ],
    "excavation_simulation": [
        "Focus on proper archaeological documentation techniques",
        "Practice using the correct tools for different excavation scenarios",
        "Review excavation protocols and avoid common violations",
    ],
}

GENERIC_TIPS = ["Replay earlier levels and review the feedback after each round"]


def priority_for_gap(gap: float) -> Priority:
    if gap > 20:
        return "high"
    if gap > 10:
        return "medium"
    return "low"


def difficulty_for_score(score: float) -> Difficulty:
    """Recommended practice difficulty for the learner's current score."""
    if score >= 70:
        return "advanced"
    if score >= 60:
        return "intermediate"
    return "beginner"


def estimate_remediation_minutes(failing: Sequence[FailingRequirement]) -> float:
    return sum(req.gap * MINUTES_PER_GAP_POINT for req in failing)


def gap_feedback(failing: Sequence[FailingRequirement]) -> list[str]:
    """One line per failing requirement stating the gap and the threshold."""
    return [
        f"{req.game_type}: Need {req.gap:.1f}% more to reach the required "
        f"{format_score(req.required_score)}% score."
        for req in failing
    ]


def attempt_feedback(
    overall_score: float,
    failing: Sequence[FailingRequirement],
) -> list[str]:
    """Feedback recorded with a certification attempt."""
    if not failing:
        return [
            "Congratulations! You meet all requirements for certification.",
            f"Your overall score of {overall_score:.1f}% demonstrates strong "
            "competency in underwater archaeology.",
        ]
    return ["You do not yet meet all certification requirements.", *gap_feedback(failing)]


def improvement_tips(game_type: str) -> list[str]:
    return list(IMPROVEMENT_TIPS.get(game_type, GENERIC_TIPS))


def plan_remediation(
    failing: Sequence[FailingRequirement],
    requirements: Sequence[Requirement],
    now: int | None = None,
    cooldown_hours: float = 48,
) -> RemediationPlan:
    """Prioritized practice activities, most urgent first."""
    if now is None:
        now = now_ms()

    activities = []
    for req in failing:
        name = requirement_name(requirements, req.game_type)
        difficulty = difficulty_for_score(req.actual_score)
        activities.append(
            RemediationActivity(
                game_type=req.game_type,
                difficulty=difficulty,
                description=(
                    f"Practice {name} at {difficulty} level to improve your score from "
                    f"{format_score(req.actual_score)}% to {format_score(req.required_score)}%"
                ),
                estimated_time=math.ceil(req.gap * MINUTES_PER_GAP_POINT),
                priority=priority_for_gap(req.gap),
                tips=improvement_tips(req.game_type),
            )
        )

    # Stable sort keeps requirement order within a priority bucket.
    activities.sort(key=lambda a: PRIORITY_ORDER[a.priority])

    return RemediationPlan(
        weak_areas=[requirement_name(requirements, req.game_type) for req in failing],
        recommended_activities=activities,
        estimated_completion_time=estimate_remediation_minutes(failing),
        retest_eligible_date=now + hours_to_ms(cooldown_hours),
    )
