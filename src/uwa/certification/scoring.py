"""Score aggregation: weighted overall score and pass/fail against requirements.

Pure functions over already-fetched progress. A game type with no progress
record scores 0; a game type with no configured weight contributes 0 to the
overall score.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from uwa.certification.schemas import (
    AssessmentResponse,
    EligibilityResponse,
    Evaluation,
    FailingRequirement,
    Requirement,
    RequirementCheck,
)
from uwa.progress.schemas import CertificationStatus, GameProgress, OverallProgress

EXCELLENT_SCORE = 90

# Minutes, used for the eligibility estimate only.
NO_PROGRESS_ESTIMATE = 300
MISSING_GAME_ESTIMATE = 60
IMPROVE_SCORE_ESTIMATE = 30


def format_score(score: float) -> str:
    """Render a score the way the client does: 80 not 80.0, 72.5 stays 72.5."""
    return f"{score:g}"


def _progress_by_type(game_progress: Sequence[GameProgress]) -> dict[str, GameProgress]:
    return {p.game_type: p for p in game_progress}


def build_requirement_checks(
    game_progress: Sequence[GameProgress],
    requirements: Sequence[Requirement],
) -> list[RequirementCheck]:
    """Pair each requirement with the learner's best score for that game type."""
    by_type = _progress_by_type(game_progress)
    checks = []
    for req in requirements:
        progress = by_type.get(req.game_type)
        if progress is None:
            actual = 0.0
        else:
            actual = progress.best_score
        checks.append(
            RequirementCheck(
                game_type=req.game_type,
                required_score=req.required_score,
                actual_score=actual,
            )
        )
    return checks


def compute_overall_score(
    checks: Sequence[RequirementCheck],
    weights: Mapping[str, float],
) -> float:
    """Sum of actual score x weight per game type."""
    return sum(check.actual_score * weights.get(check.game_type, 0.0) for check in checks)


def evaluate_requirements(
    checks: Sequence[RequirementCheck],
    weights: Mapping[str, float],
) -> Evaluation:
    """Weighted overall score plus the requirements that fall short, each with its gap."""
    failing = [
        FailingRequirement(
            game_type=check.game_type,
            required_score=check.required_score,
            actual_score=check.actual_score,
            gap=check.required_score - check.actual_score,
        )
        for check in checks
        if check.actual_score < check.required_score
    ]
    return Evaluation(
        overall_score=compute_overall_score(checks, weights),
        all_requirements_met=not failing,
        failing_requirements=failing,
        game_scores={check.game_type: check.actual_score for check in checks},
    )


def certification_status_for(
    evaluation: Evaluation,
    current: CertificationStatus | None,
) -> CertificationStatus:
    """Status after an evaluation. A certified learner stays certified until revoked."""
    if current == "certified":
        return "certified"
    return "eligible" if evaluation.all_requirements_met else "not_eligible"


def check_eligibility(
    overall_progress: OverallProgress | None,
    game_progress: Sequence[GameProgress],
    requirements: Sequence[Requirement],
    required_completion: float,
) -> EligibilityResponse:
    """Summarize what still stands between the learner and certification."""
    if overall_progress is None:
        return EligibilityResponse(
            is_eligible=False,
            completion_percentage=0,
            missing_requirements=["No progress recorded yet"],
            estimated_time_to_completion=NO_PROGRESS_ESTIMATE,
        )

    by_type = _progress_by_type(game_progress)
    missing: list[str] = []
    estimate = 0

    for req in requirements:
        progress = by_type.get(req.game_type)
        required = format_score(req.required_score)
        if progress is None:
            missing.append(f"Complete {req.name} game (minimum {required}% score)")
            estimate += MISSING_GAME_ESTIMATE
        elif progress.best_score < req.required_score:
            missing.append(
                f"Improve {req.name} score to {required}% "
                f"(current: {format_score(progress.best_score)}%)"
            )
            estimate += IMPROVE_SCORE_ESTIMATE

    if overall_progress.overall_completion < required_completion:
        missing.append(
            f"Reach {format_score(required_completion)}% overall completion "
            f"(current: {overall_progress.overall_completion:.1f}%)"
        )

    is_eligible = not missing
    return EligibilityResponse(
        is_eligible=is_eligible,
        completion_percentage=overall_progress.overall_completion,
        missing_requirements=missing,
        estimated_time_to_completion=None if is_eligible else estimate,
    )


def assess_performance(
    learner_id: str,
    game_progress: Sequence[GameProgress],
    requirements: Sequence[Requirement],
    weights: Mapping[str, float],
) -> AssessmentResponse | None:
    """Strengths, weaknesses, and recommendations. None when nothing has been played yet."""
    if not game_progress:
        return None

    evaluation = evaluate_requirements(build_requirement_checks(game_progress, requirements), weights)
    by_type = _progress_by_type(game_progress)
    strengths: list[str] = []
    weaknesses: list[str] = []
    recommendations: list[str] = []

    for req in requirements:
        progress = by_type.get(req.game_type)
        if progress is None:
            weaknesses.append(f"{req.name} not yet attempted")
            recommendations.append(f"Complete {req.name} game")
            continue

        best = format_score(progress.best_score)
        if progress.best_score >= EXCELLENT_SCORE:
            strengths.append(f"Excellent performance in {req.name} ({best}%)")
        elif progress.best_score >= req.required_score:
            strengths.append(f"Good performance in {req.name} ({best}%)")
        else:
            weaknesses.append(
                f"{req.name} needs improvement ({best}% / {format_score(req.required_score)}% required)"
            )
            recommendations.append(
                f"Practice {req.name} to improve your score by "
                f"{req.required_score - progress.best_score:.1f}%"
            )

    if evaluation.all_requirements_met:
        recommendations.append("You are ready for certification! Proceed to generate your certificate.")

    return AssessmentResponse(
        learner_id=learner_id,
        is_eligible=evaluation.all_requirements_met,
        overall_score=evaluation.overall_score,
        game_scores=evaluation.game_scores,
        strengths=strengths,
        weaknesses=weaknesses,
        recommendations=recommendations,
    )
