"""Pydantic models for certification: requirements, evaluations, attempts, certificates."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from uwa.progress.schemas import CamelModel, CertificationStatus, GameProgress

Priority = Literal["high", "medium", "low"]
Difficulty = Literal["beginner", "intermediate", "advanced"]
VerificationStatus = Literal["valid", "revoked", "not_found"]


class Requirement(BaseModel):
    """Static per-game-type certification requirement."""

    game_type: str
    required_score: float
    weight: float
    name: str
    description: str = ""


class RequirementCheck(CamelModel):
    game_type: str
    required_score: float
    actual_score: float


class FailingRequirement(CamelModel):
    game_type: str
    required_score: float
    actual_score: float
    gap: float


class Evaluation(CamelModel):
    overall_score: float
    all_requirements_met: bool
    failing_requirements: list[FailingRequirement]
    game_scores: dict[str, float] = {}


class EligibilityResponse(CamelModel):
    is_eligible: bool
    completion_percentage: float
    missing_requirements: list[str]
    estimated_time_to_completion: int | None = None


class AssessmentResponse(CamelModel):
    learner_id: str
    is_eligible: bool
    overall_score: float
    game_scores: dict[str, float]
    strengths: list[str]
    weaknesses: list[str]
    recommendations: list[str]


class RemediationActivity(CamelModel):
    game_type: str
    difficulty: Difficulty
    description: str
    estimated_time: int
    priority: Priority
    tips: list[str] = []


class RemediationPlan(CamelModel):
    weak_areas: list[str]
    recommended_activities: list[RemediationActivity]
    estimated_completion_time: float
    retest_eligible_date: int


class CertificationAttempt(CamelModel):
    """Recorded certification attempt. Never modified after it is stored."""

    timestamp: int
    game_scores: dict[str, float]
    overall_score: float
    passed: bool
    feedback: list[str] = []


class RetestStatus(CamelModel):
    can_retest: bool
    next_retest_time: int | None = None
    hours_remaining: int | None = None
    attempt_count: int = 0


class Certificate(CamelModel):
    learner_id: str
    student_name: str
    certificate_type: str
    issue_date: int
    scores: dict[str, float]
    verification_code: str
    digital_signature: str
    is_valid: bool = True


class VerificationResult(CamelModel):
    status: VerificationStatus
    is_valid: bool
    certificate: Certificate | None = None
    error_message: str | None = None
    verified_date: int


class AttemptOutcome(CamelModel):
    """Response to a certification attempt.

    ``allowed`` is False when the attempt fell inside the retest cooldown; in
    that case nothing was recorded and only ``retest`` is meaningful.
    """

    allowed: bool
    passed: bool = False
    evaluation: Evaluation | None = None
    feedback: list[str] = []
    certificate: Certificate | None = None
    already_certified: bool = False
    remediation: RemediationPlan | None = None
    retest: RetestStatus
    certification_status: CertificationStatus | None = None


class AttemptHistoryResponse(CamelModel):
    attempts: list[CertificationAttempt]
    is_improving: bool
    average_improvement: float


class RevokeRequest(CamelModel):
    reason: str = ""


class RevokeResponse(CamelModel):
    success: bool
    message: str


class AttemptRequest(CamelModel):
    display_name: str = Field(min_length=1, max_length=100)


class PracticeResponse(CamelModel):
    game_progress: GameProgress
    ready_for_retest: bool


class EligibleLearner(CamelModel):
    """A learner waiting to sit the certification."""

    learner_id: str
    overall_completion: float
    total_score: float
    last_activity: int
