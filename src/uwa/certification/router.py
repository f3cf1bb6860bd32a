"""Certification API endpoints: eligibility, attempts, retests, remediation, certificates."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from uwa.certification.schemas import (
    AssessmentResponse,
    AttemptHistoryResponse,
    AttemptOutcome,
    AttemptRequest,
    Certificate,
    EligibilityResponse,
    EligibleLearner,
    PracticeResponse,
    RemediationPlan,
    RetestStatus,
    RevokeRequest,
    RevokeResponse,
    VerificationResult,
)
from uwa.certification.service import CertificationService
from uwa.config import get_settings
from uwa.database import get_session
from uwa.progress.schemas import GameType, PracticeResultRequest

router = APIRouter(prefix="/api/v1", tags=["Certification"])


def get_certification_service(db: AsyncSession = Depends(get_session)) -> CertificationService:
    settings = get_settings()
    return CertificationService(
        db,
        cooldown_hours=settings.retest_cooldown_hours,
        certificate_type=settings.certificate_type,
        required_completion=settings.required_overall_completion,
    )


# ── Learner certification ──


@router.get("/certification/eligible", response_model=list[EligibleLearner])
async def list_eligible_learners(
    svc: CertificationService = Depends(get_certification_service),
) -> list[EligibleLearner]:
    """Learners who meet the requirements but hold no certificate yet."""
    return await svc.list_eligible_learners()


@router.get("/certification/{learner_id}/eligibility", response_model=EligibilityResponse)
async def get_eligibility(
    learner_id: str,
    svc: CertificationService = Depends(get_certification_service),
) -> EligibilityResponse:
    """Whether the learner has done enough to sit the certification."""
    return await svc.check_eligibility(learner_id)


@router.get("/certification/{learner_id}/assessment", response_model=AssessmentResponse)
async def get_assessment(
    learner_id: str,
    svc: CertificationService = Depends(get_certification_service),
) -> AssessmentResponse:
    """Strengths, weaknesses and recommendations from the learner's best scores."""
    assessment = await svc.get_assessment(learner_id)
    if assessment is None:
        raise HTTPException(404, "No game progress recorded for learner")
    return assessment


@router.post("/certification/{learner_id}/attempts", response_model=AttemptOutcome)
async def attempt_certification(
    learner_id: str,
    body: AttemptRequest,
    svc: CertificationService = Depends(get_certification_service),
):
    """Evaluate the learner and issue a certificate on a pass.

    Inside the retest cooldown the attempt is refused with 409 and nothing
    is recorded.
    """
    outcome = await svc.attempt_certification(learner_id, body.display_name)
    if not outcome.allowed:
        return JSONResponse(
            status_code=409,
            content={
                "detail": "Retest cooldown has not elapsed",
                "retest": outcome.retest.model_dump(by_alias=True),
            },
        )
    await svc.db.commit()
    return outcome


@router.get("/certification/{learner_id}/attempts", response_model=AttemptHistoryResponse)
async def get_attempts(
    learner_id: str,
    svc: CertificationService = Depends(get_certification_service),
) -> AttemptHistoryResponse:
    """All recorded attempts, oldest first."""
    history = await svc.get_attempt_history(learner_id)
    return AttemptHistoryResponse(
        attempts=list(history.attempts),
        is_improving=history.is_improving(),
        average_improvement=history.average_improvement(),
    )


@router.get("/certification/{learner_id}/retest", response_model=RetestStatus)
async def get_retest_status(
    learner_id: str,
    svc: CertificationService = Depends(get_certification_service),
) -> RetestStatus:
    return await svc.get_retest_status(learner_id)


@router.get("/certification/{learner_id}/remediation", response_model=RemediationPlan)
async def get_remediation(
    learner_id: str,
    svc: CertificationService = Depends(get_certification_service),
) -> RemediationPlan:
    """Practice plan for every requirement the learner is currently short of."""
    return await svc.get_remediation_plan(learner_id)


@router.post("/certification/{learner_id}/practice/{game_type}", response_model=PracticeResponse)
async def complete_practice(
    learner_id: str,
    game_type: GameType,
    body: PracticeResultRequest,
    svc: CertificationService = Depends(get_certification_service),
) -> PracticeResponse:
    """Record a remediation practice round."""
    progress, ready = await svc.complete_practice(learner_id, game_type, body.score, body.time_spent)
    if progress is None:
        raise HTTPException(404, "No progress recorded for this game")
    await svc.db.commit()
    return PracticeResponse(game_progress=progress, ready_for_retest=ready)


# ── Certificates ──


@router.get("/certificates", response_model=list[Certificate])
async def list_certificates(
    limit: int = Query(50, ge=1, le=500),
    include_revoked: bool = Query(False),
    svc: CertificationService = Depends(get_certification_service),
) -> list[Certificate]:
    """Issued certificates, newest first."""
    return await svc.list_certificates(limit=limit, include_revoked=include_revoked)


@router.get("/certificates/verify/{code}", response_model=VerificationResult)
async def verify_certificate(
    code: str,
    svc: CertificationService = Depends(get_certification_service),
) -> VerificationResult:
    """Look up a certificate by its verification code.

    Always answers 200; unknown and revoked codes are reported in ``status``.
    """
    return await svc.verify(code)


@router.post("/certificates/{code}/revoke", response_model=RevokeResponse)
async def revoke_certificate(
    code: str,
    body: RevokeRequest,
    svc: CertificationService = Depends(get_certification_service),
) -> RevokeResponse:
    result = await svc.revoke(code, reason=body.reason)
    if not result.success:
        raise HTTPException(404, result.message)
    await svc.db.commit()
    return result
