"""Certification service: evaluation, attempts, certificate storage, and remediation."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from uwa.certification.issuer import (
    DEFAULT_CERTIFICATE_TYPE,
    issue_certificate,
    revoke_certificate,
    verify_certificate,
)
from uwa.certification.remediation import attempt_feedback, plan_remediation
from uwa.certification.requirements import CERTIFICATION_REQUIREMENTS, weight_table
from uwa.certification.retest import (
    DEFAULT_COOLDOWN_HOURS,
    AttemptHistory,
    is_ready_for_retest,
    record_game_result,
)
from uwa.certification.schemas import (
    AssessmentResponse,
    AttemptOutcome,
    Certificate,
    CertificationAttempt,
    EligibilityResponse,
    EligibleLearner,
    Evaluation,
    RemediationPlan,
    Requirement,
    RetestStatus,
    RevokeResponse,
    VerificationResult,
)
from uwa.certification.scoring import (
    assess_performance,
    build_requirement_checks,
    certification_status_for,
    check_eligibility,
    evaluate_requirements,
)
from uwa.db.models import CertificateRecord, CertificationAttemptRecord
from uwa.progress.schemas import GameProgress
from uwa.progress.service import ProgressService
from uwa.timeutils import now_ms

logger = logging.getLogger(__name__)


def certificate_from_record(record: CertificateRecord) -> Certificate:
    return Certificate(
        learner_id=record.learner_id,
        student_name=record.student_name,
        certificate_type=record.certificate_type,
        issue_date=record.issue_date,
        scores=dict(record.scores or {}),
        verification_code=record.verification_code,
        digital_signature=record.digital_signature,
        is_valid=record.is_valid,
    )


def attempt_from_record(record: CertificationAttemptRecord) -> CertificationAttempt:
    return CertificationAttempt(
        timestamp=record.attempted_at,
        game_scores=dict(record.game_scores or {}),
        overall_score=record.overall_score,
        passed=record.passed,
        feedback=list(record.feedback or []),
    )


class CertificationService:
    """Certification engine: scoring, attempts, certificates, retests."""

    def __init__(
        self,
        db: AsyncSession,
        requirements: Sequence[Requirement] = CERTIFICATION_REQUIREMENTS,
        cooldown_hours: float = DEFAULT_COOLDOWN_HOURS,
        certificate_type: str = DEFAULT_CERTIFICATE_TYPE,
        required_completion: float = 85.0,
    ) -> None:
        self.db = db
        self.progress = ProgressService(db)
        self.requirements = list(requirements)
        self.weights = weight_table(self.requirements)
        self.cooldown_hours = cooldown_hours
        self.certificate_type = certificate_type
        self.required_completion = required_completion

    # --- Evaluation ---

    async def evaluate(self, learner_id: str) -> Evaluation:
        """Score the learner's best results against the requirements.

        Updates the learner's certification status to eligible / not_eligible
        unless they already hold a certificate.
        """
        game_progress = await self.progress.get_game_progress(learner_id)
        evaluation = evaluate_requirements(
            build_requirement_checks(game_progress, self.requirements), self.weights
        )

        overall = await self.progress.get_overall_progress(learner_id)
        if overall is not None:
            await self.progress.set_certification_status(
                learner_id, certification_status_for(evaluation, overall.certification_status)
            )
        return evaluation

    async def check_eligibility(self, learner_id: str) -> EligibilityResponse:
        return check_eligibility(
            await self.progress.get_overall_progress(learner_id),
            await self.progress.get_game_progress(learner_id),
            self.requirements,
            self.required_completion,
        )

    async def list_eligible_learners(self) -> list[EligibleLearner]:
        """Learners currently marked ``eligible``, most recently active first."""
        return [
            EligibleLearner(
                learner_id=learner_id,
                overall_completion=overall.overall_completion,
                total_score=overall.total_score,
                last_activity=overall.last_activity,
            )
            for learner_id, overall in await self.progress.list_learners_by_status("eligible")
        ]

    async def get_assessment(self, learner_id: str) -> AssessmentResponse | None:
        return assess_performance(
            learner_id,
            await self.progress.get_game_progress(learner_id),
            self.requirements,
            self.weights,
        )

    # --- Attempts & retests ---

    async def get_attempt_history(self, learner_id: str) -> AttemptHistory:
        result = await self.db.execute(
            select(CertificationAttemptRecord)
            .where(CertificationAttemptRecord.learner_id == learner_id)
            .order_by(CertificationAttemptRecord.attempted_at)
        )
        return AttemptHistory(attempt_from_record(r) for r in result.scalars().all())

    async def get_retest_status(self, learner_id: str, now: int | None = None) -> RetestStatus:
        history = await self.get_attempt_history(learner_id)
        return history.retest_status(now=now, cooldown_hours=self.cooldown_hours)

    async def _record_attempt(
        self,
        learner_id: str,
        history: AttemptHistory,
        attempt: CertificationAttempt,
    ) -> None:
        history.append(attempt)
        self.db.add(
            CertificationAttemptRecord(
                learner_id=learner_id,
                attempted_at=attempt.timestamp,
                overall_score=attempt.overall_score,
                game_scores=dict(attempt.game_scores),
                passed=attempt.passed,
                feedback=list(attempt.feedback),
            )
        )
        await self.db.flush()
        logger.info(
            "Recorded certification attempt for learner %s: score=%.1f passed=%s",
            learner_id, attempt.overall_score, attempt.passed,
        )

    async def attempt_certification(
        self,
        learner_id: str,
        display_name: str,
        now: int | None = None,
    ) -> AttemptOutcome:
        """Run a certification attempt.

        Inside the retest cooldown nothing is evaluated or recorded and the
        outcome carries ``allowed=False``. A passing attempt mints a
        certificate unless the learner already holds a valid one; a failing
        attempt comes back with feedback, a remediation plan, and the retest
        time.
        """
        if now is None:
            now = now_ms()

        history = await self.get_attempt_history(learner_id)
        retest = history.retest_status(now=now, cooldown_hours=self.cooldown_hours)
        if not retest.can_retest:
            logger.warning(
                "Certification attempt for learner %s blocked: %d hour(s) of cooldown left",
                learner_id, retest.hours_remaining,
            )
            return AttemptOutcome(allowed=False, retest=retest)

        evaluation = await self.evaluate(learner_id)
        feedback = attempt_feedback(evaluation.overall_score, evaluation.failing_requirements)
        await self._record_attempt(
            learner_id,
            history,
            CertificationAttempt(
                timestamp=now,
                game_scores=evaluation.game_scores,
                overall_score=evaluation.overall_score,
                passed=evaluation.all_requirements_met,
                feedback=feedback,
            ),
        )
        retest = history.retest_status(now=now, cooldown_hours=self.cooldown_hours)

        if not evaluation.all_requirements_met:
            overall = await self.progress.get_overall_progress(learner_id)
            return AttemptOutcome(
                allowed=True,
                passed=False,
                evaluation=evaluation,
                feedback=feedback,
                remediation=plan_remediation(
                    evaluation.failing_requirements,
                    self.requirements,
                    now=now,
                    cooldown_hours=self.cooldown_hours,
                ),
                retest=retest,
                certification_status=overall.certification_status if overall else "not_eligible",
            )

        existing = await self.get_learner_certificate(learner_id)
        if existing is not None:
            return AttemptOutcome(
                allowed=True,
                passed=True,
                evaluation=evaluation,
                feedback=feedback,
                certificate=existing,
                already_certified=True,
                retest=retest,
                certification_status="certified",
            )

        certificate = await self._store_certificate(
            issue_certificate(
                learner_id,
                display_name,
                evaluation.game_scores,
                now=now,
                certificate_type=self.certificate_type,
            )
        )
        await self.progress.set_certification_status(learner_id, "certified")
        return AttemptOutcome(
            allowed=True,
            passed=True,
            evaluation=evaluation,
            feedback=feedback,
            certificate=certificate,
            retest=retest,
            certification_status="certified",
        )

    async def get_remediation_plan(self, learner_id: str, now: int | None = None) -> RemediationPlan:
        if now is None:
            now = now_ms()
        game_progress = await self.progress.get_game_progress(learner_id)
        evaluation = evaluate_requirements(
            build_requirement_checks(game_progress, self.requirements), self.weights
        )
        return plan_remediation(
            evaluation.failing_requirements,
            self.requirements,
            now=now,
            cooldown_hours=self.cooldown_hours,
        )

    async def complete_practice(
        self,
        learner_id: str,
        game_type: str,
        score: float,
        time_spent: float,
        now: int | None = None,
    ) -> tuple[GameProgress | None, bool]:
        """Record a remediation practice result.

        Returns the updated progress (None when the learner never played the
        game) and whether every requirement is now met.
        """
        if now is None:
            now = now_ms()
        games = await self.progress.get_game_progress(learner_id)
        current = next((g for g in games if g.game_type == game_type), None)

        updated = None
        if current is not None:
            updated = record_game_result(current, score, time_spent, now=now)
            await self.progress.replace_game_progress(learner_id, updated)
            overall = await self.progress.get_overall_progress(learner_id)
            await self.progress.record_history(
                learner_id,
                updated,
                score=score,
                time_spent=time_spent,
                overall_completion=overall.overall_completion if overall else 0.0,
                now=now,
            )
            await self.db.flush()
            games = [g for g in games if g.game_type != game_type] + [updated]

        return updated, is_ready_for_retest(games, self.requirements)

    # --- Certificates ---

    async def _store_certificate(self, certificate: Certificate) -> Certificate:
        self.db.add(
            CertificateRecord(
                learner_id=certificate.learner_id,
                student_name=certificate.student_name,
                certificate_type=certificate.certificate_type,
                issue_date=certificate.issue_date,
                scores=dict(certificate.scores),
                verification_code=certificate.verification_code,
                digital_signature=certificate.digital_signature,
                is_valid=certificate.is_valid,
            )
        )
        await self.db.flush()
        return certificate

    async def _certificate_record(self, verification_code: str) -> CertificateRecord | None:
        result = await self.db.execute(
            select(CertificateRecord).where(CertificateRecord.verification_code == verification_code)
        )
        return result.scalar_one_or_none()

    async def get_learner_certificate(self, learner_id: str) -> Certificate | None:
        """The learner's currently valid certificate, if any."""
        result = await self.db.execute(
            select(CertificateRecord)
            .where(
                CertificateRecord.learner_id == learner_id,
                CertificateRecord.is_valid.is_(True),
            )
            .order_by(CertificateRecord.issue_date.desc())
            .limit(1)
        )
        record = result.scalar_one_or_none()
        return certificate_from_record(record) if record else None

    async def verify(self, verification_code: str, now: int | None = None) -> VerificationResult:
        record = await self._certificate_record(verification_code)
        return verify_certificate(certificate_from_record(record) if record else None, now=now)

    async def revoke(self, verification_code: str, reason: str = "") -> RevokeResponse:
        """Invalidate a certificate.

        The learner drops back to ``eligible`` only when this call invalidated
        their last valid certificate. Revoking an already revoked certificate
        changes nothing.
        """
        record = await self._certificate_record(verification_code)
        if record is None:
            return RevokeResponse(success=False, message="Certificate not found")

        was_valid = record.is_valid
        revoked = revoke_certificate(certificate_from_record(record))
        record.is_valid = revoked.is_valid
        await self.db.flush()
        if was_valid:
            logger.info("Revoked certificate %s for learner %s", verification_code, record.learner_id)
            if await self.get_learner_certificate(record.learner_id) is None:
                await self.progress.set_certification_status(record.learner_id, "eligible")
                await self.db.flush()

        message = f"Certificate revoked: {reason}" if reason else "Certificate revoked"
        return RevokeResponse(success=True, message=message)

    async def list_certificates(
        self,
        limit: int | None = None,
        include_revoked: bool = False,
    ) -> list[Certificate]:
        """Certificates newest first."""
        stmt = select(CertificateRecord).order_by(CertificateRecord.issue_date.desc())
        if not include_revoked:
            stmt = stmt.where(CertificateRecord.is_valid.is_(True))
        if limit:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return [certificate_from_record(r) for r in result.scalars().all()]
