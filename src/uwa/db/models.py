"""ORM models for learner progress, history, certification attempts, certificates, and backups.

Timestamps are stored as epoch milliseconds (BigInteger), the same unit the
web client and the backup format use. Only portable column types are used
so the models run on PostgreSQL and SQLite alike.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from uwa.db.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


class GameProgressRecord(Base):
    """Per-game progress: UNIQUE(learner_id, game_type)."""

    __tablename__ = "game_progress"
    __table_args__ = (
        UniqueConstraint("learner_id", "game_type", name="uq_game_progress_learner_game"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    game_type: Mapped[str] = mapped_column(String(32), nullable=False)
    completed_levels: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_levels: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    average_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    time_spent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_played: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    achievements: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)


class OverallProgressRecord(Base):
    """One row per learner, derived from their game progress."""

    __tablename__ = "overall_progress"

    learner_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    overall_completion: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    certification_status: Mapped[str] = mapped_column(String(16), nullable=False, default="not_eligible")
    last_activity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_game_time: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)


class ProgressBackupRecord(Base):
    """Serialized progress snapshot kept for restore and cross-device sync."""

    __tablename__ = "progress_backups"
    __table_args__ = (
        Index("idx_progress_backups_learner_date", "learner_id", "backup_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    backup_date: Mapped[int] = mapped_column(BigInteger, nullable=False)
    backup_data: Mapped[str] = mapped_column(Text, nullable=False)
    backup_type: Mapped[str] = mapped_column(String(16), nullable=False)
    device_info: Mapped[str | None] = mapped_column(Text, nullable=True)


class ProgressHistoryRecord(Base):
    """One row per recorded game session, kept for trend analysis."""

    __tablename__ = "progress_history"
    __table_args__ = (
        Index("idx_progress_history_learner_time", "learner_id", "timestamp"),
        Index("idx_progress_history_time", "timestamp"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    game_type: Mapped[str] = mapped_column(String(32), nullable=False)
    completed_levels: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_levels: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    time_spent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    overall_completion: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    snapshot_data: Mapped[str] = mapped_column(Text, nullable=False)


# ---------------------------------------------------------------------------
# Certification
# ---------------------------------------------------------------------------


class CertificationAttemptRecord(Base):
    """Certification attempt: insert-only."""

    __tablename__ = "certification_attempts"
    __table_args__ = (
        Index("idx_cert_attempts_learner_time", "learner_id", "attempted_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    attempted_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    overall_score: Mapped[float] = mapped_column(Float, nullable=False)
    game_scores: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    feedback: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)


class CertificateRecord(Base):
    """Issued certificate. Revocation flips is_valid; rows are never deleted."""

    __tablename__ = "certificates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    student_name: Mapped[str] = mapped_column(String(128), nullable=False)
    certificate_type: Mapped[str] = mapped_column(String(64), nullable=False)
    issue_date: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    scores: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    verification_code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    digital_signature: Mapped[str] = mapped_column(String(16), nullable=False)
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
