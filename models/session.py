import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, Float, DateTime, JSON, ForeignKey, UniqueConstraint, Index, text
)
from sqlalchemy.orm import relationship
from models.base import Base, TimestampMixin
from core.exceptions import ValidationError


class SessionStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class Strategy(str, enum.Enum):
    """Question selection strategy, stored as ``PracticeSession.strategy``."""
    BALANCED = "balanced"
    WEAK_AREA = "weak_area"
    ADAPTIVE = "adaptive"
    SUBJECT_FOCUS = "subject_focus"
    HARD_CORE = "hard_core"

    @classmethod
    def parse(cls, value) -> "Strategy":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unknown strategy '{value}'", strategy=value) from None


class PracticeSession(Base, TimestampMixin):
    __tablename__ = "practice_sessions"
    __table_args__ = (
        # At most one in_progress session per user
        Index(
            "uq_practice_sessions_active_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
        Index("idx_sessions_user_status", "user_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    strategy = Column(String(50), default=Strategy.BALANCED.value, nullable=False)
    topic_id = Column(Integer, ForeignKey("topics.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), default=SessionStatus.IN_PROGRESS.value, nullable=False)

    total_questions = Column(Integer, default=0, nullable=False)
    questions_attempted = Column(Integer, default=0, nullable=False)
    correct_answers = Column(Integer, default=0, nullable=False)
    wrong_answers = Column(Integer, default=0, nullable=False)
    accuracy = Column(Float, default=0.0, nullable=False)
    xp_earned = Column(Integer, default=0, nullable=False)
    time_spent_seconds = Column(Integer, default=0, nullable=False)

    # Sampled question ids in presentation order
    question_ids = Column(JSON, nullable=False, default=list)
    topic_distribution = Column(JSON, nullable=False, default=dict)
    subject_distribution = Column(JSON, nullable=False, default=dict)

    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    answers = relationship("SessionAnswer", back_populates="session", order_by="SessionAnswer.id")

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.IN_PROGRESS.value


class SessionAnswer(Base):
    """Write-once answer record."""
    __tablename__ = "session_answers"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_session_answers_session_question"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("practice_sessions.id", ondelete="CASCADE"), index=True, nullable=False)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False)
    selected_option_id = Column(Integer, ForeignKey("answer_options.id"), nullable=True)
    is_correct = Column(Boolean, nullable=False)
    time_spent_seconds = Column(Integer, default=0, nullable=False)
    answered_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    session = relationship("PracticeSession", back_populates="answers")
