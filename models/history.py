from datetime import datetime
from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, Index
from models.base import Base

class UserQuestionHistory(Base):
    """Per-user exposure record. A row with times_correct > 0 retires the question for that user."""
    __tablename__ = "user_question_history"
    __table_args__ = (
        UniqueConstraint("user_id", "question_id", name="uq_history_user_question"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False)
    times_seen = Column(Integer, default=0, nullable=False)
    times_correct = Column(Integer, default=0, nullable=False)
    last_seen_at = Column(DateTime, default=datetime.utcnow, nullable=False)

# Exclusion subqueries probe (user_id, question_id) and filter on times_correct
Index("idx_history_user_correct", UserQuestionHistory.user_id, UserQuestionHistory.times_correct)
