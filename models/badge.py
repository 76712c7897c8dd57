import json
from typing import Annotated, Literal, Union
from datetime import datetime

from pydantic import BaseModel, Field, TypeAdapter
from sqlalchemy import Column, Integer, String, Text, Float, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from models.base import Base, TimestampMixin


# === Unlock criteria: one model per badge type, discriminated by "type" ===

class StreakCriteria(BaseModel):
    type: Literal["streak"]
    days: int = Field(0, ge=0)


class AccuracyCriteria(BaseModel):
    type: Literal["accuracy"]
    percentage: float = Field(0, ge=0, le=100)
    min_questions: int = Field(0, ge=0)


class QuizCountCriteria(BaseModel):
    type: Literal["quiz_count"]
    count: int = Field(0, ge=0)
    in_single_session: bool = False


class SubjectMasterCriteria(BaseModel):
    type: Literal["subject_master"]
    subject: str = Field(..., min_length=1)
    count: int = Field(0, ge=0)


BadgeCriteria = Annotated[
    Union[StreakCriteria, AccuracyCriteria, QuizCountCriteria, SubjectMasterCriteria],
    Field(discriminator="type"),
]

criteria_adapter = TypeAdapter(BadgeCriteria)

CRITERIA_TYPES = frozenset({"streak", "accuracy", "quiz_count", "subject_master"})


class Badge(Base, TimestampMixin):
    __tablename__ = "badges"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    badge_type = Column(String(50), nullable=True)
    unlock_criteria = Column(JSON, nullable=False)
    xp_reward = Column(Integer, default=0, nullable=False)

    def raw_criteria(self) -> dict:
        """Stored criteria as a dict; tolerates criteria saved as a JSON string."""
        raw = self.unlock_criteria
        if isinstance(raw, str):
            raw = json.loads(raw)
        if not isinstance(raw, dict):
            raise ValueError(f"Badge {self.id} criteria must be an object, got {type(raw).__name__}")
        return raw


class UserBadge(Base):
    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    badge_id = Column(Integer, ForeignKey("badges.id"), nullable=False)
    progress_percentage = Column(Float, default=0.0, nullable=False)
    unlocked_at = Column(DateTime, nullable=True)  # Never cleared once set
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    badge = relationship("Badge")
