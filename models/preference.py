from sqlalchemy import Column, Integer, String, Boolean, Float, JSON, ForeignKey
from models.base import Base, TimestampMixin

class UserQuizPreference(Base, TimestampMixin):
    __tablename__ = "user_quiz_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, index=True, nullable=False)

    # Every column is nullable; PreferenceService fills the gaps independently
    default_strategy = Column(String(50), nullable=True)
    default_questions_per_session = Column(Integer, nullable=True)
    preferred_difficulty = Column(Integer, nullable=True)
    difficulty_adaptation_enabled = Column(Boolean, nullable=True)
    excluded_subject_ids = Column(JSON, nullable=True)
    preferred_subject_ids = Column(JSON, nullable=True)
    weak_area_threshold = Column(Float, nullable=True)
    min_questions_for_weak_detection = Column(Integer, nullable=True)
    avoid_recent_questions_days = Column(Integer, nullable=True)
