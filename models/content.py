from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from models.base import Base, TimestampMixin

class Subject(Base, TimestampMixin):
    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    weightage = Column(Integer, nullable=True)  # NULL -> DEFAULT_CONTENT_WEIGHTAGE
    is_active_in_random = Column(Boolean, default=True, nullable=False)

    topics = relationship("Topic", back_populates="subject")


class Topic(Base, TimestampMixin):
    __tablename__ = "topics"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    weightage = Column(Integer, nullable=True)
    is_active_in_random = Column(Boolean, default=True, nullable=False)

    subject = relationship("Subject", back_populates="topics")


class Question(Base, TimestampMixin):
    __tablename__ = "questions"
    __table_args__ = (
        CheckConstraint("difficulty BETWEEN 1 AND 5", name="ck_questions_difficulty"),
    )

    id = Column(Integer, primary_key=True, index=True)
    topic_id = Column(Integer, ForeignKey("topics.id"), index=True, nullable=False)
    text = Column(Text, nullable=False)
    difficulty = Column(Integer, default=3, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    options = relationship("AnswerOption", back_populates="question", order_by="AnswerOption.id")


class AnswerOption(Base):
    __tablename__ = "answer_options"

    id = Column(Integer, primary_key=True, index=True)
    question_id = Column(Integer, ForeignKey("questions.id"), index=True, nullable=False)
    text = Column(Text, nullable=False)
    is_correct = Column(Boolean, default=False, nullable=False)

    question = relationship("Question", back_populates="options")
