from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, exists, and_
from sqlalchemy.orm import selectinload
from models.content import Question, Topic, Subject, AnswerOption
from models.history import UserQuestionHistory
from services.preference_service import ResolvedPreferences
from core.config import settings
from core.logger import logger


@dataclass(frozen=True)
class CandidateFilter:
    """Restrictions a strategy adds on top of the exclusion predicates."""
    topic_ids: Optional[Sequence[int]] = None
    subject_ids: Optional[Sequence[int]] = None
    min_difficulty: Optional[int] = None
    topic_id: Optional[int] = None


@dataclass(frozen=True)
class Candidate:
    question_id: int
    topic_id: int
    subject_id: int
    difficulty: int
    topic_weight: int
    subject_weight: int

    @property
    def base_weight(self) -> float:
        return float(self.topic_weight * self.subject_weight)


def build_exclusions(user_id: int, prefs: ResolvedPreferences, now: Optional[datetime] = None) -> list:
    """
    Predicates every candidate query is AND-ed with.
    Assumes the query joins Topic and Subject.
    """
    now = now or datetime.utcnow()
    conditions = [
        Question.is_active.is_(True),
        # Never show questions the user got correct before
        ~exists().where(
            UserQuestionHistory.user_id == user_id,
            UserQuestionHistory.question_id == Question.id,
            UserQuestionHistory.times_correct > 0,
        ),
        Topic.is_active_in_random.is_(True),
        Subject.is_active_in_random.is_(True),
    ]

    if prefs.avoid_recent_questions_days > 0:
        cutoff = now - timedelta(days=prefs.avoid_recent_questions_days)
        recent = [
            UserQuestionHistory.user_id == user_id,
            UserQuestionHistory.question_id == Question.id,
            UserQuestionHistory.last_seen_at >= cutoff,
        ]
        if not settings.FRESHNESS_EXCLUDES_INCORRECT:
            recent.append(UserQuestionHistory.times_correct > 0)
        conditions.append(~exists().where(and_(*recent)))

    if prefs.excluded_subject_ids:
        conditions.append(Subject.id.notin_(prefs.excluded_subject_ids))

    return conditions


class QuestionService:
    """Read side of the content store: candidate pools, questions and options."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_candidates(self, exclusions: list, candidate_filter: CandidateFilter, limit: int) -> List[Candidate]:
        default_weight = settings.DEFAULT_CONTENT_WEIGHTAGE
        query = (
            select(
                Question.id,
                Question.topic_id,
                Topic.subject_id,
                Question.difficulty,
                func.coalesce(Topic.weightage, default_weight).label("topic_weight"),
                func.coalesce(Subject.weightage, default_weight).label("subject_weight"),
            )
            .join(Topic, Topic.id == Question.topic_id)
            .join(Subject, Subject.id == Topic.subject_id)
            .filter(*exclusions)
        )

        if candidate_filter.topic_ids is not None:
            query = query.filter(Question.topic_id.in_(list(candidate_filter.topic_ids)))
        if candidate_filter.subject_ids is not None:
            query = query.filter(Topic.subject_id.in_(list(candidate_filter.subject_ids)))
        if candidate_filter.min_difficulty is not None:
            query = query.filter(Question.difficulty >= candidate_filter.min_difficulty)
        if candidate_filter.topic_id is not None:
            query = query.filter(Question.topic_id == candidate_filter.topic_id)

        # Shuffle in the store so ties are not broken by insertion order
        query = query.order_by(func.random()).limit(limit)

        result = await self.db.execute(query)
        candidates = [
            Candidate(
                question_id=row.id,
                topic_id=row.topic_id,
                subject_id=row.subject_id,
                difficulty=row.difficulty,
                topic_weight=int(row.topic_weight),
                subject_weight=int(row.subject_weight),
            )
            for row in result.all()
        ]
        logger.debug("Candidates fetched", count=len(candidates), limit=limit)
        return candidates

    async def get_question(self, question_id: int) -> Optional[Question]:
        return await self.db.get(Question, question_id)

    async def get_options(self, question_id: int) -> List[AnswerOption]:
        result = await self.db.execute(
            select(AnswerOption).filter(AnswerOption.question_id == question_id).order_by(AnswerOption.id)
        )
        return list(result.scalars().all())

    async def get_correct_option(self, question_id: int) -> Optional[AnswerOption]:
        result = await self.db.execute(
            select(AnswerOption)
            .filter(AnswerOption.question_id == question_id, AnswerOption.is_correct.is_(True))
            .order_by(AnswerOption.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_questions_with_options(self, question_ids: Sequence[int]) -> List[Question]:
        """Questions with their options loaded, in the order of ``question_ids``."""
        if not question_ids:
            return []
        result = await self.db.execute(
            select(Question).options(selectinload(Question.options)).filter(Question.id.in_(list(question_ids)))
        )
        by_id = {q.id: q for q in result.scalars().all()}
        return [by_id[qid] for qid in question_ids if qid in by_id]

