from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from pydantic import ValidationError as CriteriaValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from models.badge import (
    Badge, UserBadge, BadgeCriteria, criteria_adapter, CRITERIA_TYPES,
    StreakCriteria, AccuracyCriteria, QuizCountCriteria, SubjectMasterCriteria,
)
from models.content import Topic, Subject
from models.session import PracticeSession, SessionStatus
from models.stats import UserStats
from db.upsert import upsert
from core.logger import logger


@dataclass
class BadgeEvaluation:
    unlocked: bool
    progress: Optional[float] = None  # None when the criteria has no measurable progress


def _progress(value: float, target: float) -> float:
    if target <= 0:
        return 100.0
    return round(min(100.0, value / target * 100), 2)


class BadgeService:
    """Badge catalog plus the evaluator for typed unlock criteria."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_badges(self) -> List[Badge]:
        result = await self.db.execute(select(Badge).order_by(Badge.id))
        return list(result.scalars().all())

    async def get_user_badges(self, user_id: int) -> List[UserBadge]:
        result = await self.db.execute(
            select(UserBadge)
            .filter(UserBadge.user_id == user_id)
            .order_by(UserBadge.badge_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    def parse_criteria(self, badge: Badge) -> Optional[BadgeCriteria]:
        """Typed criteria for ``badge`` or None for a type this engine does not know."""
        raw = badge.raw_criteria()
        if raw.get("type") not in CRITERIA_TYPES:
            logger.warning("Unsupported badge type", badge_id=badge.id, badge_type=raw.get("type"))
            return None
        return criteria_adapter.validate_python(raw)

    async def evaluate(
        self, criteria: BadgeCriteria, user_id: int, session: PracticeSession, stats: UserStats
    ) -> BadgeEvaluation:
        if isinstance(criteria, StreakCriteria):
            return BadgeEvaluation(
                stats.current_streak >= criteria.days,
                _progress(stats.current_streak, criteria.days),
            )

        if isinstance(criteria, AccuracyCriteria):
            return BadgeEvaluation(
                session.accuracy >= criteria.percentage
                and session.questions_attempted >= criteria.min_questions
            )

        if isinstance(criteria, QuizCountCriteria):
            if criteria.in_single_session:
                count = session.questions_attempted
            else:
                count = stats.total_quizzes_completed
            return BadgeEvaluation(count >= criteria.count, _progress(count, criteria.count))

        if isinstance(criteria, SubjectMasterCriteria):
            count = await self.count_completed_sessions_in_subject(user_id, criteria.subject)
            return BadgeEvaluation(count >= criteria.count, _progress(count, criteria.count))

        raise TypeError(f"No evaluator for criteria {type(criteria).__name__}")

    async def count_completed_sessions_in_subject(self, user_id: int, subject_name: str) -> int:
        result = await self.db.execute(
            select(func.count(PracticeSession.id))
            .join(Topic, Topic.id == PracticeSession.topic_id)
            .join(Subject, Subject.id == Topic.subject_id)
            .filter(
                PracticeSession.user_id == user_id,
                PracticeSession.status == SessionStatus.COMPLETED.value,
                Subject.name == subject_name,
            )
        )
        return result.scalar() or 0

    async def evaluate_all(
        self, user_id: int, session: PracticeSession, stats: UserStats, now: Optional[datetime] = None
    ) -> List[Badge]:
        """
        Evaluate every badge the user has not unlocked yet and unlock the ones
        whose criteria hold. XP rewards are added to ``stats`` in place.

        A broken badge definition is logged and skipped; database errors propagate
        so the surrounding transaction rolls back.
        """
        now = now or datetime.utcnow()
        unlocked_ids = set(
            (await self.db.execute(
                select(UserBadge.badge_id).filter(UserBadge.user_id == user_id, UserBadge.unlocked_at.is_not(None))
            )).scalars().all()
        )

        unlocked = []
        for badge in await self.list_badges():
            if badge.id in unlocked_ids:
                continue

            try:
                criteria = self.parse_criteria(badge)
                if criteria is None:
                    continue
                evaluation = await self.evaluate(criteria, user_id, session, stats)
            except SQLAlchemyError:
                raise
            except (CriteriaValidationError, ValueError, TypeError) as e:
                logger.warning("Badge evaluation failed", badge_id=badge.id, badge=badge.name, error=str(e))
                continue

            if evaluation.unlocked:
                await self._save_progress(user_id, badge.id, 100.0, unlocked_at=now)
                stats.total_xp += badge.xp_reward or 0
                unlocked.append(badge)
                logger.info("Badge unlocked", user_id=user_id, badge_id=badge.id, xp_reward=badge.xp_reward)
            elif evaluation.progress is not None:
                await self._save_progress(user_id, badge.id, min(evaluation.progress, 99.99))

        return unlocked

    async def _save_progress(self, user_id: int, badge_id: int, progress: float, unlocked_at: Optional[datetime] = None):
        values = {"user_id": user_id, "badge_id": badge_id, "progress_percentage": progress, "unlocked_at": unlocked_at}
        updates = {"progress_percentage": progress}
        if unlocked_at is not None:
            updates["unlocked_at"] = unlocked_at
        await self.db.execute(
            upsert(self.db, UserBadge, values, ["user_id", "badge_id"], updates)
        )
