from dataclasses import dataclass
from typing import Callable, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, asc
from models.session import Strategy
from models.stats import UserTopicProgress
from services.question_service import Candidate, CandidateFilter
from services.preference_service import ResolvedPreferences
from core.config import settings
from core.logger import logger


HARD_CORE_MIN_DIFFICULTY = 4


@dataclass(frozen=True)
class StrategyPlan:
    requested: Strategy
    effective: Strategy
    candidate_filter: CandidateFilter
    weight: Callable[[Candidate], float]


def base_weight(candidate: Candidate) -> float:
    return candidate.base_weight


def target_difficulty(mean_accuracy: float) -> int:
    """Map a mean accuracy percentage to the difficulty tier to aim for."""
    if mean_accuracy > 75:
        return 4
    if mean_accuracy > 50:
        return 3
    if mean_accuracy > 30:
        return 2
    return 1


def adaptive_weight(target: int) -> Callable[[Candidate], float]:
    """Base weight damped by the inverse square of the distance from ``target``."""
    def weight(candidate: Candidate) -> float:
        return candidate.base_weight * (1 + abs(candidate.difficulty - target)) ** -2
    return weight


class StrategySelector:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def plan(
        self,
        user_id: int,
        strategy: Strategy,
        prefs: ResolvedPreferences,
        subject_ids: Optional[Sequence[int]] = None,
        topic_id: Optional[int] = None,
    ) -> StrategyPlan:
        if strategy == Strategy.WEAK_AREA:
            weak_topics = await self.get_weak_topic_ids(user_id, prefs)
            if weak_topics:
                return StrategyPlan(strategy, strategy, CandidateFilter(topic_ids=weak_topics, topic_id=topic_id), base_weight)
            logger.info("No weak topics detected, falling back to balanced", user_id=user_id)

        elif strategy == Strategy.ADAPTIVE:
            if not prefs.difficulty_adaptation_enabled and prefs.preferred_difficulty is not None:
                target = prefs.preferred_difficulty
            else:
                target = target_difficulty(await self.get_mean_topic_accuracy(user_id))
            logger.debug("Adaptive target difficulty", user_id=user_id, target=target)
            return StrategyPlan(strategy, strategy, CandidateFilter(topic_id=topic_id), adaptive_weight(target))

        elif strategy == Strategy.SUBJECT_FOCUS:
            focus = list(subject_ids or prefs.preferred_subject_ids or [])
            if focus:
                return StrategyPlan(strategy, strategy, CandidateFilter(subject_ids=focus, topic_id=topic_id), base_weight)
            logger.info("No focus subjects given, falling back to balanced", user_id=user_id)

        elif strategy == Strategy.HARD_CORE:
            return StrategyPlan(
                strategy,
                strategy,
                CandidateFilter(min_difficulty=HARD_CORE_MIN_DIFFICULTY, topic_id=topic_id),
                base_weight,
            )

        return StrategyPlan(strategy, Strategy.BALANCED, CandidateFilter(topic_id=topic_id), base_weight)

    async def get_weak_topic_ids(self, user_id: int, prefs: ResolvedPreferences) -> list:
        result = await self.db.execute(
            select(UserTopicProgress.topic_id)
            .filter(
                UserTopicProgress.user_id == user_id,
                UserTopicProgress.questions_attempted >= prefs.min_questions_for_weak_detection,
                UserTopicProgress.accuracy < prefs.weak_area_threshold,
            )
            .order_by(asc(UserTopicProgress.accuracy), UserTopicProgress.topic_id)
            .limit(settings.WEAK_TOPIC_LIMIT)
        )
        return list(result.scalars().all())

    async def get_mean_topic_accuracy(self, user_id: int) -> float:
        result = await self.db.execute(
            select(func.avg(UserTopicProgress.accuracy)).filter(UserTopicProgress.user_id == user_id)
        )
        mean = result.scalar()
        return float(mean) if mean is not None else settings.DEFAULT_ADAPTIVE_ACCURACY
