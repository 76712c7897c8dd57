import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, cast, Numeric
from models.badge import Badge
from models.content import Question
from models.history import UserQuestionHistory
from models.session import PracticeSession, SessionAnswer
from models.stats import UserStats, UserTopicProgress, StreakCalendar
from services.badge_service import BadgeService
from db.upsert import upsert
from core.config import settings
from core.exceptions import NotFoundError
from core.logger import logger


def xp_required_for_level(level: int) -> int:
    """Cumulative XP needed to reach ``level``; level 1 needs nothing."""
    # Decimal keeps terms like 100 * 1.15 at exactly 115
    base = Decimal(settings.LEVEL_BASE_XP)
    rate = Decimal(str(settings.LEVEL_GROWTH_RATE))
    total = 0
    for i in range(1, level):
        total += math.floor(base * rate ** (i - 1))
    return total


def level_for_xp(total_xp: int, level: int = 1) -> int:
    """Highest level reachable from ``level`` with ``total_xp``. Levels never go down."""
    while total_xp >= xp_required_for_level(level + 1):
        level += 1
    return level


@dataclass
class ProgressionResult:
    xp_earned: int
    total_xp: int
    level: int
    leveled_up: bool
    current_streak: int
    longest_streak: int
    unlocked_badges: List[Badge] = field(default_factory=list)


@dataclass
class StreakCalendarData:
    current_streak: int
    longest_streak: int
    calendar: List[StreakCalendar]


class ProgressionService:
    """
    Stats store. Every write here happens inside the caller's completion
    transaction: methods flush but never commit.
    """

    def __init__(self, db: AsyncSession, badges: Optional[BadgeService] = None):
        self.db = db
        self.badges = badges or BadgeService(db)

    async def process_session(
        self, session: PracticeSession, answers: Sequence[SessionAnswer], completed_at: datetime
    ) -> ProgressionResult:
        user_id = session.user_id
        stats = await self.get_or_create_stats(user_id)
        previous_level = stats.level

        # 1. XP, level and lifetime totals
        self.apply_session_totals(stats, session)

        # 2. Streak
        await self.maintain_streak(stats, session, completed_at.date())

        # 3. Topic mastery and question history
        await self.update_topic_progress(user_id, answers, completed_at)
        await self.update_question_history(user_id, answers, completed_at)

        # 4. Badges; rewards land on stats.total_xp
        unlocked = await self.badges.evaluate_all(user_id, session, stats, now=completed_at)
        if unlocked:
            self.apply_level(stats)

        await self.db.flush()

        result = ProgressionResult(
            xp_earned=session.xp_earned,
            total_xp=stats.total_xp,
            level=stats.level,
            leveled_up=stats.level > previous_level,
            current_streak=stats.current_streak,
            longest_streak=stats.longest_streak,
            unlocked_badges=unlocked,
        )
        logger.info(
            "Progression updated",
            user_id=user_id,
            session_id=session.id,
            total_xp=result.total_xp,
            level=result.level,
            streak=result.current_streak,
            badges=[b.id for b in unlocked],
        )
        return result

    async def get_or_create_stats(self, user_id: int) -> UserStats:
        # Row lock keeps concurrent completions for the same user serialized
        result = await self.db.execute(
            select(UserStats).filter(UserStats.user_id == user_id).with_for_update()
        )
        stats = result.scalar_one_or_none()

        if not stats:
            stats = UserStats(
                user_id=user_id,
                total_xp=0,
                level=1,
                xp_to_next_level=xp_required_for_level(2),
                current_streak=0,
                longest_streak=0,
                total_quizzes_completed=0,
                total_questions_attempted=0,
                total_correct_answers=0,
                overall_accuracy=0.0,
                total_practice_time_minutes=0,
            )
            self.db.add(stats)
            await self.db.flush()
        return stats

    def apply_session_totals(self, stats: UserStats, session: PracticeSession):
        stats.total_xp += session.xp_earned
        stats.total_quizzes_completed += 1
        stats.total_questions_attempted += session.questions_attempted
        stats.total_correct_answers += session.correct_answers
        if stats.total_questions_attempted:
            stats.overall_accuracy = round(stats.total_correct_answers / stats.total_questions_attempted * 100, 2)
        stats.total_practice_time_minutes += (session.time_spent_seconds or 0) // 60
        self.apply_level(stats)

    def apply_level(self, stats: UserStats):
        stats.level = level_for_xp(stats.total_xp, stats.level)
        stats.xp_to_next_level = xp_required_for_level(stats.level + 1) - stats.total_xp

    async def maintain_streak(self, stats: UserStats, session: PracticeSession, today: date):
        existing = await self._calendar_entry(stats.user_id, today)
        # Only the first completion of a day moves the streak
        if existing is None:
            yesterday = await self._calendar_entry(stats.user_id, today - timedelta(days=1))
            stats.current_streak = stats.current_streak + 1 if yesterday else 1
            stats.longest_streak = max(stats.longest_streak, stats.current_streak)

        await self.db.execute(
            upsert(
                self.db,
                StreakCalendar,
                {
                    "user_id": stats.user_id,
                    "activity_date": today,
                    "quizzes_completed": 1,
                    "questions_answered": session.questions_attempted,
                    "xp_earned": session.xp_earned,
                },
                ["user_id", "activity_date"],
                lambda stmt: {
                    "quizzes_completed": StreakCalendar.quizzes_completed + stmt.excluded.quizzes_completed,
                    "questions_answered": StreakCalendar.questions_answered + stmt.excluded.questions_answered,
                    "xp_earned": StreakCalendar.xp_earned + stmt.excluded.xp_earned,
                },
            )
        )
        stats.last_activity_date = today

    async def _calendar_entry(self, user_id: int, day: date) -> Optional[StreakCalendar]:
        result = await self.db.execute(
            select(StreakCalendar).filter(StreakCalendar.user_id == user_id, StreakCalendar.activity_date == day)
        )
        return result.scalar_one_or_none()

    async def update_topic_progress(self, user_id: int, answers: Sequence[SessionAnswer], practiced_at: datetime):
        if not answers:
            return
        result = await self.db.execute(
            select(Question.id, Question.topic_id).filter(Question.id.in_([a.question_id for a in answers]))
        )
        topic_of = {row.id: row.topic_id for row in result.all()}

        per_topic = defaultdict(lambda: [0, 0])  # topic_id -> [attempted, correct]
        for answer in answers:
            topic_id = topic_of.get(answer.question_id)
            if topic_id is None:
                continue
            per_topic[topic_id][0] += 1
            per_topic[topic_id][1] += 1 if answer.is_correct else 0

        for topic_id, (attempted, correct) in per_topic.items():
            await self.db.execute(
                upsert(
                    self.db,
                    UserTopicProgress,
                    {
                        "user_id": user_id,
                        "topic_id": topic_id,
                        "questions_attempted": attempted,
                        "correct_answers": correct,
                        "accuracy": round(correct / attempted * 100, 2),
                        "last_practiced_at": practiced_at,
                    },
                    ["user_id", "topic_id"],
                    lambda stmt: {
                        "questions_attempted": UserTopicProgress.questions_attempted + stmt.excluded.questions_attempted,
                        "correct_answers": UserTopicProgress.correct_answers + stmt.excluded.correct_answers,
                        "accuracy": func.round(
                            cast(
                                (UserTopicProgress.correct_answers + stmt.excluded.correct_answers) * 100.0
                                / (UserTopicProgress.questions_attempted + stmt.excluded.questions_attempted),
                                Numeric,
                            ),
                            2,
                        ),
                        "last_practiced_at": stmt.excluded.last_practiced_at,
                    },
                )
            )

    async def update_question_history(self, user_id: int, answers: Sequence[SessionAnswer], seen_at: datetime):
        for answer in answers:
            await self.db.execute(
                upsert(
                    self.db,
                    UserQuestionHistory,
                    {
                        "user_id": user_id,
                        "question_id": answer.question_id,
                        "times_seen": 1,
                        "times_correct": 1 if answer.is_correct else 0,
                        "last_seen_at": seen_at,
                    },
                    ["user_id", "question_id"],
                    lambda stmt: {
                        "times_seen": UserQuestionHistory.times_seen + stmt.excluded.times_seen,
                        "times_correct": UserQuestionHistory.times_correct + stmt.excluded.times_correct,
                        "last_seen_at": stmt.excluded.last_seen_at,
                    },
                )
            )

    async def get_stats(self, user_id: int) -> Optional[UserStats]:
        result = await self.db.execute(select(UserStats).filter(UserStats.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_streak_calendar(self, user_id: int) -> StreakCalendarData:
        stats = await self.get_stats(user_id)
        if not stats:
            raise NotFoundError("User stats not found", user_id=user_id)

        result = await self.db.execute(
            select(StreakCalendar)
            .filter(StreakCalendar.user_id == user_id)
            .order_by(StreakCalendar.activity_date)
            .execution_options(populate_existing=True)
        )
        return StreakCalendarData(
            current_streak=stats.current_streak,
            longest_streak=stats.longest_streak,
            calendar=list(result.scalars().all()),
        )
