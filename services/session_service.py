import contextlib
import random
from collections import Counter
from datetime import datetime
from typing import List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, cast, Numeric
from sqlalchemy.exc import IntegrityError
from redis.asyncio import Redis
from redis.exceptions import LockError
from models.content import Question
from models.session import PracticeSession, SessionAnswer, SessionStatus
from services.preference_service import PreferenceService
from services.progression_service import ProgressionService
from services.question_service import QuestionService, build_exclusions
from services.sampler import weighted_sample
from services.strategy_service import Strategy, StrategySelector
from services.user_service import UserService
from core.config import settings
from core.exceptions import (
    NotFoundError, InvalidStateError, DuplicateAnswerError, ContentExhaustedError, ValidationError
)
from core.logger import logger

IN_PROGRESS = SessionStatus.IN_PROGRESS.value
COMPLETED = SessionStatus.COMPLETED.value
ABANDONED = SessionStatus.ABANDONED.value


class SessionService:
    """
    Practice session lifecycle: in_progress -> completed | abandoned.

    Collaborators are passed in; any left out are built on the same db session.
    """

    def __init__(
        self,
        db: AsyncSession,
        redis: Optional[Redis] = None,
        questions: Optional[QuestionService] = None,
        preferences: Optional[PreferenceService] = None,
        strategies: Optional[StrategySelector] = None,
        progression: Optional[ProgressionService] = None,
        users: Optional[UserService] = None,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.redis = redis
        self.questions = questions or QuestionService(db)
        self.preferences = preferences or PreferenceService(db)
        self.strategies = strategies or StrategySelector(db)
        self.progression = progression or ProgressionService(db)
        self.users = users or UserService(db)
        self.rng = rng or random.Random()

    async def create_session(
        self,
        user_id: int,
        strategy=None,
        count: Optional[int] = None,
        topic_id: Optional[int] = None,
        subject_ids: Optional[Sequence[int]] = None,
    ) -> PracticeSession:
        if count is not None and not 1 <= count <= settings.MAX_QUESTIONS_PER_SESSION:
            raise ValidationError(
                f"Question count must be between 1 and {settings.MAX_QUESTIONS_PER_SESSION}", count=count
            )

        await self.users.get_user(user_id)
        prefs = await self.preferences.resolve(user_id)
        chosen = Strategy.parse(strategy if strategy is not None else prefs.default_strategy)
        question_count = count or prefs.default_questions_per_session or settings.DEFAULT_QUESTIONS_PER_SESSION
        question_count = min(question_count, settings.MAX_QUESTIONS_PER_SESSION)

        async with self._creation_lock(user_id):
            plan = await self.strategies.plan(user_id, chosen, prefs, subject_ids=subject_ids, topic_id=topic_id)
            candidates = await self.questions.fetch_candidates(
                build_exclusions(user_id, prefs),
                plan.candidate_filter,
                limit=question_count * settings.CANDIDATE_FETCH_MULTIPLIER,
            )
            selected = weighted_sample(candidates, question_count, weight=plan.weight, rng=self.rng)

            if not selected:
                logger.warning("No eligible questions left", user_id=user_id, strategy=plan.effective.value)
                raise ContentExhaustedError(
                    "Not enough questions available for this mode", user_id=user_id, strategy=plan.effective.value
                )
            if len(selected) < question_count:
                logger.warning(
                    "Candidate pool smaller than requested",
                    user_id=user_id,
                    requested=question_count,
                    available=len(selected),
                )

            session = PracticeSession(
                user_id=user_id,
                strategy=plan.effective.value,
                topic_id=topic_id,
                status=IN_PROGRESS,
                total_questions=len(selected),
                questions_attempted=0,
                correct_answers=0,
                wrong_answers=0,
                accuracy=0.0,
                xp_earned=0,
                time_spent_seconds=0,
                question_ids=[c.question_id for c in selected],
                topic_distribution={str(k): v for k, v in Counter(c.topic_id for c in selected).items()},
                subject_distribution={str(k): v for k, v in Counter(c.subject_id for c in selected).items()},
                started_at=datetime.utcnow(),
            )
            try:
                # Deactivate any existing active session for this user
                await self.db.execute(
                    update(PracticeSession)
                    .filter(PracticeSession.user_id == user_id, PracticeSession.status == IN_PROGRESS)
                    .values(status=ABANDONED)
                    .execution_options(synchronize_session=False)
                )
                self.db.add(session)
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                raise InvalidStateError("Another practice session was started concurrently", user_id=user_id) from None
            except Exception:
                await self.db.rollback()
                raise

        await self.db.refresh(session)
        logger.info(
            "Practice session created",
            user_id=user_id,
            session_id=session.id,
            strategy=session.strategy,
            requested_strategy=plan.requested.value,
            total_questions=session.total_questions,
        )
        return session

    @contextlib.asynccontextmanager
    async def _creation_lock(self, user_id: int):
        if not self.redis:
            yield
            return

        lock = self.redis.lock(
            f"practice:create:{user_id}",
            timeout=settings.SESSION_LOCK_TIMEOUT_SECONDS,
            blocking_timeout=settings.SESSION_LOCK_TIMEOUT_SECONDS,
        )
        try:
            acquired = await lock.acquire()
        except LockError:
            acquired = False
        if not acquired:
            logger.warning("Session creation lock busy", user_id=user_id)
            raise InvalidStateError("A practice session is already being created", user_id=user_id)

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Lock expired while held
                logger.warning("Session creation lock expired before release", user_id=user_id)

    async def submit_answer(
        self,
        session_id: int,
        question_id: int,
        selected_option_id: Optional[int],
        time_spent_seconds: int,
    ) -> SessionAnswer:
        if time_spent_seconds is None or time_spent_seconds < 0:
            raise ValidationError("time_spent_seconds must be a non-negative integer", value=time_spent_seconds)

        session = await self._load(session_id)
        question = await self.questions.get_question(question_id)
        if not question:
            raise NotFoundError("Question not found", question_id=question_id)
        if session.status != IN_PROGRESS:
            raise InvalidStateError("Session is not active", session_id=session_id, status=session.status)
        if session.question_ids and question_id not in session.question_ids:
            raise ValidationError("Question is not part of this session", session_id=session_id, question_id=question_id)
        if await self._find_answer(session_id, question_id):
            raise DuplicateAnswerError("Question already answered", session_id=session_id, question_id=question_id)

        options = await self.questions.get_options(question_id)
        if selected_option_id is not None and selected_option_id not in {o.id for o in options}:
            raise ValidationError(
                "Option does not belong to this question",
                session_id=session_id,
                question_id=question_id,
                option_id=selected_option_id,
            )
        correct_option = next((o for o in options if o.is_correct), None)
        is_correct = (
            selected_option_id is not None
            and correct_option is not None
            and correct_option.id == selected_option_id
        )
        correct = 1 if is_correct else 0

        answer = SessionAnswer(
            session_id=session_id,
            question_id=question_id,
            selected_option_id=selected_option_id,
            is_correct=is_correct,
            time_spent_seconds=time_spent_seconds,
            answered_at=datetime.utcnow(),
        )
        try:
            self.db.add(answer)
            await self.db.flush()

            # Store-side increments; concurrent submissions never overwrite each other
            result = await self.db.execute(
                update(PracticeSession)
                .filter(PracticeSession.id == session_id, PracticeSession.status == IN_PROGRESS)
                .values(
                    questions_attempted=PracticeSession.questions_attempted + 1,
                    correct_answers=PracticeSession.correct_answers + correct,
                    wrong_answers=PracticeSession.wrong_answers + (1 - correct),
                    accuracy=func.round(
                        cast(
                            (PracticeSession.correct_answers + correct) * 100.0
                            / (PracticeSession.questions_attempted + 1),
                            Numeric,
                        ),
                        2,
                    ),
                    time_spent_seconds=func.coalesce(PracticeSession.time_spent_seconds, 0) + time_spent_seconds,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise InvalidStateError("Session is not active", session_id=session_id)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            if await self._find_answer(session_id, question_id):
                raise DuplicateAnswerError(
                    "Question already answered", session_id=session_id, question_id=question_id
                ) from None
            raise
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(session)
        logger.info(
            "Answer recorded",
            session_id=session_id,
            question_id=question_id,
            is_correct=is_correct,
            attempted=session.questions_attempted,
        )
        return answer

    async def complete_session(self, session_id: int, completed_at: Optional[datetime] = None) -> PracticeSession:
        session = await self._load(session_id, for_update=True)
        if session.status == COMPLETED:
            # Release the row lock
            await self.db.commit()
            return session
        if session.status == ABANDONED:
            await self.db.rollback()
            raise InvalidStateError("Abandoned sessions cannot be completed", session_id=session_id)

        completed_at = completed_at or datetime.utcnow()
        result = await self.db.execute(
            select(SessionAnswer).filter(SessionAnswer.session_id == session_id).order_by(SessionAnswer.id)
        )
        answers = list(result.scalars().all())

        attempted = len(answers)
        correct = sum(1 for a in answers if a.is_correct)
        time_spent = session.time_spent_seconds or 0
        xp_earned = correct * settings.XP_PER_CORRECT_ANSWER + (time_spent // 60) * settings.XP_PER_PRACTICE_MINUTE
        accuracy = round(correct / attempted * 100, 2) if attempted else 0.0

        try:
            result = await self.db.execute(
                update(PracticeSession)
                .filter(PracticeSession.id == session_id, PracticeSession.status == IN_PROGRESS)
                .values(
                    status=COMPLETED,
                    completed_at=completed_at,
                    xp_earned=xp_earned,
                    accuracy=accuracy,
                    questions_attempted=attempted,
                    correct_answers=correct,
                    wrong_answers=attempted - correct,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # Lost the race to a concurrent completion or abandon
                await self.db.rollback()
                session = await self._load(session_id)
                if session.status == COMPLETED:
                    return session
                raise InvalidStateError("Session is not active", session_id=session_id, status=session.status)

            await self.db.refresh(session)
            progression = await self.progression.process_session(session, answers, completed_at)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.error("Session completion rolled back", session_id=session_id)
            raise

        logger.info(
            "Practice session completed",
            user_id=session.user_id,
            session_id=session_id,
            accuracy=session.accuracy,
            xp_earned=session.xp_earned,
            level=progression.level,
            unlocked_badges=len(progression.unlocked_badges),
        )
        return session

    async def abandon_session(self, session_id: int) -> PracticeSession:
        session = await self._load(session_id)
        if session.status == ABANDONED:
            return session
        if session.status == COMPLETED:
            raise InvalidStateError("Completed sessions cannot be abandoned", session_id=session_id)

        try:
            result = await self.db.execute(
                update(PracticeSession)
                .filter(PracticeSession.id == session_id, PracticeSession.status == IN_PROGRESS)
                .values(status=ABANDONED)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.error("Session abandon rolled back", session_id=session_id)
            raise

        await self.db.refresh(session)
        if result.rowcount == 0 and session.status != ABANDONED:
            raise InvalidStateError("Session is not active", session_id=session_id, status=session.status)
        logger.info("Practice session abandoned", user_id=session.user_id, session_id=session_id)
        return session

    async def get_active_session(self, user_id: int) -> Optional[PracticeSession]:
        result = await self.db.execute(
            select(PracticeSession)
            .filter(PracticeSession.user_id == user_id, PracticeSession.status == IN_PROGRESS)
            .order_by(PracticeSession.created_at.desc(), PracticeSession.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_session(self, session_id: int) -> PracticeSession:
        return await self._load(session_id)

    async def get_session_questions(self, session_id: int) -> List[Question]:
        session = await self._load(session_id)
        return await self.questions.get_questions_with_options(session.question_ids or [])

    async def _load(self, session_id: int, for_update: bool = False) -> PracticeSession:
        query = select(PracticeSession).filter(PracticeSession.id == session_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query.execution_options(populate_existing=True))
        session = result.scalar_one_or_none()
        if not session:
            raise NotFoundError("Session not found", session_id=session_id)
        return session

    async def _find_answer(self, session_id: int, question_id: int) -> Optional[SessionAnswer]:
        result = await self.db.execute(
            select(SessionAnswer).filter(SessionAnswer.session_id == session_id, SessionAnswer.question_id == question_id)
        )
        return result.scalar_one_or_none()
