"""
Pytest configuration and fixtures for practice engine tests.
"""
import sys
import os
import random
import pytest
import pytest_asyncio

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENV", "test")

from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from db.session import build_engine, init_models
from models.user import User
from models.content import Subject, Topic, Question, AnswerOption
from models.badge import Badge
from models.preference import UserQuizPreference
from core.logger import setup_logging

setup_logging()

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database per test, foreign keys enforced like PostgreSQL"""
    engine = build_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    await init_models(engine)

    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as db_session:
        yield db_session

    await engine.dispose()


@pytest.fixture
def rng():
    return random.Random(42)


class Factory:
    """Creates and commits rows; every helper returns the persisted instance."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def user(self, username="student", is_active=True):
        return await self._save(User(username=username, full_name=username.title(), is_active=is_active))

    async def subject(self, name="Mathematics", weightage=None, is_active_in_random=True):
        return await self._save(Subject(name=name, weightage=weightage, is_active_in_random=is_active_in_random))

    async def topic(self, subject, name="Algebra", weightage=None, is_active_in_random=True):
        return await self._save(
            Topic(subject_id=subject.id, name=name, weightage=weightage, is_active_in_random=is_active_in_random)
        )

    async def question(self, topic, difficulty=3, is_active=True, text=None):
        question = Question(
            topic_id=topic.id,
            text=text or f"Question on {topic.name}",
            difficulty=difficulty,
            is_active=is_active,
        )
        question.options = [
            AnswerOption(text="Right", is_correct=True),
            AnswerOption(text="Wrong", is_correct=False),
            AnswerOption(text="Also wrong", is_correct=False),
        ]
        return await self._save(question)

    async def questions(self, topic, count, difficulty=3):
        return [await self.question(topic, difficulty=difficulty, text=f"{topic.name} #{i}") for i in range(count)]

    async def badge(self, name, criteria, xp_reward=0, badge_type=None):
        return await self._save(
            Badge(name=name, unlock_criteria=criteria, xp_reward=xp_reward, badge_type=badge_type)
        )

    async def preferences(self, user_id, **fields):
        return await self._save(UserQuizPreference(user_id=user_id, **fields))


@pytest.fixture
def make(db):
    return Factory(db)


async def option_ids(db, question_id):
    """(correct_option_id, wrong_option_id) for a factory-built question"""
    from sqlalchemy import select
    result = await db.execute(
        select(AnswerOption).filter(AnswerOption.question_id == question_id).order_by(AnswerOption.id)
    )
    options = result.scalars().all()
    correct = next(o.id for o in options if o.is_correct)
    wrong = next(o.id for o in options if not o.is_correct)
    return correct, wrong
