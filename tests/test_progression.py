from datetime import date, datetime, timedelta

import pytest

from conftest import option_ids
from core.exceptions import NotFoundError
from models.stats import UserStats, StreakCalendar
from services.progression_service import ProgressionService, xp_required_for_level, level_for_xp
from services.session_service import SessionService

TODAY = datetime(2026, 3, 10, 18, 30)


def test_level_curve():
    assert xp_required_for_level(1) == 0
    assert xp_required_for_level(2) == 100
    assert xp_required_for_level(3) == 215
    assert xp_required_for_level(4) == 347
    # Per-level steps 100, 115, 132, 152, 174
    assert xp_required_for_level(5) == 499
    assert xp_required_for_level(6) == 673


def test_level_for_xp_never_goes_down():
    assert level_for_xp(0) == 1
    assert level_for_xp(99) == 1
    assert level_for_xp(100) == 2
    assert level_for_xp(347) == 4
    assert level_for_xp(0, level=3) == 3


async def _seed_streak(db, user_id, streak, last_active: date):
    db.add(UserStats(
        user_id=user_id,
        total_xp=0,
        level=1,
        xp_to_next_level=100,
        current_streak=streak,
        longest_streak=streak,
        last_activity_date=last_active,
    ))
    db.add(StreakCalendar(user_id=user_id, activity_date=last_active, quizzes_completed=1))
    await db.commit()


async def _practice(service, user_id, completed_at, correct=0):
    session = await service.create_session(user_id, count=max(correct, 1))
    for question_id in session.question_ids[:correct]:
        right, _ = await option_ids(service.db, question_id)
        await service.submit_answer(session.id, question_id, right, 5)
    return await service.complete_session(session.id, completed_at=completed_at)


@pytest.fixture
def pool(make):
    async def build(count=30):
        await make.questions(await make.topic(await make.subject()), count)
    return build


@pytest.mark.asyncio
async def test_streak_continues_from_yesterday(db, make, pool, rng):
    user = await make.user()
    await pool()
    await _seed_streak(db, user.id, 4, TODAY.date() - timedelta(days=1))

    await _practice(SessionService(db, rng=rng), user.id, TODAY)

    stats = await ProgressionService(db).get_stats(user.id)
    assert stats.current_streak == 5
    assert stats.longest_streak == 5
    assert stats.last_activity_date == TODAY.date()


@pytest.mark.asyncio
async def test_streak_resets_after_a_gap(db, make, pool, rng):
    user = await make.user()
    await pool()
    await _seed_streak(db, user.id, 4, TODAY.date() - timedelta(days=3))

    await _practice(SessionService(db, rng=rng), user.id, TODAY)

    stats = await ProgressionService(db).get_stats(user.id)
    assert stats.current_streak == 1
    assert stats.longest_streak == 4


@pytest.mark.asyncio
async def test_second_completion_same_day_keeps_streak(db, make, pool, rng):
    user = await make.user()
    await pool()
    service = SessionService(db, rng=rng)

    await _practice(service, user.id, TODAY, correct=2)
    await _practice(service, user.id, TODAY + timedelta(hours=2), correct=3)

    data = await ProgressionService(db).get_streak_calendar(user.id)
    assert data.current_streak == 1
    assert data.longest_streak == 1
    assert len(data.calendar) == 1
    day = data.calendar[0]
    assert day.activity_date == TODAY.date()
    assert day.quizzes_completed == 2
    assert day.questions_answered == 5
    assert day.xp_earned == 50


@pytest.mark.asyncio
async def test_calendar_is_ordered_by_day(db, make, pool, rng):
    user = await make.user()
    await pool()
    service = SessionService(db, rng=rng)

    for days_ago in (2, 1, 0):
        await _practice(service, user.id, TODAY - timedelta(days=days_ago))

    data = await ProgressionService(db).get_streak_calendar(user.id)
    assert [d.activity_date for d in data.calendar] == [
        TODAY.date() - timedelta(days=2), TODAY.date() - timedelta(days=1), TODAY.date()
    ]
    assert data.current_streak == 3


@pytest.mark.asyncio
async def test_level_up_on_completion(db, make, pool, rng):
    user = await make.user()
    await pool()

    await _practice(SessionService(db, rng=rng), user.id, TODAY, correct=10)

    stats = await ProgressionService(db).get_stats(user.id)
    assert stats.total_xp == 100
    assert stats.level == 2
    assert stats.xp_to_next_level == 115


@pytest.mark.asyncio
async def test_streak_calendar_requires_stats(db, make):
    user = await make.user()
    with pytest.raises(NotFoundError):
        await ProgressionService(db).get_streak_calendar(user.id)
