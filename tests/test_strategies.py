import pytest

from models.stats import UserTopicProgress
from services.preference_service import ResolvedPreferences
from services.question_service import Candidate
from services.strategy_service import (
    Strategy, StrategySelector, target_difficulty, adaptive_weight, HARD_CORE_MIN_DIFFICULTY
)
from core.exceptions import ValidationError


def _candidate(difficulty, topic_weight=10, subject_weight=10):
    return Candidate(
        question_id=1, topic_id=1, subject_id=1, difficulty=difficulty,
        topic_weight=topic_weight, subject_weight=subject_weight,
    )


@pytest.mark.parametrize("accuracy, tier", [
    (90, 4), (75.01, 4), (75, 3), (60, 3), (50, 2), (31, 2), (30, 1), (0, 1),
])
def test_target_difficulty_tiers(accuracy, tier):
    assert target_difficulty(accuracy) == tier


def test_adaptive_weight_decays_with_distance():
    weight = adaptive_weight(3)

    assert weight(_candidate(3)) == 100.0
    assert weight(_candidate(2)) == 25.0
    assert weight(_candidate(5)) == pytest.approx(100 / 9)


def test_strategy_parse():
    assert Strategy.parse("weak_area") is Strategy.WEAK_AREA
    with pytest.raises(ValidationError):
        Strategy.parse("speed_run")


async def _progress(db, user_id, topic_id, attempted, correct):
    db.add(UserTopicProgress(
        user_id=user_id, topic_id=topic_id, questions_attempted=attempted,
        correct_answers=correct, accuracy=round(correct / attempted * 100, 2),
    ))
    await db.commit()


@pytest.mark.asyncio
async def test_weak_area_picks_low_accuracy_topics_in_order(db, make):
    user = await make.user()
    subject = await make.subject()
    strong = await make.topic(subject, "Geometry")
    weak = await make.topic(subject, "Fractions")
    weakest = await make.topic(subject, "Logarithms")
    barely_tried = await make.topic(subject, "Calculus")

    await _progress(db, user.id, strong.id, 20, 18)
    await _progress(db, user.id, weak.id, 20, 12)
    await _progress(db, user.id, weakest.id, 10, 2)
    await _progress(db, user.id, barely_tried.id, 3, 0)

    plan = await StrategySelector(db).plan(user.id, Strategy.WEAK_AREA, ResolvedPreferences())

    assert plan.effective is Strategy.WEAK_AREA
    assert list(plan.candidate_filter.topic_ids) == [weakest.id, weak.id]


@pytest.mark.asyncio
async def test_weak_area_without_history_falls_back_to_balanced(db, make):
    user = await make.user()

    plan = await StrategySelector(db).plan(user.id, Strategy.WEAK_AREA, ResolvedPreferences())

    assert plan.requested is Strategy.WEAK_AREA
    assert plan.effective is Strategy.BALANCED
    assert plan.candidate_filter.topic_ids is None


@pytest.mark.asyncio
async def test_adaptive_uses_mean_topic_accuracy(db, make):
    user = await make.user()
    subject = await make.subject()
    a = await make.topic(subject, "A")
    b = await make.topic(subject, "B")
    await _progress(db, user.id, a.id, 10, 10)
    await _progress(db, user.id, b.id, 10, 6)

    plan = await StrategySelector(db).plan(user.id, Strategy.ADAPTIVE, ResolvedPreferences())

    # Mean accuracy 80 -> tier 4
    assert plan.weight(_candidate(4)) == 100.0
    assert plan.weight(_candidate(3)) == 25.0


@pytest.mark.asyncio
async def test_adaptive_defaults_to_tier_three_without_history(db, make):
    user = await make.user()

    plan = await StrategySelector(db).plan(user.id, Strategy.ADAPTIVE, ResolvedPreferences())

    assert plan.weight(_candidate(3)) == 100.0


@pytest.mark.asyncio
async def test_adaptive_honours_fixed_preferred_difficulty(db, make):
    user = await make.user()
    prefs = ResolvedPreferences(difficulty_adaptation_enabled=False, preferred_difficulty=1)

    plan = await StrategySelector(db).plan(user.id, Strategy.ADAPTIVE, prefs)

    assert plan.weight(_candidate(1)) == 100.0


@pytest.mark.asyncio
async def test_subject_focus_prefers_explicit_subjects(db, make):
    user = await make.user()
    prefs = ResolvedPreferences(preferred_subject_ids=[7, 8])
    selector = StrategySelector(db)

    explicit = await selector.plan(user.id, Strategy.SUBJECT_FOCUS, prefs, subject_ids=[3])
    from_prefs = await selector.plan(user.id, Strategy.SUBJECT_FOCUS, prefs)
    fallback = await selector.plan(user.id, Strategy.SUBJECT_FOCUS, ResolvedPreferences())

    assert explicit.candidate_filter.subject_ids == [3]
    assert from_prefs.candidate_filter.subject_ids == [7, 8]
    assert fallback.effective is Strategy.BALANCED


@pytest.mark.asyncio
async def test_hard_core_and_topic_restriction(db, make):
    user = await make.user()

    plan = await StrategySelector(db).plan(user.id, Strategy.HARD_CORE, ResolvedPreferences(), topic_id=5)

    assert plan.candidate_filter.min_difficulty == HARD_CORE_MIN_DIFFICULTY
    assert plan.candidate_filter.topic_id == 5
