import pytest

from models.preference import UserQuizPreference
from models.session import Strategy
from services.preference_service import PreferenceService, ResolvedPreferences, resolve_preferences, STRATEGY_NAMES


def test_missing_row_gives_defaults():
    prefs = resolve_preferences(None)

    assert prefs == ResolvedPreferences()
    assert prefs.weak_area_threshold == 70
    assert prefs.min_questions_for_weak_detection == 10
    assert prefs.avoid_recent_questions_days == 7
    assert prefs.difficulty_adaptation_enabled is True
    assert prefs.default_strategy == "balanced"


def test_fields_default_independently():
    row = UserQuizPreference(
        user_id=1,
        excluded_subject_ids="not-a-list",
        preferred_subject_ids=[2, "3"],
        weak_area_threshold=None,
        min_questions_for_weak_detection=5,
        default_strategy="speed_run",
    )

    prefs = resolve_preferences(row)

    assert prefs.excluded_subject_ids == []
    assert prefs.preferred_subject_ids == [2, 3]
    assert prefs.weak_area_threshold == 70
    assert prefs.min_questions_for_weak_detection == 5
    assert prefs.default_strategy == "balanced"


def test_zero_day_window_is_kept():
    prefs = resolve_preferences(UserQuizPreference(user_id=1, avoid_recent_questions_days=0))
    assert prefs.avoid_recent_questions_days == 0


def test_out_of_range_difficulty_is_ignored():
    prefs = resolve_preferences(UserQuizPreference(user_id=1, preferred_difficulty=9))
    assert prefs.preferred_difficulty is None


@pytest.mark.asyncio
async def test_resolve_reads_stored_row(db, make):
    user = await make.user()
    await make.preferences(
        user.id,
        default_strategy="hard_core",
        default_questions_per_session=15,
        excluded_subject_ids=[4],
        difficulty_adaptation_enabled=False,
    )

    prefs = await PreferenceService(db).resolve(user.id)

    assert prefs.default_strategy == "hard_core"
    assert prefs.default_questions_per_session == 15
    assert prefs.excluded_subject_ids == [4]
    assert prefs.difficulty_adaptation_enabled is False


@pytest.mark.asyncio
async def test_resolve_without_row(db, make):
    user = await make.user()
    assert await PreferenceService(db).resolve(user.id) == ResolvedPreferences()


@pytest.mark.parametrize("strategy", list(Strategy))
def test_every_strategy_is_a_valid_stored_default(strategy):
    prefs = resolve_preferences(UserQuizPreference(user_id=1, default_strategy=strategy.value))
    assert prefs.default_strategy == strategy.value
    assert STRATEGY_NAMES == {s.value for s in Strategy}
