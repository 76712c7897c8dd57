from typing import List, Optional
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models.preference import UserQuizPreference
from models.session import Strategy
from core.logger import logger

STRATEGY_NAMES = frozenset(s.value for s in Strategy)


class ResolvedPreferences(BaseModel):
    """Selection preferences with every gap filled in."""
    excluded_subject_ids: List[int] = []
    preferred_subject_ids: List[int] = []
    weak_area_threshold: float = 70.0
    min_questions_for_weak_detection: int = 10
    avoid_recent_questions_days: int = 7
    difficulty_adaptation_enabled: bool = True
    preferred_difficulty: Optional[int] = None
    default_strategy: str = Strategy.BALANCED.value
    default_questions_per_session: Optional[int] = None


def _id_list(value) -> Optional[List[int]]:
    if not isinstance(value, (list, tuple)):
        return None
    try:
        return [int(v) for v in value]
    except (TypeError, ValueError):
        return None


def resolve_preferences(row: Optional[UserQuizPreference]) -> ResolvedPreferences:
    """Normalize a stored preference row; absent or malformed fields take defaults one by one."""
    defaults = ResolvedPreferences()
    if row is None:
        return defaults

    resolved = {}
    excluded = _id_list(row.excluded_subject_ids)
    if excluded is not None:
        resolved["excluded_subject_ids"] = excluded
    preferred = _id_list(row.preferred_subject_ids)
    if preferred is not None:
        resolved["preferred_subject_ids"] = preferred

    if row.weak_area_threshold is not None:
        resolved["weak_area_threshold"] = float(row.weak_area_threshold)
    if row.min_questions_for_weak_detection is not None:
        resolved["min_questions_for_weak_detection"] = int(row.min_questions_for_weak_detection)
    # 0 is meaningful here: it disables the freshness window
    if row.avoid_recent_questions_days is not None:
        resolved["avoid_recent_questions_days"] = max(0, int(row.avoid_recent_questions_days))
    if row.difficulty_adaptation_enabled is not None:
        resolved["difficulty_adaptation_enabled"] = bool(row.difficulty_adaptation_enabled)
    if row.preferred_difficulty is not None and 1 <= row.preferred_difficulty <= 5:
        resolved["preferred_difficulty"] = int(row.preferred_difficulty)
    if row.default_strategy in STRATEGY_NAMES:
        resolved["default_strategy"] = row.default_strategy
    elif row.default_strategy is not None:
        logger.warning("Unknown default strategy in preferences", user_id=row.user_id, strategy=row.default_strategy)
    if row.default_questions_per_session and row.default_questions_per_session > 0:
        resolved["default_questions_per_session"] = int(row.default_questions_per_session)

    return defaults.model_copy(update=resolved)


class PreferenceService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, user_id: int) -> ResolvedPreferences:
        result = await self.db.execute(select(UserQuizPreference).filter(UserQuizPreference.user_id == user_id))
        return resolve_preferences(result.scalar_one_or_none())
