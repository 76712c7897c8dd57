from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models.user import User
from core.exceptions import NotFoundError
from core.logger import logger

class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: int) -> User:
        result = await self.db.execute(select(User).filter(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError("User not found", user_id=user_id)
        if not user.is_active:
            logger.info("Practice requested by inactive user", user_id=user_id)
        return user
