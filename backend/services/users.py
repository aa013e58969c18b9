# services/users.py — Profile lookup and member search
from typing import List

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import UserNotFound
from models import User
from schemas import UserProfile, UserSummary

SEARCH_LIMIT = 10


async def get_profile(db: AsyncSession, user_id: str) -> UserProfile:
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFound()
    return UserProfile.model_validate(user)


async def search_users(db: AsyncSession, query: str, exclude_user_id: str) -> List[UserSummary]:
    """Name or email substring match, for picking board members. Never returns the caller."""
    stmt = (
        select(User)
        .where(
            or_(User.name.icontains(query, autoescape=True), User.email.icontains(query, autoescape=True)),
            User.id != exclude_user_id,
        )
        .order_by(User.name)
        .limit(SEARCH_LIMIT)
    )
    result = await db.execute(stmt)
    return [UserSummary.model_validate(u) for u in result.scalars().all()]
