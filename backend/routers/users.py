# routers/users.py — Current profile and user search
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from auth import CurrentUser, get_current_user
from database import get_db_session
from schemas import UserProfile, UserSummary
from services import users as user_service

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("/me", response_model=UserProfile)
async def get_me(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await user_service.get_profile(db, user.id)


@router.get("/search", response_model=List[UserSummary])
async def search_users(
    q: str = Query("", max_length=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Find users by name or email to add as board members"""
    return await user_service.search_users(db, q, user.id)
