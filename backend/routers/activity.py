# routers/activity.py — Board activity feed
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from auth import CurrentUser, get_current_user
from database import get_db_session
from schemas import ActivityPage
from services.activity import ActivityService
from services.pagination import PageRequest

router = APIRouter(prefix="/api/activity", tags=["Activity"])


@router.get("/{board_id}", response_model=ActivityPage)
async def list_activity(
    board_id: str,
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Newest-first activity for a board the caller belongs to"""
    return await ActivityService(db).list_for_board(board_id, user.id, PageRequest.from_query(page, limit))
