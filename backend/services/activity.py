# services/activity.py — Append-only board activity log
import logging
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models import ActivityLog, ActivityAction, EntityType
from schemas import ActivityOut, ActivityPage
from services.membership import MembershipGuard
from services.pagination import PageRequest

logger = logging.getLogger("taskflow.activity")


async def record(
    db: AsyncSession,
    action: ActivityAction,
    entity_type: EntityType,
    entity_id: str,
    details: Optional[Dict[str, Any]],
    user_id: str,
    board_id: str,
) -> ActivityLog:
    """Stage an activity entry in the caller's transaction.

    Never commits: the entry lands or disappears together with the mutation
    it documents. Flushes so the row is written before any delete the
    caller issues next.
    """
    entry = ActivityLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
        user_id=user_id,
        board_id=board_id,
    )
    db.add(entry)
    await db.flush()
    logger.debug(f"activity {action.value} {entity_type.value}={entity_id[:8]} board={board_id[:8]}")
    return entry


class ActivityService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.guard = MembershipGuard(db)

    async def list_for_board(self, board_id: str, user_id: str, page: PageRequest) -> ActivityPage:
        """Newest-first activity feed for a board, members only"""
        await self.guard.verify_membership(board_id, user_id)

        stmt = (
            select(ActivityLog)
            .where(ActivityLog.board_id == board_id)
            .options(selectinload(ActivityLog.user))
            .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .offset(page.offset)
            .limit(page.limit)
        )
        result = await self.db.execute(stmt)
        entries = result.scalars().all()

        count_stmt = select(func.count(ActivityLog.id)).where(ActivityLog.board_id == board_id)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        return ActivityPage(
            activities=[ActivityOut.model_validate(e) for e in entries],
            pagination=page.envelope(total),
        )
