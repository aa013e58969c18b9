# services/membership.py — Board-scoped authorization
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import BoardNotFound, NotAMember, NotOwner
from models import Board, BoardMember


class MembershipGuard:
    """Authorizes board-scoped operations against the membership relation"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def verify_membership(self, board_id: str, user_id: str) -> BoardMember:
        stmt = select(BoardMember).where(
            BoardMember.board_id == board_id,
            BoardMember.user_id == user_id,
        )
        result = await self.db.execute(stmt)
        membership = result.scalar_one_or_none()
        if membership is None:
            raise NotAMember()
        return membership

    async def is_member(self, board_id: str, user_id: str) -> bool:
        try:
            await self.verify_membership(board_id, user_id)
        except NotAMember:
            return False
        return True

    async def require_owner(self, board_id: str, user_id: str) -> Board:
        board = await self.db.get(Board, board_id)
        if board is None:
            raise BoardNotFound()
        if board.owner_id != user_id:
            raise NotOwner()
        return board
