# services/boards.py — Board lifecycle and membership management
import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database import UnitOfWork
from errors import AlreadyAMember, BoardNotFound, CannotRemoveSelf, InvalidInput, NotFound, UserNotFound
from models import (
    ActivityAction, Board, BoardMember, EntityType, MemberRole, Task, TaskList, User,
)
from realtime import Audience, BroadcastGateway
from schemas import (
    BoardCreate, BoardDetailOut, BoardOut, BoardSummaryOut, BoardUpdate, MemberOut, MessageOut,
)
from services import activity
from services.membership import MembershipGuard

logger = logging.getLogger("taskflow.boards")


def _board_options(with_lists: bool = False) -> list:
    options = [
        selectinload(Board.owner),
        selectinload(Board.members).selectinload(BoardMember.user),
    ]
    if with_lists:
        tasks = selectinload(Board.lists).selectinload(TaskList.tasks)
        options.append(tasks.selectinload(Task.creator))
        options.append(tasks.selectinload(Task.assignee))
    return options


class BoardService:
    def __init__(self, db: AsyncSession, gateway: BroadcastGateway):
        self.db = db
        self.gateway = gateway
        self.guard = MembershipGuard(db)
        self.uow = UnitOfWork(db)

    async def _load(self, board_id: str, with_lists: bool = False) -> Optional[Board]:
        stmt = (
            select(Board)
            .where(Board.id == board_id)
            .options(*_board_options(with_lists))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    # ============================================================
    # QUERIES
    # ============================================================

    async def list_boards(self, user_id: str) -> List[BoardSummaryOut]:
        """Every board the user belongs to, most recently updated first"""
        stmt = (
            select(Board)
            .join(BoardMember, BoardMember.board_id == Board.id)
            .where(BoardMember.user_id == user_id)
            .options(*_board_options())
            .order_by(Board.updated_at.desc())
        )
        result = await self.db.execute(stmt)
        boards = result.scalars().unique().all()
        if not boards:
            return []

        count_stmt = (
            select(TaskList.board_id, func.count(TaskList.id))
            .where(TaskList.board_id.in_([b.id for b in boards]))
            .group_by(TaskList.board_id)
        )
        counts = dict((await self.db.execute(count_stmt)).all())

        return [
            BoardSummaryOut.model_validate(b).model_copy(update={"list_count": counts.get(b.id, 0)})
            for b in boards
        ]

    async def get_board(self, board_id: str, user_id: str) -> BoardDetailOut:
        """Board with members, ordered lists and their ordered tasks"""
        board = await self._load(board_id, with_lists=True)
        if board is None:
            raise BoardNotFound()
        await self.guard.verify_membership(board_id, user_id)

        detail = BoardDetailOut.model_validate(board)
        for task_list in detail.lists:
            for task in task_list.tasks:
                task.board_id = board_id
        return detail

    # ============================================================
    # MUTATIONS
    # ============================================================

    async def create_board(self, data: BoardCreate, owner_id: str) -> BoardOut:
        async def work(db: AsyncSession) -> str:
            board = Board(title=data.title, description=data.description, owner_id=owner_id)
            db.add(board)
            await db.flush()
            db.add(BoardMember(user_id=owner_id, board_id=board.id, role=MemberRole.OWNER))
            await activity.record(
                db, ActivityAction.BOARD_CREATED, EntityType.BOARD, board.id,
                {"title": board.title}, owner_id, board.id,
            )
            return board.id

        board_id = await self.uow.run(work)
        logger.info(f"Board created: {board_id[:8]} by {owner_id[:8]}")
        return BoardOut.model_validate(await self._load(board_id))

    async def update_board(self, board_id: str, patch: BoardUpdate, user_id: str) -> BoardOut:
        await self.guard.verify_membership(board_id, user_id)
        changes = patch.model_dump(exclude_unset=True)
        if "title" in changes and changes["title"] is None:
            raise InvalidInput("Title cannot be null")

        async def work(db: AsyncSession) -> Board:
            board = await db.get(Board, board_id)
            if board is None:
                raise BoardNotFound()
            for field, value in changes.items():
                setattr(board, field, value)
            await activity.record(
                db, ActivityAction.BOARD_UPDATED, EntityType.BOARD, board_id,
                patch.model_dump(mode="json", exclude_unset=True, by_alias=True), user_id, board_id,
            )
            return await self._load(board_id)

        board = await self.uow.run(work)
        result = BoardOut.model_validate(board)
        self.gateway.publish(board_id, "board:updated", result.to_payload(), user_id, Audience.OTHERS)
        return result

    async def delete_board(self, board_id: str, user_id: str) -> MessageOut:
        """Owner-only. Lists, tasks, memberships and activity go with the board."""
        board = await self.guard.require_owner(board_id, user_id)

        async def work(db: AsyncSession) -> None:
            await db.delete(board)

        await self.uow.run(work)
        logger.info(f"Board deleted: {board_id[:8]} by {user_id[:8]}")
        self.gateway.publish(board_id, "board:deleted", {"boardId": board_id}, user_id, Audience.EVERYONE)
        return MessageOut(message="Board deleted successfully")

    async def add_member(self, board_id: str, target_user_id: str, user_id: str) -> MemberOut:
        await self.guard.verify_membership(board_id, user_id)

        target = await self.db.get(User, target_user_id)
        if target is None:
            raise UserNotFound()
        if await self.guard.is_member(board_id, target_user_id):
            raise AlreadyAMember()

        async def work(db: AsyncSession) -> str:
            member = BoardMember(user_id=target_user_id, board_id=board_id, role=MemberRole.MEMBER)
            db.add(member)
            await db.flush()
            await activity.record(
                db, ActivityAction.MEMBER_ADDED, EntityType.BOARD, board_id,
                {"memberName": target.name}, user_id, board_id,
            )
            return member.id

        member_id = await self.uow.run(work)
        stmt = (
            select(BoardMember)
            .where(BoardMember.id == member_id)
            .options(selectinload(BoardMember.user))
        )
        member = (await self.db.execute(stmt)).scalar_one()
        result = MemberOut.model_validate(member)
        self.gateway.publish(board_id, "member:added", result.to_payload(), user_id, Audience.OTHERS)
        return result

    async def remove_member(self, board_id: str, target_user_id: str, user_id: str) -> MessageOut:
        # Self-removal is refused for every role, before ownership is considered
        if target_user_id == user_id:
            raise CannotRemoveSelf()
        await self.guard.require_owner(board_id, user_id)

        stmt = select(BoardMember).where(
            BoardMember.board_id == board_id,
            BoardMember.user_id == target_user_id,
        )
        membership = (await self.db.execute(stmt)).scalar_one_or_none()
        if membership is None:
            raise NotFound("Member not found")

        async def work(db: AsyncSession) -> None:
            await db.delete(membership)
            await activity.record(
                db, ActivityAction.MEMBER_REMOVED, EntityType.BOARD, board_id,
                {"removedUserId": target_user_id}, user_id, board_id,
            )

        await self.uow.run(work)
        self.gateway.publish(
            board_id, "member:removed",
            {"boardId": board_id, "removedUserId": target_user_id},
            user_id, Audience.OTHERS,
        )
        return MessageOut(message="Member removed successfully")
