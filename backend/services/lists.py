# services/lists.py — Lists within a board
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database import UnitOfWork
from errors import InvalidInput, ListNotFound
from models import ActivityAction, EntityType, Task, TaskList
from realtime import Audience, BroadcastGateway
from schemas import ListCreate, ListDeletedOut, ListOut, ListUpdate
from services import activity
from services.membership import MembershipGuard
from services.ordering import last_position, next_position, validate_position

logger = logging.getLogger("taskflow.lists")


def to_list_out(task_list: TaskList) -> ListOut:
    result = ListOut.model_validate(task_list)
    for task in result.tasks:
        task.board_id = task_list.board_id
    return result


class ListService:
    def __init__(self, db: AsyncSession, gateway: BroadcastGateway):
        self.db = db
        self.gateway = gateway
        self.guard = MembershipGuard(db)
        self.uow = UnitOfWork(db)

    async def _load(self, list_id: str) -> Optional[TaskList]:
        tasks = selectinload(TaskList.tasks)
        stmt = (
            select(TaskList)
            .where(TaskList.id == list_id)
            .options(tasks.selectinload(Task.creator), tasks.selectinload(Task.assignee))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _resolve(self, list_id: str, user_id: str) -> TaskList:
        """Find the list, then check membership on the board it belongs to"""
        task_list = await self.db.get(TaskList, list_id)
        if task_list is None:
            raise ListNotFound()
        await self.guard.verify_membership(task_list.board_id, user_id)
        return task_list

    def _publish(self, board_id: str, event: str, payload, user_id: str):
        self.gateway.publish(board_id, event, payload, user_id, Audience.OTHERS)

    async def create_list(self, data: ListCreate, user_id: str) -> ListOut:
        """Append a list one gap past the board's current last list"""
        await self.guard.verify_membership(data.board_id, user_id)

        async def work(db: AsyncSession) -> TaskList:
            last = await last_position(db, TaskList.position, TaskList.board_id, data.board_id)
            task_list = TaskList(
                title=data.title,
                board_id=data.board_id,
                position=next_position(last),
                tasks=[],
            )
            db.add(task_list)
            await db.flush()
            await activity.record(
                db, ActivityAction.LIST_CREATED, EntityType.LIST, task_list.id,
                {"title": task_list.title}, user_id, data.board_id,
            )
            return task_list

        task_list = await self.uow.run(work)
        result = to_list_out(task_list)
        self._publish(data.board_id, "list:created", result.to_payload(), user_id)
        return result

    async def update_list(self, list_id: str, patch: ListUpdate, user_id: str) -> ListOut:
        task_list = await self._resolve(list_id, user_id)
        changes = patch.model_dump(exclude_unset=True)
        if "title" in changes and changes["title"] is None:
            raise InvalidInput("Title cannot be null")
        board_id = task_list.board_id

        async def work(db: AsyncSession) -> TaskList:
            for field, value in changes.items():
                setattr(task_list, field, value)
            await activity.record(
                db, ActivityAction.LIST_UPDATED, EntityType.LIST, list_id,
                patch.model_dump(mode="json", exclude_unset=True, by_alias=True), user_id, board_id,
            )
            return await self._load(list_id)

        updated = await self.uow.run(work)
        result = to_list_out(updated)
        self._publish(board_id, "list:updated", result.to_payload(), user_id)
        return result

    async def reorder_list(self, list_id: str, position: float, user_id: str) -> ListOut:
        """Store a client-chosen position verbatim; siblings are untouched"""
        position = validate_position(position)
        task_list = await self._resolve(list_id, user_id)
        board_id = task_list.board_id

        async def work(db: AsyncSession) -> TaskList:
            task_list.position = position
            await activity.record(
                db, ActivityAction.LIST_REORDERED, EntityType.LIST, list_id,
                {"position": position}, user_id, board_id,
            )
            return await self._load(list_id)

        updated = await self.uow.run(work)
        result = to_list_out(updated)
        self._publish(board_id, "list:updated", result.to_payload(), user_id)
        return result

    async def delete_list(self, list_id: str, user_id: str) -> ListDeletedOut:
        task_list = await self._resolve(list_id, user_id)
        board_id = task_list.board_id

        async def work(db: AsyncSession) -> None:
            # Recorded while the list row still exists
            await activity.record(
                db, ActivityAction.LIST_DELETED, EntityType.LIST, list_id,
                {"title": task_list.title}, user_id, board_id,
            )
            await db.delete(task_list)

        await self.uow.run(work)
        logger.info(f"List deleted: {list_id[:8]} board={board_id[:8]}")
        self._publish(board_id, "list:deleted", {"listId": list_id, "boardId": board_id}, user_id)
        return ListDeletedOut(message="List deleted successfully", board_id=board_id)
