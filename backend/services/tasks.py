# services/tasks.py — Tasks: create, edit, move between lists, assign, search
import logging
from typing import Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database import UnitOfWork
from errors import InvalidInput, ListNotFound, TargetListNotFound, TaskNotFound
from models import ActivityAction, EntityType, Task, TaskList, TaskPriority
from realtime import Audience, BroadcastGateway
from schemas import (
    ListSummary, TaskCreate, TaskDeletedOut, TaskOut, TaskSearchItem, TaskSearchPage, TaskUpdate,
)
from services import activity
from services.membership import MembershipGuard
from services.ordering import last_position, next_position, validate_position
from services.pagination import PageRequest

logger = logging.getLogger("taskflow.tasks")


class TaskService:
    def __init__(self, db: AsyncSession, gateway: BroadcastGateway):
        self.db = db
        self.gateway = gateway
        self.guard = MembershipGuard(db)
        self.uow = UnitOfWork(db)

    async def _load(self, task_id: str) -> Optional[Task]:
        stmt = (
            select(Task)
            .where(Task.id == task_id)
            .options(selectinload(Task.creator), selectinload(Task.assignee))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _resolve(self, task_id: str, user_id: str) -> Tuple[Task, str]:
        """Find the task and its board, then check membership on that board"""
        stmt = select(Task).where(Task.id == task_id).options(selectinload(Task.task_list))
        task = (await self.db.execute(stmt)).scalar_one_or_none()
        if task is None:
            raise TaskNotFound()
        board_id = task.task_list.board_id
        await self.guard.verify_membership(board_id, user_id)
        return task, board_id

    async def _check_assignee(self, board_id: str, assignee_id: Optional[str]):
        if assignee_id and not await self.guard.is_member(board_id, assignee_id):
            raise InvalidInput("Assignee must be a member of the board")

    @staticmethod
    def _out(task: Task, board_id: str) -> TaskOut:
        return TaskOut.model_validate(task).model_copy(update={"board_id": board_id})

    def _publish(self, board_id: str, event: str, payload, user_id: str):
        self.gateway.publish(board_id, event, payload, user_id, Audience.OTHERS)

    # ============================================================
    # QUERIES
    # ============================================================

    async def get_task(self, task_id: str, user_id: str) -> TaskOut:
        task, board_id = await self._resolve(task_id, user_id)
        return self._out(await self._load(task.id), board_id)

    async def search_tasks(self, board_id: str, query: str, user_id: str, page: PageRequest) -> TaskSearchPage:
        """Case-insensitive substring match on title or description, newest first"""
        await self.guard.verify_membership(board_id, user_id)

        conditions = [TaskList.board_id == board_id]
        if query:
            conditions.append(or_(
                Task.title.icontains(query, autoescape=True),
                Task.description.icontains(query, autoescape=True),
            ))

        stmt = (
            select(Task)
            .join(TaskList, Task.list_id == TaskList.id)
            .where(*conditions)
            .options(
                selectinload(Task.task_list),
                selectinload(Task.creator),
                selectinload(Task.assignee),
            )
            .order_by(Task.created_at.desc(), Task.id)
            .offset(page.offset)
            .limit(page.limit)
        )
        tasks = (await self.db.execute(stmt)).scalars().all()

        count_stmt = (
            select(func.count(Task.id))
            .join(TaskList, Task.list_id == TaskList.id)
            .where(*conditions)
        )
        total = (await self.db.execute(count_stmt)).scalar() or 0

        items = []
        for task in tasks:
            data = TaskOut.model_validate(task).model_dump()
            data["board_id"] = board_id
            data["task_list"] = ListSummary.model_validate(task.task_list)
            items.append(TaskSearchItem(**data))
        return TaskSearchPage(tasks=items, pagination=page.envelope(total))

    # ============================================================
    # MUTATIONS
    # ============================================================

    async def create_task(self, data: TaskCreate, user_id: str) -> TaskOut:
        """Append a task one gap past the list's current last task"""
        task_list = await self.db.get(TaskList, data.list_id)
        if task_list is None:
            raise ListNotFound()
        board_id = task_list.board_id
        await self.guard.verify_membership(board_id, user_id)
        await self._check_assignee(board_id, data.assignee_id)

        async def work(db: AsyncSession) -> Task:
            last = await last_position(db, Task.position, Task.list_id, data.list_id)
            task = Task(
                title=data.title,
                description=data.description,
                priority=data.priority or TaskPriority.MEDIUM,
                position=next_position(last),
                list_id=data.list_id,
                creator_id=user_id,
                assignee_id=data.assignee_id,
            )
            db.add(task)
            await db.flush()
            await activity.record(
                db, ActivityAction.TASK_CREATED, EntityType.TASK, task.id,
                {"title": task.title, "listId": data.list_id}, user_id, board_id,
            )
            return await self._load(task.id)

        task = await self.uow.run(work)
        result = self._out(task, board_id)
        self._publish(board_id, "task:created", result.to_payload(), user_id)
        return result

    async def update_task(self, task_id: str, patch: TaskUpdate, user_id: str) -> TaskOut:
        task, board_id = await self._resolve(task_id, user_id)
        changes = patch.model_dump(exclude_unset=True)
        for field in ("title", "priority"):
            if field in changes and changes[field] is None:
                raise InvalidInput(f"{field.capitalize()} cannot be null")
        await self._check_assignee(board_id, changes.get("assignee_id"))

        async def work(db: AsyncSession) -> Task:
            for field, value in changes.items():
                setattr(task, field, value)
            await activity.record(
                db, ActivityAction.TASK_UPDATED, EntityType.TASK, task_id,
                patch.model_dump(mode="json", exclude_unset=True, by_alias=True), user_id, board_id,
            )
            return await self._load(task_id)

        updated = await self.uow.run(work)
        result = self._out(updated, board_id)
        self._publish(board_id, "task:updated", result.to_payload(), user_id)
        return result

    async def move_task(self, task_id: str, target_list_id: str, position: float, user_id: str) -> TaskOut:
        """Move to another list (or within the same one) at a client-chosen position.

        The target list must belong to the task's board.
        """
        task, board_id = await self._resolve(task_id, user_id)
        position = validate_position(position)

        target = await self.db.get(TaskList, target_list_id)
        if target is None or target.board_id != board_id:
            raise TargetListNotFound()
        from_list_id = task.list_id

        async def work(db: AsyncSession) -> Task:
            task.task_list = target
            task.position = position
            await activity.record(
                db, ActivityAction.TASK_MOVED, EntityType.TASK, task_id,
                {"fromListId": from_list_id, "toListId": target_list_id, "position": position},
                user_id, board_id,
            )
            return await self._load(task_id)

        moved = await self.uow.run(work)
        result = self._out(moved, board_id)
        self._publish(board_id, "task:moved", result.to_payload(), user_id)
        return result

    async def assign_task(self, task_id: str, assignee_id: Optional[str], user_id: str) -> TaskOut:
        """Set or clear (``None``) the assignee"""
        task, board_id = await self._resolve(task_id, user_id)
        await self._check_assignee(board_id, assignee_id)

        async def work(db: AsyncSession) -> Task:
            task.assignee_id = assignee_id
            await activity.record(
                db, ActivityAction.TASK_ASSIGNED, EntityType.TASK, task_id,
                {"assigneeId": assignee_id}, user_id, board_id,
            )
            return await self._load(task_id)

        assigned = await self.uow.run(work)
        result = self._out(assigned, board_id)
        self._publish(board_id, "task:assigned", result.to_payload(), user_id)
        return result

    async def delete_task(self, task_id: str, user_id: str) -> TaskDeletedOut:
        task, board_id = await self._resolve(task_id, user_id)
        list_id = task.list_id

        async def work(db: AsyncSession) -> None:
            await activity.record(
                db, ActivityAction.TASK_DELETED, EntityType.TASK, task_id,
                {"title": task.title}, user_id, board_id,
            )
            await db.delete(task)

        await self.uow.run(work)
        result = TaskDeletedOut(
            message="Task deleted successfully",
            board_id=board_id,
            task_id=task_id,
            list_id=list_id,
        )
        self._publish(board_id, "task:deleted", result.to_payload(), user_id)
        return result
