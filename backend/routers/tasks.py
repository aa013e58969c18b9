# routers/tasks.py — Tasks: CRUD, move, assign, search
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from auth import CurrentUser, get_current_user
from database import get_db_session
from realtime import BroadcastGateway, get_gateway
from schemas import TaskAssign, TaskCreate, TaskDeletedOut, TaskMove, TaskOut, TaskSearchPage, TaskUpdate
from services.pagination import PageRequest
from services.tasks import TaskService

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])


def get_task_service(
    db: AsyncSession = Depends(get_db_session),
    gateway: BroadcastGateway = Depends(get_gateway),
) -> TaskService:
    return TaskService(db, gateway)


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(
    data: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Append a task at the end of its list"""
    return await service.create_task(data, user.id)


@router.get("/search/{board_id}", response_model=TaskSearchPage)
async def search_tasks(
    board_id: str,
    q: str = Query(""),
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    # page/limit arrive as raw strings; bad values fall back to defaults
    return await service.search_tasks(board_id, q, user.id, PageRequest.from_query(page, limit))


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.get_task(task_id, user.id)


@router.put("/{task_id}", response_model=TaskOut)
async def update_task(
    task_id: str,
    data: TaskUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.update_task(task_id, data, user.id)


@router.put("/{task_id}/move", response_model=TaskOut)
async def move_task(
    task_id: str,
    data: TaskMove,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.move_task(task_id, data.target_list_id, data.position, user.id)


@router.put("/{task_id}/assign", response_model=TaskOut)
async def assign_task(
    task_id: str,
    data: TaskAssign,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.assign_task(task_id, data.assignee_id, user.id)


@router.delete("/{task_id}", response_model=TaskDeletedOut)
async def delete_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.delete_task(task_id, user.id)
