# routers/lists.py — Lists within a board
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from auth import CurrentUser, get_current_user
from database import get_db_session
from realtime import BroadcastGateway, get_gateway
from schemas import ListCreate, ListDeletedOut, ListOut, ListReorder, ListUpdate
from services.lists import ListService

router = APIRouter(prefix="/api/lists", tags=["Lists"])


def get_list_service(
    db: AsyncSession = Depends(get_db_session),
    gateway: BroadcastGateway = Depends(get_gateway),
) -> ListService:
    return ListService(db, gateway)


@router.post("", response_model=ListOut, status_code=status.HTTP_201_CREATED)
async def create_list(
    data: ListCreate,
    user: CurrentUser = Depends(get_current_user),
    service: ListService = Depends(get_list_service),
):
    """Append a list at the end of the board"""
    return await service.create_list(data, user.id)


@router.put("/{list_id}", response_model=ListOut)
async def update_list(
    list_id: str,
    data: ListUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: ListService = Depends(get_list_service),
):
    return await service.update_list(list_id, data, user.id)


@router.put("/{list_id}/reorder", response_model=ListOut)
async def reorder_list(
    list_id: str,
    data: ListReorder,
    user: CurrentUser = Depends(get_current_user),
    service: ListService = Depends(get_list_service),
):
    return await service.reorder_list(list_id, data.position, user.id)


@router.delete("/{list_id}", response_model=ListDeletedOut)
async def delete_list(
    list_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ListService = Depends(get_list_service),
):
    return await service.delete_list(list_id, user.id)
