# routers/boards.py — Boards and their members
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from auth import CurrentUser, get_current_user
from database import get_db_session
from realtime import BroadcastGateway, get_gateway
from schemas import (
    AddMemberRequest, BoardCreate, BoardDetailOut, BoardOut, BoardSummaryOut, BoardUpdate,
    MemberOut, MessageOut,
)
from services.boards import BoardService

router = APIRouter(prefix="/api/boards", tags=["Boards"])


def get_board_service(
    db: AsyncSession = Depends(get_db_session),
    gateway: BroadcastGateway = Depends(get_gateway),
) -> BoardService:
    return BoardService(db, gateway)


@router.post("", response_model=BoardOut, status_code=status.HTTP_201_CREATED)
async def create_board(
    data: BoardCreate,
    user: CurrentUser = Depends(get_current_user),
    service: BoardService = Depends(get_board_service),
):
    """Create a board owned by the caller"""
    return await service.create_board(data, user.id)


@router.get("", response_model=List[BoardSummaryOut])
async def list_boards(
    user: CurrentUser = Depends(get_current_user),
    service: BoardService = Depends(get_board_service),
):
    return await service.list_boards(user.id)


@router.get("/{board_id}", response_model=BoardDetailOut)
async def get_board(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: BoardService = Depends(get_board_service),
):
    """Full board: members, ordered lists, ordered tasks"""
    return await service.get_board(board_id, user.id)


@router.put("/{board_id}", response_model=BoardOut)
async def update_board(
    board_id: str,
    data: BoardUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: BoardService = Depends(get_board_service),
):
    return await service.update_board(board_id, data, user.id)


@router.delete("/{board_id}", response_model=MessageOut)
async def delete_board(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: BoardService = Depends(get_board_service),
):
    """Owner only"""
    return await service.delete_board(board_id, user.id)


@router.post("/{board_id}/members", response_model=MemberOut, status_code=status.HTTP_201_CREATED)
async def add_member(
    board_id: str,
    data: AddMemberRequest,
    user: CurrentUser = Depends(get_current_user),
    service: BoardService = Depends(get_board_service),
):
    return await service.add_member(board_id, data.user_id, user.id)


@router.delete("/{board_id}/members/{user_id}", response_model=MessageOut)
async def remove_member(
    board_id: str,
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: BoardService = Depends(get_board_service),
):
    """Owner only; the owner cannot remove themselves"""
    return await service.remove_member(board_id, user_id, user.id)
