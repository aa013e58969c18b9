# routers/auth.py — Signup, login and token refresh
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthService
from database import get_db_session
from schemas import LoginRequest, RefreshRequest, SessionOut, SignupRequest

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/signup", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
async def signup(
    data: SignupRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """Register a new account and start a session"""
    return await AuthService.signup(data.name, data.email, data.password, db)


@router.post("/login", response_model=SessionOut)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticate and receive tokens"""
    return await AuthService.login(credentials.email, credentials.password, db)


@router.post("/refresh", response_model=SessionOut)
async def refresh_token(
    refresh_req: RefreshRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """Exchange a refresh token for a new token pair"""
    return await AuthService.refresh(refresh_req.refresh_token, db)
