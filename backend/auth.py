# auth.py — Identity & session tokens for TaskFlow
# Features:
# - bcrypt password hashing
# - HS256 JWT access/refresh pair with JTI
# - Password policy enforcement
# - Stateless access-token verification shared by HTTP and WebSocket

import os
import re
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import bcrypt
from jose import jwt, JWTError
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import DuplicateIdentity, InvalidCredentials, InvalidInput, InvalidToken
from models import User
from schemas import SessionOut, UserSummary

logger = logging.getLogger("taskflow.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY or SECRET_KEY == "change-this-to-a-secure-random-key-in-production":
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set or insecure. Generated ephemeral key. "
        "Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
MIN_PASSWORD_LENGTH = 8
PASSWORD_SYMBOLS = "@$!%*?&_"

security = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    id: str
    email: str
    name: str


def check_password_policy(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not re.search(r"[a-z]", password):
        raise InvalidInput("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        raise InvalidInput("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        raise InvalidInput("Password must contain at least one digit")
    if not any(c in PASSWORD_SYMBOLS for c in password):
        raise InvalidInput(f"Password must contain at least one of {PASSWORD_SYMBOLS}")


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Signup, login and token rotation"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=12)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    @staticmethod
    def _create_token(data: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + expires_delta,
            "iat": now,
            "type": token_type,
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        delta = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        return AuthService._create_token(data, "access", delta)

    @staticmethod
    def create_refresh_token(data: Dict[str, Any]) -> str:
        return AuthService._create_token(data, "refresh", timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))

    @staticmethod
    def _decode(token: str, expected_type: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except JWTError:
            raise InvalidToken()
        if payload.get("type") != expected_type or not payload.get("sub"):
            raise InvalidToken()
        return payload

    @staticmethod
    def verify_access_token(token: str) -> Dict[str, Any]:
        """Claims of a valid access token. No database round-trip."""
        return AuthService._decode(token, "access")

    @staticmethod
    def verify_refresh_token(token: str) -> Dict[str, Any]:
        return AuthService._decode(token, "refresh")

    @staticmethod
    def issue_session(user: User) -> SessionOut:
        claims = {"sub": user.id, "email": user.email, "name": user.name}
        return SessionOut(
            user=UserSummary(id=user.id, name=user.name, email=user.email),
            access_token=AuthService.create_access_token(claims),
            refresh_token=AuthService.create_refresh_token(claims),
            expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )

    @staticmethod
    async def signup(name: str, email: str, password: str, db: AsyncSession) -> SessionOut:
        check_password_policy(password)
        email = email.lower()

        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        if result.scalar_one_or_none():
            raise DuplicateIdentity()

        user = User(
            name=name.strip(),
            email=email,
            password_hash=AuthService.hash_password(password),
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # Concurrent signup for the same address
            await db.rollback()
            raise DuplicateIdentity()
        await db.refresh(user)

        logger.info(f"User signed up: {user.id[:8]}")
        return AuthService.issue_session(user)

    @staticmethod
    async def login(email: str, password: str, db: AsyncSession) -> SessionOut:
        stmt = select(User).where(User.email == email.lower())
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()

        if not user or not AuthService.verify_password(password, user.password_hash):
            raise InvalidCredentials()

        return AuthService.issue_session(user)

    @staticmethod
    async def refresh(refresh_token: str, db: AsyncSession) -> SessionOut:
        payload = AuthService.verify_refresh_token(refresh_token)
        user = await db.get(User, payload["sub"])
        if user is None:
            raise InvalidToken()
        return AuthService.issue_session(user)


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    if credentials is None:
        raise InvalidToken("Missing bearer token")
    payload = AuthService.verify_access_token(credentials.credentials)
    return CurrentUser(
        id=payload["sub"],
        email=payload.get("email", ""),
        name=payload.get("name", ""),
    )
