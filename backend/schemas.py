# schemas.py — Pydantic request/response models
# Attributes are snake_case in Python and camelCase on the wire.
from datetime import datetime
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from models import MemberRole, TaskPriority, ActivityAction, EntityType


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe dict with wire field names, as sent over the realtime channel"""
        return self.model_dump(mode="json", by_alias=True)


# ============================================================
# USERS & AUTH
# ============================================================

class UserSummary(CamelModel):
    id: str
    name: str
    email: str


class UserProfile(UserSummary):
    created_at: datetime


class SignupRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class SessionOut(CamelModel):
    user: UserSummary
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


# ============================================================
# BOARDS
# ============================================================

class BoardCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class BoardUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None


class AddMemberRequest(CamelModel):
    user_id: str = Field(..., min_length=1)


class MemberOut(CamelModel):
    id: str
    user_id: str
    board_id: str
    role: MemberRole
    joined_at: datetime
    user: Optional[UserSummary] = None


class BoardOut(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    owner_id: str
    owner: Optional[UserSummary] = None
    members: List[MemberOut] = []
    created_at: datetime
    updated_at: datetime


class BoardSummaryOut(BoardOut):
    list_count: int = 0


# ============================================================
# LISTS & TASKS
# ============================================================

class ListCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    board_id: str = Field(..., min_length=1)


class ListUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)


class ListReorder(CamelModel):
    position: float = Field(..., ge=0)


class TaskCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=500)
    list_id: str = Field(..., min_length=1)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[str] = None


class TaskUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[str] = None


class TaskMove(CamelModel):
    target_list_id: str = Field(..., min_length=1)
    position: float = Field(..., ge=0)


class TaskAssign(CamelModel):
    assignee_id: Optional[str] = None


class TaskOut(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    priority: TaskPriority
    position: float
    list_id: str
    creator_id: str
    assignee_id: Optional[str] = None
    creator: Optional[UserSummary] = None
    assignee: Optional[UserSummary] = None
    board_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ListOut(CamelModel):
    id: str
    title: str
    position: float
    board_id: str
    tasks: List[TaskOut] = []
    created_at: datetime
    updated_at: datetime


class BoardDetailOut(BoardOut):
    lists: List[ListOut] = []


class ListSummary(CamelModel):
    id: str
    title: str


class TaskSearchItem(TaskOut):
    task_list: Optional[ListSummary] = Field(None, alias="list")


class ListDeletedOut(CamelModel):
    message: str
    board_id: str


class TaskDeletedOut(CamelModel):
    message: str
    board_id: str
    task_id: str
    list_id: str


class MessageOut(CamelModel):
    message: str


# ============================================================
# ACTIVITY & PAGINATION
# ============================================================

class ActivityOut(CamelModel):
    id: str
    action: ActivityAction
    entity_type: EntityType
    entity_id: str
    details: Dict[str, Any] = {}
    user_id: str
    board_id: str
    user: Optional[UserSummary] = None
    created_at: datetime


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class TaskSearchPage(CamelModel):
    tasks: List[TaskSearchItem]
    pagination: Pagination


class ActivityPage(CamelModel):
    activities: List[ActivityOut]
    pagination: Pagination
