# models.py — Database models for TaskFlow
# - UUID string primary keys everywhere
# - Boards own lists, lists own tasks (ORM cascades on delete)
# - Float positions for gap-based ordering of lists and tasks
# - Append-only activity log scoped to a board

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Float,
    Enum as SQLEnum, ForeignKey, Text, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class MemberRole(str, PyEnum):
    OWNER = "owner"
    MEMBER = "member"


class TaskPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ActivityAction(str, PyEnum):
    BOARD_CREATED = "BOARD_CREATED"
    BOARD_UPDATED = "BOARD_UPDATED"
    MEMBER_ADDED = "MEMBER_ADDED"
    MEMBER_REMOVED = "MEMBER_REMOVED"
    LIST_CREATED = "LIST_CREATED"
    LIST_UPDATED = "LIST_UPDATED"
    LIST_REORDERED = "LIST_REORDERED"
    LIST_DELETED = "LIST_DELETED"
    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_MOVED = "TASK_MOVED"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_DELETED = "TASK_DELETED"


class EntityType(str, PyEnum):
    BOARD = "board"
    LIST = "list"
    TASK = "task"


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    memberships = relationship("BoardMember", back_populates="user")


# ============================================================
# BOARDS
# ============================================================

class Board(Base):
    """Collaborative workspace holding ordered lists"""
    __tablename__ = "boards"

    id = Column(String, primary_key=True, default=new_uuid)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, index=True)

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id])
    members = relationship(
        "BoardMember", back_populates="board",
        cascade="all, delete-orphan", order_by="BoardMember.joined_at",
    )
    lists = relationship(
        "TaskList", back_populates="board",
        cascade="all, delete-orphan",
        order_by=lambda: [TaskList.position, TaskList.created_at, TaskList.id],
    )
    activities = relationship("ActivityLog", back_populates="board", cascade="all, delete-orphan")


class BoardMember(Base):
    """Membership relation granting a user access to a board"""
    __tablename__ = "board_members"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(SQLEnum(MemberRole), nullable=False, default=MemberRole.MEMBER)
    joined_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="memberships")
    board = relationship("Board", back_populates="members")

    __table_args__ = (
        UniqueConstraint("user_id", "board_id", name="uq_member_user_board"),
    )


# ============================================================
# LISTS & TASKS
# ============================================================

class TaskList(Base):
    """Ordered column of tasks within a board"""
    __tablename__ = "lists"

    id = Column(String, primary_key=True, default=new_uuid)
    title = Column(String, nullable=False)
    position = Column(Float, nullable=False)  # Sparse sort key, see services/ordering.py
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    board = relationship("Board", back_populates="lists")
    tasks = relationship(
        "Task", back_populates="task_list",
        cascade="all, delete-orphan",
        order_by=lambda: [Task.position, Task.created_at, Task.id],
    )

    __table_args__ = (
        Index("idx_list_board_pos", "board_id", "position"),
    )


class Task(Base):
    """Unit of work inside a list"""
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(SQLEnum(TaskPriority), nullable=False, default=TaskPriority.MEDIUM)
    position = Column(Float, nullable=False)
    list_id = Column(String, ForeignKey("lists.id", ondelete="CASCADE"), nullable=False, index=True)
    creator_id = Column(String, ForeignKey("users.id"), nullable=False)
    assignee_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    task_list = relationship("TaskList", back_populates="tasks")
    creator = relationship("User", foreign_keys=[creator_id])
    assignee = relationship("User", foreign_keys=[assignee_id])

    __table_args__ = (
        Index("idx_task_list_pos", "list_id", "position"),
    )


# ============================================================
# ACTIVITY LOG (append-only)
# ============================================================

class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(String, primary_key=True, default=new_uuid)
    action = Column(SQLEnum(ActivityAction), nullable=False, index=True)
    entity_type = Column(SQLEnum(EntityType), nullable=False)
    entity_id = Column(String, nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    board = relationship("Board", back_populates="activities")
    user = relationship("User")

    __table_args__ = (
        Index("idx_activity_board_time", "board_id", "created_at"),
    )
