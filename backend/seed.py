# seed.py — Demo data for local development
# Usage (from backend/): python -m seed
import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthService
from database import get_db_context, init_db
from models import (
    ActivityAction, Board, BoardMember, EntityType, MemberRole, Task, TaskList, TaskPriority, User,
)
from services import activity
from services.ordering import respace

logger = logging.getLogger("taskflow.seed")

DEMO_PASSWORD = "Password123!"

DEMO_USERS = [
    {"key": "stark", "name": "Stark", "email": "stark@demo.com"},
    {"key": "steve", "name": "Steve", "email": "steve@demo.com"},
    {"key": "peter", "name": "Peter", "email": "peter@demo.com"},
]

DEMO_LISTS = ["To Do", "In Progress", "Done"]

# (list, title, description, priority, creator, assignee)
DEMO_TASKS = [
    ("Done", "Set up project repository", "Initialize Git repo and CI/CD pipeline",
     TaskPriority.HIGH, "stark", "stark"),
    ("Done", "Design database schema", "Create ERD and schema for all entities",
     TaskPriority.HIGH, "stark", "steve"),
    ("In Progress", "Implement authentication", "JWT-based auth with signup, login, and refresh tokens",
     TaskPriority.HIGH, "stark", "peter"),
    ("In Progress", "Build board CRUD API", "REST endpoints for creating, reading, updating, and deleting boards",
     TaskPriority.MEDIUM, "steve", "steve"),
    ("To Do", "Implement drag and drop", "Task reordering between lists",
     TaskPriority.MEDIUM, "stark", None),
    ("To Do", "Add real-time updates", "WebSocket integration for live collaboration",
     TaskPriority.HIGH, "stark", None),
    ("To Do", "Write unit tests", "Tests for backend services",
     TaskPriority.LOW, "steve", "peter"),
]


async def seed(db: AsyncSession) -> bool:
    """Insert the demo board and its users. Returns False when any board already exists."""
    existing = await db.execute(select(Board.id).limit(1))
    if existing.scalar_one_or_none() is not None:
        logger.info("Database already seeded, skipping")
        return False

    password_hash = AuthService.hash_password(DEMO_PASSWORD)
    users = {}
    for demo in DEMO_USERS:
        user = User(name=demo["name"], email=demo["email"], password_hash=password_hash)
        db.add(user)
        users[demo["key"]] = user
    await db.flush()

    owner = users["stark"]
    board = Board(
        title="Project Alpha",
        description="Main project board for Team Alpha",
        owner_id=owner.id,
    )
    db.add(board)
    await db.flush()

    for user in users.values():
        role = MemberRole.OWNER if user is owner else MemberRole.MEMBER
        db.add(BoardMember(user_id=user.id, board_id=board.id, role=role))

    lists = {}
    for title, position in zip(DEMO_LISTS, respace(len(DEMO_LISTS))):
        task_list = TaskList(title=title, position=position, board_id=board.id)
        db.add(task_list)
        lists[title] = task_list
    await db.flush()

    for list_title in DEMO_LISTS:
        rows = [t for t in DEMO_TASKS if t[0] == list_title]
        for row, position in zip(rows, respace(len(rows))):
            _, title, description, priority, creator, assignee = row
            db.add(Task(
                title=title,
                description=description,
                priority=priority,
                position=position,
                list_id=lists[list_title].id,
                creator_id=users[creator].id,
                assignee_id=users[assignee].id if assignee else None,
            ))

    await activity.record(
        db, ActivityAction.BOARD_CREATED, EntityType.BOARD, board.id,
        {"title": board.title}, owner.id, board.id,
    )
    logger.info(f"Seeded board {board.id[:8]} with {len(DEMO_TASKS)} tasks")
    return True


async def main():
    await init_db()
    async with get_db_context() as db:
        created = await seed(db)
    if created:
        logger.info(f"Demo accounts (password: {DEMO_PASSWORD}):")
        for demo in DEMO_USERS:
            logger.info(f"  {demo['email']}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s %(message)s")
    asyncio.run(main())
