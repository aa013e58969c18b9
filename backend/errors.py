# errors.py — Domain error taxonomy with TF-{DOMAIN}-{NUMBER} codes
# Raised by services, rendered by the handler registered in main.py.
# Domains: AUTH (identity), ACCESS (authorization), NF (not found), VAL (validation)
from typing import Optional


class TaskFlowError(Exception):
    """Base class for every error a client is expected to handle"""

    status_code = 500
    code = "TF-SYS-001"
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


# ============================================================
# AUTHENTICATION
# ============================================================

class InvalidCredentials(TaskFlowError):
    status_code = 401
    code = "TF-AUTH-001"
    message = "Invalid credentials"


class InvalidToken(TaskFlowError):
    status_code = 401
    code = "TF-AUTH-002"
    message = "Invalid or expired token"


class DuplicateIdentity(TaskFlowError):
    status_code = 409
    code = "TF-AUTH-003"
    message = "Email already registered"


# ============================================================
# AUTHORIZATION
# ============================================================

class NotAMember(TaskFlowError):
    status_code = 403
    code = "TF-ACCESS-001"
    message = "Not a member of this board"


class NotOwner(TaskFlowError):
    status_code = 403
    code = "TF-ACCESS-002"
    message = "Only the board owner can perform this action"


class CannotRemoveSelf(TaskFlowError):
    status_code = 403
    code = "TF-ACCESS-003"
    message = "Cannot remove yourself"


class AlreadyAMember(TaskFlowError):
    status_code = 409
    code = "TF-ACCESS-004"
    message = "User is already a member of this board"


# ============================================================
# NOT FOUND
# ============================================================

class NotFound(TaskFlowError):
    status_code = 404
    code = "TF-NF-000"
    message = "Resource not found"


class BoardNotFound(NotFound):
    code = "TF-NF-001"
    message = "Board not found"


class ListNotFound(NotFound):
    code = "TF-NF-002"
    message = "List not found"


class TaskNotFound(NotFound):
    code = "TF-NF-003"
    message = "Task not found"


class TargetListNotFound(NotFound):
    code = "TF-NF-004"
    message = "Target list not found"


class UserNotFound(NotFound):
    code = "TF-NF-005"
    message = "User not found"


# ============================================================
# VALIDATION
# ============================================================

class InvalidInput(TaskFlowError):
    status_code = 422
    code = "TF-VAL-001"
    message = "Invalid input"
