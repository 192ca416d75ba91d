"""Shared FastAPI dependencies."""

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Request

from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.core.logging import bind_user
from app.core.security import load_session_cookie
from app.explorers.base import BlockExplorer, get_explorers as _get_explorers
from app.models.user import User

SESSION_COOKIE_NAME = "trueservices_session"


async def get_current_user(request: Request) -> User:
    """Dependency: load session from cookie and return User."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid session")
    try:
        oid = PydanticObjectId(user_id)
    except (InvalidId, TypeError):
        raise UnauthorizedError("Invalid session") from None
    user = await User.get(oid)
    if not user:
        raise UnauthorizedError("User not found")
    if payload.get("session_version") != user.session_version:
        raise UnauthorizedError("Session invalidated")
    bind_user(str(user.id))
    return user


async def require_admin(request: Request) -> User:
    """Dependency: require current user to have role admin."""
    user = await get_current_user(request)
    if getattr(user, "role", "user") != "admin":
        raise ForbiddenError("Admin only")
    return user


def get_explorers() -> dict[str, BlockExplorer]:
    """Dependency: block explorers by cryptocurrency (overridden in tests)."""
    return _get_explorers()


def ensure_self_or_admin(user: User, owner_id: PydanticObjectId) -> None:
    if user.role != "admin" and user.id != owner_id:
        raise ForbiddenError("Not allowed to access another user's data")
