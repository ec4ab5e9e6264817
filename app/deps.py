"""Shared FastAPI dependencies."""

from typing import Callable

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Depends, Request

from app.core.exceptions import BadRequestError, ForbiddenError, UnauthorizedError
from app.core.security import load_access_token
from app.models.user import User, UserRole


def bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("No token provided")
    return token.strip()


async def get_current_user(request: Request) -> User:
    """Dependency: verify bearer token and return User."""
    payload = load_access_token(bearer_token(request))
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid token")
    try:
        user = await User.get(PydanticObjectId(user_id))
    except InvalidId:
        raise UnauthorizedError("Invalid token")
    if not user:
        raise UnauthorizedError("User not found")
    request.state.user_id = str(user.id)
    return user


def require_roles(*roles: UserRole) -> Callable:
    """Dependency factory: current user must hold one of roles."""

    async def _dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise ForbiddenError("You do not have permission to perform this action")
        return user

    return _dependency


require_admin = require_roles(UserRole.ADMIN)


def object_id(value: str, label: str = "id") -> PydanticObjectId:
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        raise BadRequestError(f"Invalid {label}: {value}")
