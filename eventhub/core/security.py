"""
Caller identity.

Tokens are verified by the gateway in front of this service, which forwards
the authenticated user id in ``X-User-Id``.
"""
from typing import Callable

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from eventhub.core.errors import ForbiddenError, UnauthorizedError
from eventhub.core.permissions import Capability, has_capability
from eventhub.database.db import get_db
from eventhub.models.users import User

USER_ID_HEADER = "X-User-Id"


def get_current_user(
    x_user_id: str | None = Header(default=None, alias=USER_ID_HEADER),
    db: Session = Depends(get_db),
) -> User:
    if not x_user_id:
        raise UnauthorizedError(f"Authentication required - {USER_ID_HEADER} header missing")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise UnauthorizedError("Invalid authentication credentials")

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise UnauthorizedError("Invalid authentication credentials")
    return user


def require_capability(capability: Capability) -> Callable[..., User]:
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not has_capability(current_user.role, capability):
            raise ForbiddenError("You do not have permission to perform this action")
        return current_user

    return dependency
