import logging
from typing import Any, Mapping

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from eventhub.core.errors import ConflictError, NotFoundError
from eventhub.core.permissions import Role
from eventhub.database.db import atomic
from eventhub.models.users import User
from eventhub.schemas.users import UserCreate, UserOut
from eventhub.services.pagination import ResourceConfig, paginate

logger = logging.getLogger(__name__)

USER_LISTING = ResourceConfig(
    model=User,
    sort_fields={
        "email": "email",
        "firstName": "first_name",
        "lastName": "last_name",
        "role": "role",
        "createdAt": "created_at",
    },
    default_sort_field="createdAt",
    result_key="users",
)


def create_user(db: Session, payload: UserCreate) -> User:
    with atomic(db):
        if db.scalar(select(User.id).where(User.email == payload.email)) is not None:
            raise ConflictError("Email already in use")
        user = User(
            email=payload.email,
            first_name=payload.first_name,
            last_name=payload.last_name,
            role=payload.role.value,
        )
        db.add(user)
        db.flush()
        db.refresh(user)
    logger.info("Created user %s with role %s", user.id, user.role)
    return user


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users(db: Session, params: Mapping[str, Any] | None = None, *, base_url: str | None = None) -> dict:
    params = params or {}
    where = []

    role = params.get("role")
    if role in {member.value for member in Role}:
        where.append(User.role == role)

    search = params.get("search")
    if search:
        pattern = f"%{search}%"
        where.append(
            or_(User.email.ilike(pattern), User.first_name.ilike(pattern), User.last_name.ilike(pattern))
        )

    return paginate(
        db,
        USER_LISTING,
        params,
        where=where,
        transform=lambda user: UserOut.model_validate(user).model_dump(),
        base_url=base_url,
    )
