from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from eventhub.core.permissions import Capability
from eventhub.core.security import get_current_user, require_capability
from eventhub.database.db import get_db
from eventhub.models.users import User
from eventhub.schemas.users import UserCreate, UserOut
from eventhub.services.users import create_user, get_user, list_users

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create(
    payload: UserCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_USERS)),
):
    return create_user(db, payload)


@router.get("/me", response_model=UserOut)
def profile(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("")
def users(
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_USERS)),
):
    return list_users(db, dict(request.query_params), base_url=request.url.path)


@router.get("/{user_id}", response_model=UserOut)
def user_detail(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_USERS)),
):
    return get_user(db, user_id)
