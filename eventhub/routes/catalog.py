from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from eventhub.core.permissions import Capability
from eventhub.core.security import require_capability
from eventhub.database.db import get_db
from eventhub.models.users import User
from eventhub.schemas.categories import CategoryCreate, CategoryOut
from eventhub.schemas.tags import TagCreate, TagOut
from eventhub.services import catalog

categories_router = APIRouter(prefix="/categories", tags=["categories"])
tags_router = APIRouter(prefix="/tags", tags=["tags"])


@categories_router.post("", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
):
    return catalog.create_category(db, payload, admin.id)


@categories_router.get("")
def categories(request: Request, db: Session = Depends(get_db)):
    return catalog.list_categories(db, dict(request.query_params), base_url=request.url.path)


@categories_router.get("/{category_id}", response_model=CategoryOut)
def category_detail(category_id: int, db: Session = Depends(get_db)):
    return catalog.get_category(db, category_id)


@categories_router.delete("/{category_id}")
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
):
    catalog.delete_category(db, category_id)
    return {"message": "Category deleted successfully"}


@tags_router.post("", response_model=TagOut, status_code=status.HTTP_201_CREATED)
def create_tag(
    payload: TagCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
):
    return catalog.create_tag(db, payload, admin.id)


@tags_router.get("")
def tags(request: Request, db: Session = Depends(get_db)):
    return catalog.list_tags(db, dict(request.query_params), base_url=request.url.path)


@tags_router.get("/{tag_id}", response_model=TagOut)
def tag_detail(tag_id: int, db: Session = Depends(get_db)):
    return catalog.get_tag(db, tag_id)
