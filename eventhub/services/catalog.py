"""Categories and tags: named labels an admin attaches to events."""
import logging
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from eventhub.core.errors import ConflictError, InvalidStateError, NotFoundError
from eventhub.database.db import atomic
from eventhub.models.categories import Category
from eventhub.models.events import Event
from eventhub.models.tags import Tag
from eventhub.schemas.categories import CategoryCreate, CategoryOut
from eventhub.schemas.tags import TagCreate, TagOut
from eventhub.services.pagination import ResourceConfig, SortOrder, paginate

logger = logging.getLogger(__name__)

CATEGORY_LISTING = ResourceConfig(
    model=Category,
    sort_fields={"name": "name", "createdAt": "created_at"},
    default_sort_field="name",
    default_sort_order=SortOrder.ASC,
    result_key="categories",
)

TAG_LISTING = ResourceConfig(
    model=Tag,
    sort_fields={"name": "name", "createdAt": "created_at"},
    default_sort_field="name",
    default_sort_order=SortOrder.ASC,
    result_key="tags",
)


def create_category(db: Session, payload: CategoryCreate, admin_id: int) -> Category:
    with atomic(db):
        if db.scalar(select(Category.id).where(Category.name == payload.name)) is not None:
            raise ConflictError("Category with this name already exists")
        category = Category(name=payload.name, description=payload.description, created_by=admin_id)
        db.add(category)
        db.flush()
        db.refresh(category)
    logger.info("Category %s created by %s", category.id, admin_id)
    return category


def get_category(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def delete_category(db: Session, category_id: int) -> None:
    with atomic(db):
        category = get_category(db, category_id)
        in_use = db.scalar(select(Event.id).where(Event.category_id == category_id).limit(1))
        if in_use is not None:
            raise InvalidStateError("Cannot delete category that is in use by events")
        db.delete(category)
    logger.info("Category %s deleted", category_id)


def list_categories(db: Session, params: Mapping[str, Any] | None = None, *, base_url: str | None = None) -> dict:
    params = params or {}
    where = []
    if params.get("search"):
        where.append(Category.name.ilike(f"%{params['search']}%"))
    return paginate(
        db,
        CATEGORY_LISTING,
        params,
        where=where,
        transform=lambda category: CategoryOut.model_validate(category).model_dump(),
        base_url=base_url,
    )


def create_tag(db: Session, payload: TagCreate, admin_id: int) -> Tag:
    with atomic(db):
        if db.scalar(select(Tag.id).where(Tag.name == payload.name)) is not None:
            raise ConflictError("Tag with this name already exists")
        tag = Tag(name=payload.name, description=payload.description, created_by=admin_id)
        db.add(tag)
        db.flush()
        db.refresh(tag)
    logger.info("Tag %s created by %s", tag.id, admin_id)
    return tag


def get_tag(db: Session, tag_id: int) -> Tag:
    tag = db.get(Tag, tag_id)
    if tag is None:
        raise NotFoundError("Tag not found")
    return tag


def list_tags(db: Session, params: Mapping[str, Any] | None = None, *, base_url: str | None = None) -> dict:
    params = params or {}
    where = []
    if params.get("search"):
        where.append(Tag.name.ilike(f"%{params['search']}%"))
    return paginate(
        db,
        TAG_LISTING,
        params,
        where=where,
        transform=lambda tag: TagOut.model_validate(tag).model_dump(),
        base_url=base_url,
    )
