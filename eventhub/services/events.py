import logging
from typing import Any, Mapping

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from eventhub.core.errors import ForbiddenError, InvalidStateError, NotFoundError
from eventhub.core.timeutils import as_utc, parse_datetime, utcnow
from eventhub.database.db import atomic
from eventhub.models.categories import Category
from eventhub.models.events import Event
from eventhub.models.tags import Tag
from eventhub.schemas.events import EventCreate, EventOut, EventUpdate
from eventhub.services.pagination import ResourceConfig, paginate, parse_positive_int

logger = logging.getLogger(__name__)

EVENT_LISTING = ResourceConfig(
    model=Event,
    sort_fields={
        "title": "title",
        "createdAt": "created_at",
        "startDate": "start_date",
        "endDate": "end_date",
        "location": "location",
        "capacity": "capacity",
        "participantsCount": "participants_count",
    },
    default_sort_field="createdAt",
    result_key="events",
    options=(selectinload(Event.tags),),
)


def _validate_dates(start_date, end_date) -> None:
    if as_utc(end_date) <= as_utc(start_date):
        raise InvalidStateError("Start date must be before end date")


def _ensure_category(db: Session, category_id: int | None) -> None:
    if category_id is not None and db.get(Category, category_id) is None:
        raise NotFoundError("Category not found")


def _load_tags(db: Session, tag_ids: list[int]) -> list[Tag]:
    wanted = set(tag_ids)
    if not wanted:
        return []
    tags = db.scalars(select(Tag).where(Tag.id.in_(wanted))).all()
    missing = sorted(wanted - {tag.id for tag in tags})
    if missing:
        raise NotFoundError(f"The following tags do not exist: {', '.join(map(str, missing))}")
    return list(tags)


def create_event(db: Session, payload: EventCreate, admin_id: int) -> Event:
    _validate_dates(payload.start_date, payload.end_date)

    with atomic(db):
        _ensure_category(db, payload.category_id)
        tags = _load_tags(db, payload.tags)
        event = Event(
            title=payload.title,
            description=payload.description,
            location=payload.location,
            start_date=as_utc(payload.start_date),
            end_date=as_utc(payload.end_date),
            capacity=payload.capacity,
            participants_count=0,
            category_id=payload.category_id,
            created_by=admin_id,
            tags=tags,
        )
        db.add(event)
        db.flush()
        db.refresh(event)

    logger.info("Event %s created by %s", event.id, admin_id)
    return event


def get_event(db: Session, event_id: int) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    return event


def update_event(db: Session, event_id: int, payload: EventUpdate, admin_id: int) -> Event:
    """
    Apply a partial update. Only the creating admin may change an event.

    Lowering capacity below the current participants_count is rejected rather
    than leaving the event oversubscribed.
    """
    changes = payload.model_dump(exclude_unset=True)
    tag_ids = changes.pop("tags", None)

    with atomic(db):
        event = db.scalars(
            select(Event)
            .where(Event.id == event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()
        if event is None:
            raise NotFoundError("Event not found")
        if event.created_by != admin_id:
            raise ForbiddenError("You can only update events you created")

        start_date = changes.get("start_date") or event.start_date
        end_date = changes.get("end_date") or event.end_date
        _validate_dates(start_date, end_date)
        for key in ("start_date", "end_date"):
            if changes.get(key) is not None:
                changes[key] = as_utc(changes[key])

        capacity = changes.get("capacity")
        if capacity is not None and capacity < event.participants_count:
            raise InvalidStateError(
                f"Capacity cannot be lower than the current number of participants ({event.participants_count})"
            )

        if "category_id" in changes:
            _ensure_category(db, changes["category_id"])

        for field, value in changes.items():
            setattr(event, field, value)
        if tag_ids is not None:
            event.tags = _load_tags(db, tag_ids)

        db.flush()
        db.refresh(event)

    logger.info("Event %s updated by %s", event_id, admin_id)
    return event


def delete_event(db: Session, event_id: int, admin_id: int) -> None:
    with atomic(db):
        event = get_event(db, event_id)
        if event.created_by != admin_id:
            raise ForbiddenError("You can only delete events you created")
        db.delete(event)
    logger.info("Event %s deleted by %s", event_id, admin_id)


def build_event_filters(params: Mapping[str, Any], now=None) -> list:
    """Translate listing filters into WHERE clauses. Malformed values are ignored."""
    now = now or utcnow()
    where = []

    from_date = parse_datetime(params.get("fromDate"))
    if from_date:
        where.append(Event.start_date >= from_date)

    to_date = parse_datetime(params.get("toDate"))
    if to_date:
        where.append(Event.end_date <= to_date)

    category_id = parse_positive_int(params.get("categoryId"))
    if category_id:
        where.append(Event.category_id == category_id)

    status = str(params.get("status") or "").lower()
    if status == "upcoming":
        where.append(Event.start_date > now)
    elif status == "past":
        where.append(Event.end_date < now)
    elif status == "ongoing":
        where.extend([Event.start_date <= now, Event.end_date >= now])

    if params.get("location"):
        where.append(Event.location.ilike(f"%{params['location']}%"))

    if params.get("title"):
        where.append(Event.title.ilike(f"%{params['title']}%"))

    if params.get("search"):
        pattern = f"%{params['search']}%"
        where.append(or_(Event.title.ilike(pattern), Event.description.ilike(pattern)))

    min_capacity = parse_positive_int(params.get("minCapacity"))
    if min_capacity:
        where.append(Event.capacity >= min_capacity)

    max_capacity = parse_positive_int(params.get("maxCapacity"))
    if max_capacity:
        where.append(Event.capacity <= max_capacity)

    tag_id = parse_positive_int(params.get("tagId"))
    if tag_id:
        where.append(Event.tags.any(Tag.id == tag_id))

    return where


def list_events(db: Session, params: Mapping[str, Any] | None = None, *, base_url: str | None = None) -> dict:
    params = params or {}
    return paginate(
        db,
        EVENT_LISTING,
        params,
        where=build_event_filters(params),
        transform=lambda event: EventOut.model_validate(event).model_dump(),
        base_url=base_url,
    )
