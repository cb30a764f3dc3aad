from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from eventhub.core.permissions import Capability
from eventhub.core.security import require_capability
from eventhub.database.db import get_db
from eventhub.models.users import User
from eventhub.schemas.events import EventCreate, EventOut, EventStatsOut, EventUpdate
from eventhub.services.events import create_event, delete_event, get_event, list_events, update_event
from eventhub.services.reports import get_event_stats

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create(
    payload: EventCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_EVENTS)),
):
    event = create_event(db, payload, admin.id)
    return {"message": "Event created successfully", "link": f"/events/{event.id}", "id": event.id}


@router.get("")
def events(request: Request, db: Session = Depends(get_db)):
    return list_events(db, dict(request.query_params), base_url=request.url.path)


@router.get("/{event_id}", response_model=EventOut)
def event_detail(event_id: int, db: Session = Depends(get_db)):
    return get_event(db, event_id)


@router.put("/{event_id}", response_model=EventOut)
def update(
    event_id: int,
    payload: EventUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_EVENTS)),
):
    return update_event(db, event_id, payload, admin.id)


@router.delete("/{event_id}")
def delete(
    event_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_EVENTS)),
):
    delete_event(db, event_id, admin.id)
    return {"message": "Event deleted successfully"}


@router.get("/{event_id}/stats", response_model=EventStatsOut)
def event_stats(event_id: int, db: Session = Depends(get_db)):
    return get_event_stats(db, event_id)
