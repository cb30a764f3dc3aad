from sqlalchemy import func, select
from sqlalchemy.orm import Session

from eventhub.core.errors import NotFoundError
from eventhub.models.events import Event
from eventhub.models.participants import Participant, ParticipantStatus


def get_event_stats(db: Session, event_id: int) -> dict:
    event = db.get(Event, event_id)
    if not event:
        raise NotFoundError("Event not found")

    rows = db.execute(
        select(Participant.status, func.count(Participant.id))
        .where(Participant.event_id == event_id)
        .group_by(Participant.status)
    ).all()
    status_counts = {status.value: 0 for status in ParticipantStatus}
    status_counts.update({status: int(count) for status, count in rows})

    available = None
    if event.capacity is not None:
        available = max(event.capacity - event.participants_count, 0)

    return {
        "event_id": event.id,
        "capacity": event.capacity,
        "participants_count": event.participants_count,
        "available_slots": available,
        "status_counts": status_counts,
    }


def get_overall_report(db: Session) -> dict:
    """Return aggregated totals across all events."""
    total_events = db.scalar(select(func.count(Event.id)))
    # events without a capacity are unlimited and do not add to the total
    total_capacity = db.scalar(select(func.sum(Event.capacity)))
    total_participants = db.scalar(select(func.sum(Event.participants_count)))

    return {
        "total_events": int(total_events or 0),
        "total_capacity": int(total_capacity or 0),
        "total_participants": int(total_participants or 0),
    }
