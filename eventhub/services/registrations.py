"""
Event registration with a capacity bound.

Every operation runs in one transaction that first locks the event row, so
the capacity check, the membership write and the participants_count update
commit together or not at all. Exits hard-delete the membership row; the
participation log keeps the history.
"""
import logging
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from eventhub.core.errors import (
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    InfrastructureError,
    InvalidStateError,
    NotFoundError,
)
from eventhub.core.permissions import Capability, has_capability
from eventhub.core.timeutils import as_utc, utcnow
from eventhub.database.db import atomic
from eventhub.models.events import Event
from eventhub.models.participants import (
    Participant,
    ParticipantStatus,
    ParticipationLog,
    ParticipationTransition,
)
from eventhub.models.users import User
from eventhub.schemas.participants import ParticipantOut
from eventhub.services.pagination import ResourceConfig, paginate

logger = logging.getLogger(__name__)

PARTICIPANT_LISTING = ResourceConfig(
    model=Participant,
    sort_fields={
        "registrationDate": "registration_date",
        "status": "status",
        "createdAt": "created_at",
    },
    default_sort_field="registrationDate",
    result_key="participants",
    options=(selectinload(Participant.user),),
)


def _lock_event(db: Session, event_id: int) -> Event | None:
    stmt = (
        select(Event)
        .where(Event.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.scalars(stmt).first()


def _find_participant(db: Session, event_id: int, user_id: int) -> Participant | None:
    return db.scalars(
        select(Participant).where(
            Participant.event_id == event_id,
            Participant.user_id == user_id,
        )
    ).first()


def _claim_slot(db: Session, event_id: int) -> bool:
    """Increment participants_count only while a slot is free."""
    stmt = (
        update(Event)
        .where(Event.id == event_id)
        .where(or_(Event.capacity.is_(None), Event.participants_count < Event.capacity))
        .values(participants_count=Event.participants_count + 1)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1


def _release_slot(db: Session, event_id: int) -> None:
    stmt = (
        update(Event)
        .where(Event.id == event_id)
        .where(Event.participants_count > 0)
        .values(participants_count=Event.participants_count - 1)
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount != 1:
        # a membership row exists, so the counter must be at least one
        logger.error("participants_count for event %s is already zero while a participant exists", event_id)
        raise InfrastructureError("Participant counter is out of sync")


def _snapshot(participant: Participant) -> dict:
    return ParticipantOut.model_validate(participant).model_dump()


def register_participant(
    db: Session,
    *,
    event_id: int,
    user_id: int,
    notes: str | None = None,
    now: datetime | None = None,
) -> Participant:
    """
    Register a user for an event.

    Raises NotFoundError, ForbiddenError, InvalidStateError, ConflictError or
    CapacityExceededError, checked in that order. Nothing is written unless
    every check passes.
    """
    now = as_utc(now) if now else utcnow()

    with atomic(db):
        event = _lock_event(db, event_id)
        if event is None:
            raise NotFoundError("Event not found")

        user = db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        if not has_capability(user.role, Capability.PARTICIPATE):
            raise ForbiddenError("Administrators cannot participate in events")

        if as_utc(event.end_date) < now:
            raise InvalidStateError("Event has already ended")

        if _find_participant(db, event_id, user_id) is not None:
            raise ConflictError("User is already registered for this event")

        if not _claim_slot(db, event_id):
            logger.info("Registration of user %s for event %s rejected: event is full", user_id, event_id)
            raise CapacityExceededError("Event has reached its maximum capacity")

        participant = Participant(
            event_id=event_id,
            user_id=user_id,
            status=ParticipantStatus.REGISTERED.value,
            notes=notes,
            registration_date=now,
        )
        db.add(participant)
        try:
            db.flush()
        except IntegrityError as exc:
            # the unique index caught a registration that slipped past the check
            raise ConflictError("User is already registered for this event") from exc

        db.add(
            ParticipationLog(
                user_id=user_id,
                event_id=event_id,
                transition=ParticipationTransition.REGISTERED.value,
                actor_id=user_id,
            )
        )
        db.flush()
        db.refresh(participant)

    logger.info("User %s registered for event %s", user_id, event_id)
    return participant


def _exit(
    db: Session,
    event_id: int,
    user_id: int,
    transition: ParticipationTransition,
    actor_id: int,
    *,
    check_user: bool,
) -> dict:
    with atomic(db):
        event = _lock_event(db, event_id)
        if event is None:
            raise NotFoundError("Event not found")

        if check_user and db.get(User, user_id) is None:
            raise NotFoundError("User not found")

        participant = _find_participant(db, event_id, user_id)
        if participant is None:
            raise NotFoundError("User is not registered for this event")

        snapshot = _snapshot(participant)
        db.delete(participant)
        db.flush()
        _release_slot(db, event_id)
        db.add(
            ParticipationLog(
                user_id=user_id,
                event_id=event_id,
                transition=transition.value,
                actor_id=actor_id,
            )
        )

    return snapshot


def withdraw_participant(db: Session, *, event_id: int, user_id: int) -> dict:
    """The user leaves the event. Returns a message and the deleted membership."""
    snapshot = _exit(db, event_id, user_id, ParticipationTransition.WITHDRAWN, user_id, check_user=False)
    logger.info("User %s withdrew from event %s", user_id, event_id)
    return {"message": "Successfully withdrew from the event", "participant": snapshot}


def remove_participant(db: Session, *, event_id: int, user_id: int, acting_admin_id: int) -> dict:
    """An administrator removes a user from the event."""
    snapshot = _exit(db, event_id, user_id, ParticipationTransition.REMOVED, acting_admin_id, check_user=True)
    logger.info("Admin %s removed user %s from event %s", acting_admin_id, user_id, event_id)
    return {"message": "Participant removed successfully", "participant": snapshot}


def list_participants(
    db: Session,
    event_id: int,
    params: Mapping[str, Any] | None = None,
    *,
    base_url: str | None = None,
) -> dict:
    if db.get(Event, event_id) is None:
        raise NotFoundError("Event not found")

    params = params or {}
    where = [Participant.event_id == event_id]
    status = params.get("status")
    if status in {member.value for member in ParticipantStatus}:
        where.append(Participant.status == status)

    return paginate(
        db,
        PARTICIPANT_LISTING,
        params,
        where=where,
        transform=lambda participant: ParticipantOut.model_validate(participant).model_dump(),
        base_url=base_url,
    )
