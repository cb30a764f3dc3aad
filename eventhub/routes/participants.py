from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from eventhub.core.permissions import Capability
from eventhub.core.security import get_current_user, require_capability
from eventhub.database.db import get_db
from eventhub.models.users import User
from eventhub.schemas.participants import ParticipantExitOut, ParticipantOut, RegistrationOut, RegistrationRequest
from eventhub.services.registrations import (
    list_participants,
    register_participant,
    remove_participant,
    withdraw_participant,
)

router = APIRouter(prefix="/events/{event_id}/participants", tags=["participants"])


@router.post("", response_model=RegistrationOut, status_code=status.HTTP_201_CREATED)
def register(
    event_id: int,
    payload: RegistrationRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.PARTICIPATE)),
):
    participant = register_participant(
        db,
        event_id=event_id,
        user_id=current_user.id,
        notes=payload.notes if payload else None,
    )
    return {
        "message": "Successfully registered for the event",
        "link": f"/events/{event_id}/participants",
        "participant": ParticipantOut.model_validate(participant),
    }


@router.delete("", response_model=ParticipantExitOut)
def withdraw(
    event_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.PARTICIPATE)),
):
    return withdraw_participant(db, event_id=event_id, user_id=current_user.id)


@router.delete("/{user_id}", response_model=ParticipantExitOut)
def remove(
    event_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_PARTICIPANTS)),
):
    return remove_participant(db, event_id=event_id, user_id=user_id, acting_admin_id=admin.id)


@router.get("")
def participants(
    event_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Paginated participants for signed-in callers; query parameters are normalized, never rejected."""
    return list_participants(db, event_id, dict(request.query_params), base_url=request.url.path)
