from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from eventhub.core.permissions import Capability
from eventhub.core.security import require_capability
from eventhub.database.db import get_db
from eventhub.models.users import User
from eventhub.schemas.events import EventStatsOut
from eventhub.schemas.reports import ReportOut
from eventhub.services.reports import get_event_stats, get_overall_report

router = APIRouter(prefix="/report", tags=["reports"])


@router.get("", response_model=ReportOut)
def overall_report(
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.VIEW_REPORTS)),
):
    """Aggregate report across all events."""
    return get_overall_report(db)


@router.get("/event/{event_id}", response_model=EventStatsOut)
def event_report(
    event_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.VIEW_REPORTS)),
):
    return get_event_stats(db, event_id)
