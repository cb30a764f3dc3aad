from eventhub.models.categories import Category
from eventhub.models.events import Event
from eventhub.models.participants import Participant, ParticipantStatus, ParticipationLog, ParticipationTransition
from eventhub.models.tags import Tag, event_tags
from eventhub.models.users import User

__all__ = [
    "Category",
    "Event",
    "Participant",
    "ParticipantStatus",
    "ParticipationLog",
    "ParticipationTransition",
    "Tag",
    "User",
    "event_tags",
]
