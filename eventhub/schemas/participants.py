from datetime import datetime

from pydantic import BaseModel, Field

from eventhub.schemas.users import UserSummary


class RegistrationRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class ParticipantOut(BaseModel):
    id: int
    event_id: int
    user_id: int
    status: str
    notes: str | None = None
    registration_date: datetime
    user: UserSummary | None = None

    class Config:
        from_attributes = True


class RegistrationOut(BaseModel):
    message: str
    link: str
    participant: ParticipantOut


class ParticipantExitOut(BaseModel):
    message: str
    participant: ParticipantOut
