from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from eventhub.schemas.tags import TagSummary


# ---------- Event ----------
class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    location: str | None = Field(default=None, max_length=255)
    start_date: datetime
    end_date: datetime
    capacity: int | None = Field(default=None, ge=1)
    category_id: int | None = None
    tags: list[int] = Field(default_factory=list)


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    location: str | None = Field(default=None, max_length=255)
    start_date: datetime | None = None
    end_date: datetime | None = None
    capacity: int | None = Field(default=None, ge=1)
    category_id: int | None = None
    tags: list[int] | None = None

    @field_validator("title", "start_date", "end_date")
    @classmethod
    def not_null(cls, value):
        # may be omitted, but not cleared
        if value is None:
            raise ValueError("must not be null")
        return value


class EventOut(BaseModel):
    id: int
    title: str
    description: str | None = None
    location: str | None = None
    start_date: datetime
    end_date: datetime
    capacity: int | None = None
    participants_count: int
    category_id: int | None = None
    created_by: int
    created_at: datetime
    tags: list[TagSummary] = []

    class Config:
        from_attributes = True


class EventStatsOut(BaseModel):
    event_id: int
    capacity: int | None = None
    participants_count: int
    available_slots: int | None = None
    status_counts: dict[str, int]
